"""
tests/test_cookies.py -- Unit tests for auth/cookies.py (CookieSessionTransport).

The clearing cookie must carry the same attributes as the one that was set,
otherwise browsers keep the original.
"""

from __future__ import annotations

from types import SimpleNamespace

from starlette.responses import Response

from auth.cookies import COOKIE_NAME, DEFAULT_MAX_AGE, CookieSessionTransport


def _set_cookie(response: Response) -> str:
    headers = response.headers.getlist("set-cookie")
    assert len(headers) == 1
    return headers[0].lower()


def _attributes(header: str) -> set[str]:
    return {part.strip() for part in header.split(";")[1:] if not part.strip().startswith(("max-age", "expires"))}


def test_attach_sets_hardened_cookie() -> None:
    response = Response()
    CookieSessionTransport(secure=True).attach(response, "abc.def.ghi")
    header = _set_cookie(response)
    assert header.startswith(f"{COOKIE_NAME}=abc.def.ghi")
    assert "httponly" in header
    assert "secure" in header
    assert "samesite=strict" in header
    assert "path=/" in header
    assert f"max-age={DEFAULT_MAX_AGE}" in header


def test_secure_off_outside_production() -> None:
    response = Response()
    CookieSessionTransport(secure=False).attach(response, "t")
    assert "secure" not in _set_cookie(response)


def test_clear_uses_identical_attributes() -> None:
    transport = CookieSessionTransport(secure=True)
    set_resp, clear_resp = Response(), Response()
    transport.attach(set_resp, "t")
    transport.clear(clear_resp)
    set_header, clear_header = _set_cookie(set_resp), _set_cookie(clear_resp)
    assert "max-age=0" in clear_header
    assert _attributes(set_header) == _attributes(clear_header)


def test_read() -> None:
    transport = CookieSessionTransport(secure=False)
    assert transport.read(SimpleNamespace(cookies={"token": "abc"})) == "abc"
    assert transport.read(SimpleNamespace(cookies={})) is None
    assert transport.read(SimpleNamespace(cookies={"token": ""})) is None
