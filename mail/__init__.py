"""mail/ -- Outbound email delivery for the storefront backend.

Layer rule: mail/ imports only the standard library. auth/ depends on the
EmailDispatcher contract defined here; it never talks to SMTP itself.
"""
