"""auth/ -- Credential and session management for the storefront backend.

Layer rule: auth/ imports only stdlib, third-party libraries and the
EmailDispatcher contract from mail/. Settings reach it as constructor
arguments (see api/main.build_components); it does NOT import from core/ or
api/.
api/ imports from auth/, not the other way around.
"""
