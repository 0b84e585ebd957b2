"""auth/ -- Credential store, token issuer, refresh ledger and session core.

Layer rule: auth/ imports only stdlib + third-party libraries (and core/ for
settings-driven factories). It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
