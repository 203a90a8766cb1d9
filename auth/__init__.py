"""auth/ -- Credential store, password hashing, tokens and the access gate.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/, core/ or resources/.
api/ imports from auth/, not the other way around.
"""
