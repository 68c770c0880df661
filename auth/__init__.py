"""auth/ -- Authentication core: value types, stores, hashing, tokens, login flow.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/. Configuration values arrive through
constructor arguments wired up in api/main.py.
"""
