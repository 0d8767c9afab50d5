"""auth/ -- Accounts, credentials and sessions for the Dynamic Listing identity service.

Layer rule: auth/ imports stdlib, third-party libraries and core/ (settings).
It does NOT import from api/. api/ imports from auth/, not the other way around;
auth/dependencies.py is the only module here that knows about FastAPI.
"""
