"""auth/ -- Session-and-token lifecycle engine for the MotorGhar admin console.

Layer rule: auth/ imports stdlib, third-party libraries, and core/ only.
It does NOT import from api/. api/ imports from auth/, not the other way
around. auth/dependencies.py is the single module that touches FastAPI.
"""
