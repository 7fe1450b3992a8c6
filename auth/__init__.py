"""
auth/ -- Authentication and authorization package for the IDAM-PAM platform.

Layer rule: auth/ imports only core/, audit/, stdlib and third-party libraries.
It does NOT import from api/ or vault/.
api/ imports from auth/, not the other way around.
"""
