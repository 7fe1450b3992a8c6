"""audit/ -- Append-only record of security-relevant actions.

Layer rule: audit/ imports only core/ plus third-party libraries.
api/ imports from audit/, not the other way around.
"""
