"""vault/ -- Encrypted secret custody.

Layer rule: vault/ imports only core/ plus third-party libraries.
"""
