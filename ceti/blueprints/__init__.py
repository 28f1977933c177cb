"""
CETI
Blueprint registry.
"""
