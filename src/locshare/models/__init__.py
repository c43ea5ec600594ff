"""Persisted records and the stores that own them."""
