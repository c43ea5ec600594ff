"""Shared helpers: storage, geodesy and logging."""
