"""Tracking lifecycle, location providers and viewer-side services."""
