"""Local viewer surfaces."""
