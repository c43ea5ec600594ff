"""Live location sharing with short viewer links.

Records a time-ordered location history for a tracking session, keeps it in a
local key/value store, derives simple analytics from it, and hands out short
codes that resolve to a session-viewing link.
"""

__version__ = "0.1.0"

__author__ = "locshare contributors"
__license__ = "Apache-2.0"

__all__ = ["__version__"]
