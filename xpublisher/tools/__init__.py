"""
External service clients for the X post publisher.

- XClient: X/Twitter API v2 (publish tweets, verify user credentials)
"""

from xpublisher.tools.x_client import XClient

__all__ = [
    "XClient",
]
