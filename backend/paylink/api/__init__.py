"""API routers package."""

from paylink.api import deps, events, payment_links

__all__ = [
    "deps",
    "events",
    "payment_links",
]
