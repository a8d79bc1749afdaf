"""API v1 routers."""

from . import registrations

__all__ = ["registrations"]
