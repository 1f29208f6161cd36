"""API routers"""

from . import discount_codes, negotiations

__all__ = ["discount_codes", "negotiations"]
