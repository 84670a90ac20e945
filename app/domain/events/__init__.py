"""Events domain - local calendar events owned by a user"""

from .router import router

__all__ = ["router"]
