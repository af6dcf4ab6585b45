"""
Routers Package

Contains FastAPI router modules for:
- Avatar voice sessions (start / poll) and one-shot speech (speak / greet)
"""

from routers.avatar_router import add_error_handlers as add_error_handlers
from routers.avatar_router import avatar_router as avatar_router

__all__ = ["add_error_handlers", "avatar_router"]
