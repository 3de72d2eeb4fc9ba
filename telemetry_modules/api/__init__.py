"""
API модуль: HTTP endpoint экспортёра на FastAPI + uvicorn.
"""

from .module import ApiModule

__all__ = ["ApiModule"]
