"""
Dosetrack API Routers.
"""

from dosetrack.routers.adherence import router as adherence_router

__all__ = [
    "adherence_router",
]
