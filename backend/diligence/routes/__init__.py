# Routes package
from .diligence import router as diligence_router

__all__ = ["diligence_router"]
