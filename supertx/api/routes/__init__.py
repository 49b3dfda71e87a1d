"""API route modules."""

from supertx.api.routes.chains import router as chains_router
from supertx.api.routes.quotes import router as quotes_router
from supertx.api.routes.runs import router as runs_router

__all__ = [
    "chains_router",
    "quotes_router",
    "runs_router",
]
