"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, pagination) lives here; every sub-router
imports what it needs from this package.
"""

import os

from fastapi import APIRouter, Query
from slowapi import Limiter
from slowapi.util import get_remote_address

from broad.models.schemas import PaginationParams

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Shared pagination
# ---------------------------------------------------------------------------
def pagination_params(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> PaginationParams:
    """Dependency for ``?page=&limit=``. Out-of-range values are validation errors."""
    return PaginationParams(page=page, limit=limit)


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from broad.api.routes.auth import router as auth_router  # noqa: E402
from broad.api.routes.profiles import router as profiles_router  # noqa: E402
from broad.api.routes.rides import router as rides_router  # noqa: E402
from broad.api.routes.garages import router as garages_router  # noqa: E402

router = APIRouter()
router.include_router(auth_router)
router.include_router(profiles_router)
router.include_router(rides_router)
router.include_router(garages_router)
