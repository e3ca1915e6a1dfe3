from fastapi import APIRouter

from campusmarket.api.v1.endpoints.health import router as health_router
from campusmarket.api.v1.endpoints.me import router as me_router
from campusmarket.api.v1.endpoints.listings import router as listings_router
from campusmarket.api.v1.endpoints.moderation import router as moderation_router
from campusmarket.api.v1.endpoints.escrow import router as escrow_router
from campusmarket.api.v1.endpoints.categories import router as categories_router
from campusmarket.api.v1.endpoints.favorites import router as favorites_router
from campusmarket.schemas.common import ErrorResponse

# documented error bodies for the market routes (see api/error_handlers.py)
ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (403, 404, 409, 502, 503)}

router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(me_router, tags=["me"])
router.include_router(categories_router, tags=["categories"])
router.include_router(listings_router, tags=["listings"], responses=ERROR_RESPONSES)
router.include_router(favorites_router, tags=["favorites"], responses=ERROR_RESPONSES)
router.include_router(moderation_router, tags=["moderation"], responses=ERROR_RESPONSES)
router.include_router(escrow_router, tags=["escrow"], responses=ERROR_RESPONSES)
