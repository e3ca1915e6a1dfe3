from fastapi import APIRouter

from campusmarket.schemas.common import StatusResponse

router = APIRouter()


@router.get("/health", response_model=StatusResponse)
async def health() -> StatusResponse:
    return StatusResponse(status="ok")
