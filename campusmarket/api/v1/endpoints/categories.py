from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.core.db import get_db
from campusmarket.schemas.category import CategoryOut
from campusmarket.services.categories import list_categories

router = APIRouter()


@router.get("/categories", response_model=list[CategoryOut])
async def read_categories(db: AsyncSession = Depends(get_db)) -> list[CategoryOut]:
    return [CategoryOut.model_validate(c) for c in await list_categories(db)]
