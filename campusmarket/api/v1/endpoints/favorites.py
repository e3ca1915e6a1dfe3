from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.core.db import get_db
from campusmarket.core.principal import Principal
from campusmarket.schemas.listing import FavoriteToggleOut, ListingOut
from campusmarket.services.auth import get_principal
from campusmarket.services.favorites import list_my_favorites, toggle_favorite
from campusmarket.services.transactions import run_atomic

router = APIRouter()


@router.post("/listings/{listing_id}/favorite", response_model=FavoriteToggleOut)
async def toggle_favorite_endpoint(
    listing_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> FavoriteToggleOut:
    favorited = await run_atomic(
        db, lambda s: toggle_favorite(s, listing_id=listing_id, user=principal), label="toggle_favorite"
    )
    return FavoriteToggleOut(listing_id=listing_id, favorited=favorited)


@router.get("/favorites", response_model=list[ListingOut])
async def my_favorites(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    return [ListingOut.model_validate(r) for r in await list_my_favorites(db, user=principal)]
