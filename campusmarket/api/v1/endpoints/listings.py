from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.core.db import get_db
from campusmarket.core.principal import Principal
from campusmarket.schemas.listing import (
    CommissionPaymentOut,
    CommissionQuoteOut,
    CommissionReceiptOut,
    ListingCreate,
    ListingOut,
    SellerStatsOut,
)
from campusmarket.schemas.common import StatusResponse
from campusmarket.services.auth import get_optional_principal, get_principal
from campusmarket.services.commission_ledger import pay_commission
from campusmarket.services.listings import (
    archive_listing,
    commission_quote,
    create_listing,
    delete_listing,
    get_listing,
    list_active_listings,
    list_seller_listings,
    mark_listing_sold,
    seller_dashboard_stats,
)
from campusmarket.services.transactions import run_atomic

router = APIRouter()


@router.post("/listings", response_model=ListingOut, status_code=201)
async def create_listing_endpoint(
    payload: ListingCreate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await run_atomic(
        db,
        lambda s: create_listing(
            s,
            seller=principal,
            price=payload.price,
            category_id=payload.category_id,
            title=payload.title,
            description=payload.description,
        ),
        label="create_listing",
    )
    return ListingOut.model_validate(listing)


@router.get("/listings", response_model=list[ListingOut])
async def browse_listings(
    category_id: str | None = None,
    limit: int = Query(default=12, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    rows = await list_active_listings(db, category_id=category_id, limit=limit, offset=offset)
    return [ListingOut.model_validate(r) for r in rows]


@router.get("/listings/mine", response_model=list[ListingOut])
async def my_listings(
    status: str | None = None,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    rows = await list_seller_listings(db, seller=principal, status=status)
    return [ListingOut.model_validate(r) for r in rows]


@router.get("/listings/mine/stats", response_model=SellerStatsOut)
async def my_stats(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> SellerStatsOut:
    return SellerStatsOut(**(await seller_dashboard_stats(db, seller=principal)))


@router.get("/listings/{listing_id}", response_model=ListingOut)
async def read_listing(
    listing_id: str,
    principal: Principal | None = Depends(get_optional_principal),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await get_listing(db, listing_id=listing_id, viewer=principal)
    return ListingOut.model_validate(listing)


@router.get("/listings/{listing_id}/commission", response_model=CommissionQuoteOut)
async def read_commission_quote(
    listing_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> CommissionQuoteOut:
    return CommissionQuoteOut(**(await commission_quote(db, listing_id=listing_id, requester=principal)))


@router.post("/listings/{listing_id}/commission", response_model=CommissionReceiptOut)
async def pay_listing_commission(
    listing_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> CommissionReceiptOut:
    receipt = await run_atomic(
        db,
        lambda s: pay_commission(s, listing_id=listing_id, requester=principal),
        label="pay_commission",
    )
    return CommissionReceiptOut(
        listing=ListingOut.model_validate(receipt.listing),
        payment=CommissionPaymentOut.model_validate(receipt.payment),
    )


@router.post("/listings/{listing_id}/archive", response_model=ListingOut)
async def archive_listing_endpoint(
    listing_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await run_atomic(
        db, lambda s: archive_listing(s, listing_id=listing_id, requester=principal), label="archive_listing"
    )
    return ListingOut.model_validate(listing)


@router.post("/listings/{listing_id}/sold", response_model=ListingOut)
async def mark_sold_endpoint(
    listing_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await run_atomic(
        db, lambda s: mark_listing_sold(s, listing_id=listing_id, requester=principal), label="mark_listing_sold"
    )
    return ListingOut.model_validate(listing)


@router.delete("/listings/{listing_id}", response_model=StatusResponse)
async def delete_listing_endpoint(
    listing_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    await run_atomic(
        db, lambda s: delete_listing(s, listing_id=listing_id, requester=principal), label="delete_listing"
    )
    return StatusResponse(status="deleted")
