from decimal import Decimal

import pytest
from sqlalchemy import func, select

from campusmarket.core.errors import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from campusmarket.models.escrow import EscrowStatus, EscrowTransaction
from campusmarket.models.listing import Listing, ListingStatus
from campusmarket.models.outbox import OutboxEvent
from campusmarket.services.listings import (
    archive_listing,
    create_listing,
    delete_listing,
    get_listing,
    list_active_listings,
    list_seller_listings,
    mark_listing_sold,
    seller_dashboard_stats,
)
from campusmarket.services.transactions import run_atomic

from fixtures_seed import ADMIN, BUYER, OTHER, SELLER

S = ListingStatus


@pytest.mark.asyncio
async def test_create_listing_starts_pending_commission(db_session, categories):
    listing = await run_atomic(
        db_session,
        lambda s: create_listing(
            s, seller=SELLER, price="150", category_id=categories["phones"], title="  iPhone 12  "
        ),
    )
    assert listing.status == S.PENDING_COMMISSION.value
    assert listing.price == Decimal("150.00")
    assert listing.title == "iPhone 12"

    n = (await db_session.execute(select(func.count()).select_from(OutboxEvent))).scalar_one()
    assert n == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("price", [0, -5, "abc", "0.001"])
async def test_create_listing_rejects_bad_price(db_session, categories, price):
    with pytest.raises(ValidationError):
        await create_listing(db_session, seller=SELLER, price=price, category_id=categories["tv"], title="Old TV")


@pytest.mark.asyncio
async def test_create_listing_rejects_unknown_category(db_session, categories):
    with pytest.raises(ValidationError):
        await create_listing(db_session, seller=SELLER, price=10, category_id="cat_missing", title="Old TV")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [s for s in ListingStatus if s is not S.ACTIVE])
async def test_archive_only_from_active(db_session, make_listing, status):
    listing = await make_listing(status)
    with pytest.raises(InvalidStateError) as ei:
        await run_atomic(db_session, lambda s: archive_listing(s, listing_id=listing.id, requester=SELLER))
    assert ei.value.current_status == status.value


@pytest.mark.asyncio
async def test_archive_active_listing(db_session, make_listing):
    listing = await make_listing(S.ACTIVE)
    archived = await run_atomic(db_session, lambda s: archive_listing(s, listing_id=listing.id, requester=SELLER))
    assert archived.status == S.ARCHIVED.value


@pytest.mark.asyncio
async def test_archive_requires_owner(db_session, make_listing):
    listing = await make_listing(S.ACTIVE)
    with pytest.raises(AuthorizationError):
        await archive_listing(db_session, listing_id=listing.id, requester=OTHER)


@pytest.mark.asyncio
async def test_mark_sold_from_active(db_session, make_listing):
    listing = await make_listing(S.ACTIVE)
    sold = await run_atomic(db_session, lambda s: mark_listing_sold(s, listing_id=listing.id, requester=SELLER))
    assert sold.status == S.SOLD.value

    with pytest.raises(InvalidStateError):
        await run_atomic(db_session, lambda s: mark_listing_sold(s, listing_id=listing.id, requester=SELLER))


@pytest.mark.asyncio
async def test_buyers_only_see_active_listings(db_session, make_listing):
    active = await make_listing(S.ACTIVE)
    pending = await make_listing(S.PENDING_REVIEW)

    assert (await get_listing(db_session, listing_id=active.id, viewer=None)).id == active.id
    with pytest.raises(NotFoundError):
        await get_listing(db_session, listing_id=pending.id, viewer=None)
    with pytest.raises(NotFoundError):
        await get_listing(db_session, listing_id=pending.id, viewer=BUYER)

    assert (await get_listing(db_session, listing_id=pending.id, viewer=SELLER)).id == pending.id
    assert (await get_listing(db_session, listing_id=pending.id, viewer=ADMIN)).id == pending.id

    browse = await list_active_listings(db_session)
    assert [l.id for l in browse] == [active.id]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [S.PENDING_COMMISSION, S.REJECTED, S.ARCHIVED])
async def test_delete_allowed_statuses(db_session, make_listing, status):
    listing = await make_listing(status)
    await run_atomic(db_session, lambda s: delete_listing(s, listing_id=listing.id, requester=SELLER))

    with pytest.raises(NotFoundError):
        await get_listing(db_session, listing_id=listing.id, viewer=SELLER)

    # soft delete: the row is still there
    row = (
        await db_session.execute(
            select(Listing).where(Listing.id == listing.id).execution_options(populate_existing=True)
        )
    ).scalar_one()
    assert row.deleted_at is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [S.PENDING_REVIEW, S.ACTIVE, S.SOLD])
async def test_delete_refused_statuses(db_session, make_listing, status):
    listing = await make_listing(status)
    with pytest.raises(InvalidStateError) as ei:
        await run_atomic(db_session, lambda s: delete_listing(s, listing_id=listing.id, requester=SELLER))
    assert ei.value.current_status == status.value


@pytest.mark.asyncio
@pytest.mark.parametrize("requester", [SELLER, ADMIN, OTHER])
async def test_delete_refused_while_escrow_holding(db_session, make_listing, requester):
    listing = await make_listing(S.ARCHIVED)
    db_session.add(
        EscrowTransaction(
            listing_id=listing.id,
            seller_id=listing.seller_id,
            amount=listing.price,
            buyer_name="Ada Buyer",
            buyer_phone="08012345678",
            status=EscrowStatus.HOLDING.value,
        )
    )
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await run_atomic(db_session, lambda s: delete_listing(s, listing_id=listing.id, requester=requester))


@pytest.mark.asyncio
async def test_delete_requires_owner(db_session, make_listing):
    listing = await make_listing(S.PENDING_COMMISSION)
    with pytest.raises(AuthorizationError):
        await run_atomic(db_session, lambda s: delete_listing(s, listing_id=listing.id, requester=OTHER))


@pytest.mark.asyncio
async def test_seller_listings_filter_and_stats(db_session, make_listing):
    await make_listing(S.ACTIVE)
    await make_listing(S.ACTIVE)
    await make_listing(S.PENDING_REVIEW)
    await make_listing(S.ACTIVE, seller=OTHER)

    assert len(await list_seller_listings(db_session, seller=SELLER)) == 3
    assert len(await list_seller_listings(db_session, seller=SELLER, status="all")) == 3
    assert len(await list_seller_listings(db_session, seller=SELLER, status="ACTIVE")) == 2
    with pytest.raises(ValidationError):
        await list_seller_listings(db_session, seller=SELLER, status="LIVE")

    stats = await seller_dashboard_stats(db_session, seller=SELLER)
    assert stats["listings_by_status"]["ACTIVE"] == 2
    assert stats["listings_by_status"]["PENDING_REVIEW"] == 1
    assert stats["total_sales"] == 0
    assert stats["total_earnings"] == Decimal("0.00")
