import pytest
from sqlalchemy import func, select

from campusmarket.models.commission_payment import CommissionPayment


@pytest.mark.asyncio
async def test_e2e_list_pay_approve_sell_release(
    client, session_factory, categories, seller_key, buyer_key, admin_key, system_key
):
    seller = {"X-API-Key": seller_key}
    buyer = {"X-API-Key": buyer_key}
    admin = {"X-API-Key": admin_key}
    checkout = {"X-API-Key": system_key}

    # 1) seller lists a laptop
    r = await client.post(
        "/v1/listings",
        headers=seller,
        json={"title": "ThinkPad T480", "description": "16GB RAM", "price": "200", "category_id": categories["laptops"]},
    )
    assert r.status_code == 201, r.text
    listing = r.json()
    listing_id = listing["id"]
    assert listing["status"] == "PENDING_COMMISSION"

    # not visible to buyers yet
    r = await client.get(f"/v1/listings/{listing_id}", headers=buyer)
    assert r.status_code == 404
    r = await client.get(f"/v1/listings/{listing_id}", headers=seller)
    assert r.status_code == 200

    # 2) quote and pay commission
    r = await client.get(f"/v1/listings/{listing_id}/commission", headers=seller)
    assert r.status_code == 200, r.text
    assert r.json()["amount"] == "20.00"

    r = await client.post(f"/v1/listings/{listing_id}/commission", headers=seller)
    assert r.status_code == 200, r.text
    receipt = r.json()
    assert receipt["listing"]["status"] == "PENDING_REVIEW"
    assert receipt["payment"]["amount"] == "20.00"

    r = await client.post(f"/v1/listings/{listing_id}/commission", headers=seller)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "already_paid"

    async with session_factory() as s:
        n = (await s.execute(select(func.count()).select_from(CommissionPayment))).scalar_one()
    assert n == 1

    # 3) sellers cannot moderate
    r = await client.post(f"/v1/admin/listings/{listing_id}/approve", headers=seller)
    assert r.status_code == 403

    r = await client.get("/v1/admin/listings/pending", headers=admin)
    assert [l["id"] for l in r.json()] == [listing_id]

    r = await client.post(f"/v1/admin/listings/{listing_id}/approve", headers=admin)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "ACTIVE"

    r = await client.get("/v1/listings")
    assert [l["id"] for l in r.json()] == [listing_id]

    # 4) checkout records the sale into escrow; users cannot open one themselves
    sale = {"buyer_name": "Ada Buyer", "buyer_phone": "08012345678", "buyer_email": "ada@campus.edu"}
    r = await client.post(f"/v1/listings/{listing_id}/escrow", headers=buyer, json=sale)
    assert r.status_code == 403

    r = await client.post(f"/v1/listings/{listing_id}/escrow", headers=checkout, json={**sale, "buyer_id": "usr_seller"})
    assert r.status_code == 403

    r = await client.post(f"/v1/listings/{listing_id}/escrow", headers=checkout, json={**sale, "buyer_id": "usr_buyer"})
    assert r.status_code == 201, r.text
    escrow = r.json()
    escrow_id = escrow["id"]
    assert escrow["amount"] == "200.00"
    assert escrow["status"] == "HOLDING"
    assert escrow["buyer_id"] == "usr_buyer"

    # money in flight: the listing cannot be deleted
    r = await client.delete(f"/v1/listings/{listing_id}", headers=seller)
    assert r.status_code == 409

    # 5) admin releases; every later settlement is refused
    r = await client.post(f"/v1/admin/escrows/{escrow_id}/release", headers=admin)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "RELEASED"

    r = await client.post(f"/v1/admin/escrows/{escrow_id}/release", headers=admin)
    assert r.status_code == 409
    assert r.json()["error"]["current_status"] == "RELEASED"

    r = await client.post(f"/v1/admin/escrows/{escrow_id}/refund", headers=admin, json={"reason": "late"})
    assert r.status_code == 409

    # 6) seller closes out the listing and sees the sale
    r = await client.post(f"/v1/listings/{listing_id}/sold", headers=seller)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "SOLD"

    r = await client.get("/v1/listings/mine/stats", headers=seller)
    assert r.status_code == 200, r.text
    stats = r.json()
    assert stats["total_sales"] == 1
    assert stats["total_earnings"] == "200.00"
    assert stats["listings_by_status"]["SOLD"] == 1


@pytest.mark.asyncio
async def test_validation_errors_are_422(client, categories, seller_key):
    r = await client.post(
        "/v1/listings",
        headers={"X-API-Key": seller_key},
        json={"title": "Fan", "price": "-1", "category_id": categories["fan"]},
    )
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "validation_error"


@pytest.mark.asyncio
async def test_unknown_listing_is_404(client, market_users, seller_key):
    r = await client.post("/v1/listings/lst_missing/archive", headers={"X-API-Key": seller_key})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "not_found"
