from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.core.db import get_db
from campusmarket.core.principal import AdminPrincipal, Principal, SystemPrincipal
from campusmarket.schemas.escrow import EscrowOpen, EscrowOut, EscrowReason
from campusmarket.services.auth import get_principal, require_admin, require_system
from campusmarket.services.escrow import (
    BuyerInfo,
    dispute_escrow,
    get_escrow,
    list_escrows,
    open_escrow,
    refund_escrow,
    release_escrow,
)
from campusmarket.services.transactions import run_atomic

router = APIRouter()


@router.post("/listings/{listing_id}/escrow", response_model=EscrowOut, status_code=201)
async def open_escrow_endpoint(
    listing_id: str,
    payload: EscrowOpen,
    recorder: SystemPrincipal = Depends(require_system),
    db: AsyncSession = Depends(get_db),
) -> EscrowOut:
    buyer = BuyerInfo(
        name=payload.buyer_name,
        phone=payload.buyer_phone,
        email=payload.buyer_email,
        buyer_id=payload.buyer_id,
    )
    escrow = await run_atomic(
        db,
        lambda s: open_escrow(s, listing_id=listing_id, buyer=buyer, recorder=recorder),
        label="open_escrow",
    )
    return EscrowOut.model_validate(escrow)


@router.get("/escrows/{escrow_id}", response_model=EscrowOut)
async def read_escrow(
    escrow_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> EscrowOut:
    return EscrowOut.model_validate(await get_escrow(db, escrow_id=escrow_id, viewer=principal))


@router.post("/escrows/{escrow_id}/dispute", response_model=EscrowOut)
async def dispute_escrow_endpoint(
    escrow_id: str,
    payload: EscrowReason | None = Body(default=None),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> EscrowOut:
    reason = payload.reason if payload else None
    escrow = await run_atomic(
        db,
        lambda s: dispute_escrow(s, escrow_id=escrow_id, party=principal, reason=reason),
        label="dispute_escrow",
    )
    return EscrowOut.model_validate(escrow)


@router.get("/admin/escrows", response_model=list[EscrowOut])
async def admin_list_escrows(
    status: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: AdminPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[EscrowOut]:
    rows = await list_escrows(db, admin=admin, status=status, limit=limit, offset=offset)
    return [EscrowOut.model_validate(r) for r in rows]


@router.post("/admin/escrows/{escrow_id}/release", response_model=EscrowOut)
async def release_escrow_endpoint(
    escrow_id: str,
    admin: AdminPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> EscrowOut:
    escrow = await run_atomic(db, lambda s: release_escrow(s, escrow_id=escrow_id, admin=admin), label="release_escrow")
    return EscrowOut.model_validate(escrow)


@router.post("/admin/escrows/{escrow_id}/refund", response_model=EscrowOut)
async def refund_escrow_endpoint(
    escrow_id: str,
    payload: EscrowReason | None = Body(default=None),
    admin: AdminPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> EscrowOut:
    reason = payload.reason if payload else None
    escrow = await run_atomic(
        db,
        lambda s: refund_escrow(s, escrow_id=escrow_id, admin=admin, reason=reason),
        label="refund_escrow",
    )
    return EscrowOut.model_validate(escrow)
