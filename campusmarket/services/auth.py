from fastapi import Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.core.db import get_db
from campusmarket.core.principal import AdminPrincipal, Principal, Role, SystemPrincipal
from campusmarket.core.security import hash_api_key
from campusmarket.models.api_key import ApiKey

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def get_principal(
    api_key: str | None = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key")

    hashed = hash_api_key(api_key)
    stmt = select(ApiKey).where(ApiKey.key_hash == hashed, ApiKey.is_active.is_(True))
    row = (await db.execute(stmt)).scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=401, detail="Invalid API key")

    try:
        role = Role(row.role)
    except ValueError:
        raise HTTPException(status_code=401, detail="API key has an unknown role")

    return Principal(user_id=row.user_id, role=role)


def require_admin(principal: Principal = Depends(get_principal)) -> AdminPrincipal:
    # AuthorizationError is mapped to 403 by the API error handlers
    return principal.as_admin()


async def get_optional_principal(
    api_key: str | None = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Principal | None:
    # anonymous buyers may browse; a key, when sent, must still be valid
    if not api_key:
        return None
    return await get_principal(api_key=api_key, db=db)


def require_system(principal: Principal = Depends(get_principal)) -> SystemPrincipal:
    return principal.as_system()
