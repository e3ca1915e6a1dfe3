from fastapi import APIRouter, Depends

from campusmarket.core.principal import Principal
from campusmarket.schemas.me import MeOut
from campusmarket.services.auth import get_principal

router = APIRouter()

@router.get("/me", response_model=MeOut)
async def me(principal: Principal = Depends(get_principal)) -> MeOut:
    return MeOut(user_id=principal.user_id, role=principal.role.value, is_admin=principal.is_admin)
