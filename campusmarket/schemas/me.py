from pydantic import BaseModel


class MeOut(BaseModel):
    user_id: str
    role: str
    is_admin: bool
