from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.models.category import Category


async def list_categories(db: AsyncSession) -> list[Category]:
    stmt = select(Category).order_by(Category.name.asc(), Category.id)
    return list((await db.execute(stmt)).scalars().all())
