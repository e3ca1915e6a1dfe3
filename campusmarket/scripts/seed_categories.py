import asyncio
import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from campusmarket.core.config import settings
from campusmarket.models.category import Category

CATEGORY_TREE: dict[str, list[str]] = {
    "Clothes": ["Men Wear", "Women Wear", "Shoes", "Bags"],
    "Electronics": [
        "TV",
        "Speaker System",
        "Fan",
        "Microwave",
        "Refrigerator",
        "Cooker",
        "Water Heater",
        "Laptops",
        "Phones",
        "Other Electronics",
    ],
}


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


async def seed_categories(db: AsyncSession) -> int:
    """Insert missing categories; returns how many rows were added."""
    existing = {c.slug: c for c in (await db.execute(select(Category))).scalars().all()}
    added = 0

    for parent_name, children in CATEGORY_TREE.items():
        parent = existing.get(slugify(parent_name))
        if parent is None:
            parent = Category(name=parent_name, slug=slugify(parent_name))
            db.add(parent)
            await db.flush()
            existing[parent.slug] = parent
            added += 1

        for child_name in children:
            slug = slugify(child_name)
            if slug in existing:
                continue
            child = Category(name=child_name, slug=slug, parent_id=parent.id)
            db.add(child)
            existing[slug] = child
            added += 1

    await db.flush()
    return added


async def main():
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    async with Session() as db:
        added = await seed_categories(db)
        await db.commit()
        print(f"Inserted {added} categories" if added else "Categories already seeded")

    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(main())
