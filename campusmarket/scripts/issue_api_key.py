import argparse
import asyncio

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from campusmarket.core.config import settings
from campusmarket.core.principal import Role
from campusmarket.core.security import generate_api_key
from campusmarket.models.api_key import ApiKey


async def issue(user_id: str, role: Role) -> str:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    parts = generate_api_key()
    try:
        async with Session() as db:
            db.add(
                ApiKey(
                    user_id=user_id,
                    role=role.value,
                    key_prefix=parts.prefix,
                    key_hash=parts.hashed,
                    is_active=True,
                )
            )
            await db.commit()
    finally:
        await engine.dispose()
    return parts.plain


def main() -> int:
    parser = argparse.ArgumentParser(description="Issue an API key for a marketplace user.")
    parser.add_argument("user_id")
    parser.add_argument("--role", choices=[r.value for r in Role], default=Role.SELLER.value)
    args = parser.parse_args()

    plain = asyncio.run(issue(args.user_id, Role(args.role)))
    # shown once; only the hash is stored
    print(plain)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
