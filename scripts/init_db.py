"""Create all LegalWatch tables on the configured database."""
import asyncio
import sys
sys.path.insert(0, ".")

# Import all models to register them with Base
from app.models import models  # noqa: F401
from app.core.database import Base, close_db, get_engine


async def create_tables():
    """Create every registered table."""
    engine = get_engine()

    print(f"📦 Registered tables: {len(Base.metadata.tables)}")
    for table in Base.metadata.tables:
        print(f"   - {table}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await close_db()

    print("\n✅ All tables created!")


if __name__ == "__main__":
    asyncio.run(create_tables())
