import asyncio
import os
import sys

# Ensure backend path is in sys.path
if os.path.exists("backend"):
    sys.path.append(os.path.join(os.getcwd(), "backend"))
    migration_root = os.path.join(os.getcwd(), "backend", "migrations")
else:
    sys.path.append(os.getcwd())
    migration_root = os.path.join(os.getcwd(), "migrations")

from dotenv import load_dotenv

# Settings read the environment at import; pick up the nearest .env first.
load_dotenv()

from gittogether.infra.postgres import close_pool, get_pool


async def apply_migration(filename: str) -> None:
    migration_path = os.path.join(migration_root, filename)
    if not os.path.exists(migration_path):
        print(f"Migration file not found: {migration_path}")
        return

    print(f"Applying migration: {filename}")
    with open(migration_path, "r") as f:
        sql = f.read()

    pool = await get_pool()
    try:
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(sql)
    finally:
        await close_pool()
    print("Migration applied successfully.")


async def apply_all() -> None:
    for filename in sorted(f for f in os.listdir(migration_root) if f.endswith(".sql")):
        await apply_migration(filename)


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    if len(sys.argv) < 2:
        asyncio.run(apply_all())
    else:
        asyncio.run(apply_migration(sys.argv[1]))
