import asyncio
import os
import sys

# Ensure backend path is in sys.path
if os.path.exists("backend"):
    sys.path.append(os.path.join(os.getcwd(), "backend"))
else:
    sys.path.append(os.getcwd())

from dotenv import load_dotenv

# Settings read the environment at import; pick up the nearest .env first.
load_dotenv()

from gittogether.domain.identity.service import ProfileNotFound, ProfileService
from gittogether.infra.postgres import close_pool, init_pool


async def ensure_admin(user_id: str, *, revoke: bool = False) -> None:
    from gittogether.settings import settings
    print(f"Connecting to: {settings.postgres_url}")
    await init_pool()
    try:
        user = await ProfileService().set_account_flags(user_id, is_admin=not revoke)
    except ProfileNotFound:
        print(f"User {user_id} not found; they must sign in once before being promoted.")
        return
    finally:
        await close_pool()
    print(f"User {user.id} ({user.email}) is_admin={user.is_admin}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python ensure_admin.py <user_id> [--revoke]")
        sys.exit(1)

    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(ensure_admin(sys.argv[1], revoke="--revoke" in sys.argv[2:]))
