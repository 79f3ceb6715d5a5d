#!/usr/bin/env python3
"""Initialize admin user for RoomComfort.

Run this script from src/backend:
    python scripts/init_admin.py
"""

import asyncio
import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from roomcomfort.core.deps import async_session_factory, engine
from roomcomfort.main import seed_reference_data
from roomcomfort.services.user_service import UserService


# Default admin credentials - override with environment variables
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@roomcomfort.io")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "Admin123Strong")


async def init_admin():
    """Create the admin user, or promote an existing user with that name."""
    print("Connecting to database...")

    async with async_session_factory() as db:
        await seed_reference_data(db)
        user = await UserService(db).ensure_admin(ADMIN_USERNAME, ADMIN_EMAIL, ADMIN_PASSWORD)

        print(f"Admin user '{user.username}' ready (id={user.id})")
        print(f"Email: {user.email}")
        print(f"Role: {user.role_name}")

    await engine.dispose()
    print("Admin initialization complete")


if __name__ == "__main__":
    asyncio.run(init_admin())
