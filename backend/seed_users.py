"""
Database seeding script for development users.

Creates an ADMIN, a CUSTOMER and a verified DRIVER (with driver profile
and a funded wallet), then prints bearer tokens for each so the API can
be exercised locally. Run after the database is reachable.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.core.jwt import create_access_token
from backend.app.db.session import Base, create_engine, create_session_factory
from backend.app.models.driver_profile import DriverProfile
from backend.app.models.enums import UserRole
from backend.app.models.user import User
from backend.app.models.wallet import Wallet
from sqlalchemy import select
from datetime import timedelta

SEED_USERS = [
    ("admin@marketplace.dev", "Platform Admin", UserRole.ADMIN),
    ("customer@marketplace.dev", "Demo Customer", UserRole.CUSTOMER),
    ("driver@marketplace.dev", "Demo Driver", UserRole.DRIVER),
]

DRIVER_WALLET_BALANCE = 500.0


async def seed_users():
    """
    Seed development users.

    Idempotent: existing users (matched by email) are left untouched.
    """
    engine = create_engine()
    session_factory = create_session_factory(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    print("🌱 Starting user seeding...")
    async with session_factory() as db:
        users = []
        for email, full_name, role in SEED_USERS:
            result = await db.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()
            if user:
                print(f"ℹ️  {role.value} user already exists, skipping")
            else:
                user = User(
                    email=email,
                    full_name=full_name,
                    role=role,
                    is_active=True,
                    identity_verified=True,
                )
                db.add(user)
                await db.flush()
                if role == UserRole.DRIVER:
                    db.add(DriverProfile(user_id=user.id, license_plate="DEV-0001", vehicle_type="van", rating=4.5))
                    db.add(Wallet(user_id=user.id, available_balance=DRIVER_WALLET_BALANCE))
                print(f"✅ Created {role.value} user ({email})")
            users.append(user)

        await db.commit()

    await engine.dispose()

    print("\n🎉 User seeding completed successfully!")
    print("\nDevelopment tokens (valid 30 days):")
    for user in users:
        token = create_access_token(
            data={"sub": user.email, "user_id": user.id, "role": user.role.value},
            expires_delta=timedelta(days=30),
        )
        print(f"  - {user.role.value:<9} {token}")


if __name__ == "__main__":
    asyncio.run(seed_users())
