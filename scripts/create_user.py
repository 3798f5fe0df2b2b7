import asyncio
from app.core.auth import create_access_token, hash_password
from app.db import models  # noqa: F401
from app.db.database import AsyncSessionLocal, engine, Base
from app.db.schema import MedicineCreate
from app.medicines.crud import create_medicine
from app.users.crud import create_user, get_user_by_email

async def create_test_user():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        user = await get_user_by_email(db, "test@example.com")
        if user is None:
            user = await create_user(
                db,
                email="test@example.com",
                name="Test User",
                password_hash=hash_password("password123"),
            )
            await create_medicine(db, user.id, MedicineCreate(
                name="Metformin",
                dosage="1-0-1",
                timing="after-food",
                purpose="Type 2 diabetes",
                schedule=["09:00", "21:00"],
                duration=30,
                quantity=60,
            ))
        print("Test user:", user)
        print("Token:", create_access_token(user_id=str(user.id), email=user.email))

if __name__ == "__main__":
    asyncio.run(create_test_user())
