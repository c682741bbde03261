# City Services Portal - Seed Data Importer
# Resets the portal collections in MongoDB and fills them with demo data
#
# Usage:  python -m portal.importer      (from repo root)

import asyncio

from pymongo import MongoClient

from .auth import AuthService
from .config import MONGODB_DB, MONGODB_URL
from .seed.amenities import AMENITIES, import_amenities
from .seed.announcements import ANNOUNCEMENTS, import_announcements
from .seed.complaints import COMPLAINTS, import_complaints
from .seed.users import USERS, import_users
from .store import TABLES, Store

COLLECTIONS = TABLES + ("users",)


async def seed(store: Store, auth: AuthService) -> dict:
    """Drop every portal collection and insert the seed data. Returns the seeded user ids."""
    for name in COLLECTIONS:
        store.db[name].drop()
    print(f"  Reset: {', '.join(COLLECTIONS)}")
    store.ensure_indexes()

    user_ids = await import_users(auth)
    await import_amenities(store.db)
    await import_announcements(store.db, user_ids["admin"])
    await import_complaints(store.db, user_ids)
    return user_ids


async def main():
    print("=" * 64)
    print("  City Services Portal - Data Importer")
    print("=" * 64)

    print("\n[1/2] Connecting to MongoDB...")
    mongo_client = MongoClient(MONGODB_URL)
    store = Store(mongo_client[MONGODB_DB])
    print(f"  Connected: {MONGODB_URL} (database {MONGODB_DB})")

    print("\n[2/2] Seeding collections...")
    try:
        await seed(store, AuthService(store))
    finally:
        mongo_client.close()

    print("\n" + "=" * 64)
    print("  IMPORT COMPLETE")
    print("=" * 64)
    print(f"  Users:          {len(USERS)}")
    print(f"  Amenities:      {len(AMENITIES)}")
    print(f"  Announcements:  {len(ANNOUNCEMENTS)}")
    print(f"  Complaints:     {len(COMPLAINTS)}")
    print()
    print("  Test credentials:")
    print("    Citizen : maria.lopez@email.com / citizen123")
    print("    Admin   : admin@cityhall.gov    / admin123")
    print("=" * 64)


if __name__ == "__main__":
    asyncio.run(main())
