# Seed data: Announcements (active and retired)

from datetime import timedelta

from ..store import new_id, now_utc

ANNOUNCEMENTS = [
    {"title": "Water main maintenance on Elm Street",
     "content": "Water service on Elm Street between 2nd and 5th will be interrupted "
                "on Saturday from 8AM to 2PM while the main is replaced.",
     "category": "maintenance", "is_active": True, "age_days": 1},

    {"title": "Summer concert series in Riverside Park",
     "content": "Free concerts every Friday evening in July. Bring a blanket!",
     "category": "event", "is_active": True, "age_days": 3},

    {"title": "Heat advisory: cooling centers open",
     "content": "Cooling centers are open at the Central Public Library and all "
                "community centers until the advisory is lifted.",
     "category": "emergency", "is_active": True, "age_days": 5},

    {"title": "New online complaint portal",
     "content": "Residents can now file and track service complaints online.",
     "category": "general", "is_active": True, "age_days": 10},

    # Retired: only visible to administrators
    {"title": "Spring leaf collection schedule",
     "content": "Curbside leaf collection runs every Monday through April.",
     "category": "general", "is_active": False, "age_days": 60},
]


async def import_announcements(db, publisher_id: str) -> int:
    """Insert seed announcements published by ``publisher_id``."""
    print("\n  Importing announcements...")
    now = now_utc()
    for a in ANNOUNCEMENTS:
        created = now - timedelta(days=a["age_days"])
        doc = {k: v for k, v in a.items() if k != "age_days"}
        doc.update({"_id": new_id(), "published_by": publisher_id,
                    "created_at": created, "updated_at": created})
        db.announcements.insert_one(doc)
        print(f"    [{'active' if a['is_active'] else 'retired':7s}] {a['title']}")
    print(f"  => {len(ANNOUNCEMENTS)} announcements created")
    return len(ANNOUNCEMENTS)
