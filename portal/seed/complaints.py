# Seed data: Complaints
#
# Coverage matrix:
#   Statuses  : pending (3), in_progress (2), resolved (2), rejected (1)
#   Categories: all six represented
#   Priorities: low, medium, high
#   Special   : admin_response on resolved and rejected entries

from datetime import timedelta

from ..store import new_id, now_utc

COMPLAINTS = [
    # ---- citizen1 (5) ----
    {"title": "Pothole on Main Street",
     "description": "Large pothole in the right lane near the library entrance. Two cars have blown tyres this week.",
     "category": "infrastructure", "location": "Main Street near 300 Main",
     "status": "pending", "priority": "high", "admin_response": None,
     "citizen_key": "citizen1"},

    {"title": "Overflowing garbage bins",
     "description": "The public bins at the bus stop have not been emptied in over a week.",
     "category": "sanitation", "location": "Bus stop, 5th & Pine",
     "status": "in_progress", "priority": "medium",
     "admin_response": "Sanitation crew scheduled for Thursday.",
     "citizen_key": "citizen1"},

    {"title": "Broken streetlight",
     "description": "Streetlight has been out for two weeks, the corner is completely dark at night.",
     "category": "electricity", "location": "Corner of Oak Lane and 2nd",
     "status": "resolved", "priority": "medium",
     "admin_response": "Bulb and photocell replaced on Monday.",
     "citizen_key": "citizen1"},

    {"title": "Neighbor's loud music",
     "description": "Loud music every night after midnight.",
     "category": "other", "location": "12 Birch Court",
     "status": "rejected", "priority": "low",
     "admin_response": "Noise complaints are handled by the police non-emergency line.",
     "citizen_key": "citizen1"},

    {"title": "Traffic signal timing",
     "description": "Left-turn arrow is too short and causes backups during rush hour.",
     "category": "traffic", "location": "Harbor Avenue & 1st Street",
     "status": "pending", "priority": "low", "admin_response": None,
     "citizen_key": "citizen1"},

    # ---- citizen2 (3) ----
    {"title": "Low water pressure",
     "description": "Water pressure has been very low in the whole building since last month.",
     "category": "water", "location": "220 River Road",
     "status": "pending", "priority": "medium", "admin_response": None,
     "citizen_key": "citizen2"},

    {"title": "Damaged sidewalk",
     "description": "Tree roots have lifted the sidewalk slabs, a trip hazard for strollers.",
     "category": "infrastructure", "location": "45 Maple Street",
     "status": "in_progress", "priority": "high", "admin_response": None,
     "citizen_key": "citizen2"},

    {"title": "Missed recycling pickup",
     "description": "Recycling was not collected on our street this week.",
     "category": "sanitation", "location": "Elm Street",
     "status": "resolved", "priority": "low",
     "admin_response": "Collected on Friday. Sorry for the delay.",
     "citizen_key": "citizen2"},
]


async def import_complaints(db, user_ids: dict[str, str]) -> list[dict]:
    """Insert seed complaints, oldest first. Returns the inserted docs."""
    print("\n  Importing complaints...")
    now = now_utc()
    inserted: list[dict] = []
    for i, c in enumerate(COMPLAINTS):
        # Spread over the last few weeks so listing order is stable
        created = now - timedelta(days=len(COMPLAINTS) - i)
        updated = created if c["status"] == "pending" else created + timedelta(hours=6)
        doc = {k: v for k, v in c.items() if k != "citizen_key"}
        doc.update({"_id": new_id(), "citizen_id": user_ids[c["citizen_key"]],
                    "created_at": created, "updated_at": updated})
        db.complaints.insert_one(doc)
        inserted.append(doc)
        print(f"    [{c['status']:11s}] {c['title']}")
    print(f"  => {len(inserted)} complaints created")
    return inserted
