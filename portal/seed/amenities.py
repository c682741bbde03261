# Seed data: City amenities (one or more of every amenity type)

from ..store import new_id, now_utc

AMENITIES = [
    {"name": "St. Mary's General Hospital", "type": "hospital",
     "address": "1200 Harbor Avenue", "contact": "555-0200",
     "operating_hours": "Open 24 hours",
     "description": "Full-service hospital with a 24-hour emergency department."},

    {"name": "Lincoln Elementary School", "type": "school",
     "address": "45 Maple Street", "contact": "555-0210",
     "operating_hours": "Mon-Fri 8AM-4PM", "description": None},

    {"name": "Riverside Park", "type": "park",
     "address": "River Road & 3rd Street", "contact": None,
     "operating_hours": "Daily 6AM-10PM",
     "description": "Walking trails, playground and a public boat launch."},

    {"name": "Central Public Library", "type": "library",
     "address": "300 Main Street", "contact": "555-0230",
     "operating_hours": "Mon-Sat 9AM-8PM",
     "description": "Free Wi-Fi, study rooms and a children's reading corner."},

    {"name": "Downtown Police Precinct", "type": "police_station",
     "address": "88 Court Street", "contact": "555-0240",
     "operating_hours": "Open 24 hours", "description": None},

    {"name": "Fire Station No. 4", "type": "fire_station",
     "address": "17 Oak Lane", "contact": "555-0250",
     "operating_hours": "Open 24 hours", "description": None},
]


async def import_amenities(db) -> int:
    """Insert seed amenities. Returns the number inserted."""
    print("\n  Importing amenities...")
    now = now_utc()
    docs = [{"_id": new_id(), **a, "created_at": now, "updated_at": now} for a in AMENITIES]
    db.amenities.insert_many(docs)
    for a in AMENITIES:
        print(f"    {a['name']:32s}  ({a['type']})")
    print(f"  => {len(docs)} amenities created")
    return len(docs)
