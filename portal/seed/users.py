# Seed data: Users (one administrator, three citizens)

from ..auth import AuthService
from ..models import Role, SignUp

# ---------------------------------------------------------------------------
# Raw user definitions
# ---------------------------------------------------------------------------
USERS = [
    # ---- Admin (1) ----
    {"key": "admin", "email": "admin@cityhall.gov", "password": "admin123",
     "full_name": "City Services Administrator", "phone": "555-0100", "role": "admin"},

    # ---- Citizens (3) ----
    {"key": "citizen1", "email": "maria.lopez@email.com", "password": "citizen123",
     "full_name": "Maria Lopez", "phone": "555-0141", "role": "citizen"},

    {"key": "citizen2", "email": "daniel.okafor@email.com", "password": "citizen123",
     "full_name": "Daniel Okafor", "phone": "555-0142", "role": "citizen"},

    # No complaints filed, used for empty-state checks
    {"key": "citizen3", "email": "ingrid.larsen@email.com", "password": "citizen123",
     "full_name": "Ingrid Larsen", "phone": None, "role": "citizen"},
]

# ---------------------------------------------------------------------------
# Import function
# ---------------------------------------------------------------------------
async def import_users(auth: AuthService) -> dict[str, str]:
    """Sign up every seed user through the auth service. Returns {key: profile id}."""
    print("\n  Importing seed users...")
    user_ids: dict[str, str] = {}
    for u in USERS:
        profile = await auth.sign_up(
            SignUp(email=u["email"], password=u["password"],
                   full_name=u["full_name"], phone=u["phone"]),
            role=Role(u["role"]))
        user_ids[u["key"]] = profile.id
        print(f"    {u['email']:28s}  ({u['role']})")
    print(f"  => {len(USERS)} users created")
    return user_ids
