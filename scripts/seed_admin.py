import sys
from datetime import timedelta

from perfreview.database import init_db
from perfreview.identity import Identity, StaticIdentityProvider
from perfreview.schemas.common import utcnow
from perfreview.schemas.user import UserProfile, UserRole
from perfreview.services.cycle_service import CycleService
from perfreview.store import USERS, SqlDocumentStore


def seed(admin_email="admin@example.com"):
    init_db()
    store = SqlDocumentStore()

    # 1. Ensure the admin user exists with the admin role
    admin = Identity(id="admin", name="Admin User", email=admin_email, role=UserRole.ADMIN)
    existing = store.get(USERS, admin.id)
    if existing is None:
        profile = UserProfile(
            id=admin.id,
            email=admin.email,
            display_name=admin.name,
            role=UserRole.ADMIN,
            created_at=utcnow(),
        )
        store.put(USERS, profile.id, profile.to_document())
        print(f"Admin user {admin_email} created")
    else:
        store.update(USERS, admin.id, {"role": UserRole.ADMIN.value})
        print(f"Admin user {admin_email} already exists. Role reset to admin")

    # 2. Open a first cycle if there is none
    cycles = CycleService(store, identity=StaticIdentityProvider(admin))
    if not cycles.list_cycles():
        now = utcnow()
        cycle = cycles.create_cycle(
            "First review cycle",
            self_review_due=now + timedelta(days=14),
            peer_review_due=now + timedelta(days=21),
        )
        print(f"Created review cycle: {cycle.name} ({cycle.id})")


if __name__ == "__main__":
    seed(*sys.argv[1:2])
