from typing import List, Optional

from perfreview.core.exceptions import NotFoundError
from perfreview.identity import Identity
from perfreview.schemas.user import UserProfile, UserRole
from perfreview.services.base import BaseService
from perfreview.store import USERS


class UserService(BaseService):
    """Directory of known users (the `users` collection)."""

    def get_user(self, user_id: str) -> Optional[UserProfile]:
        data = self.store.get(USERS, user_id)
        return UserProfile.from_document(data) if data else None

    def ensure_user(self, identity: Identity) -> UserProfile:
        """
        Register a user the first time they are seen, with the default `team` role.
        Existing users keep their stored role.
        """
        existing = self.get_user(identity.id)
        if existing is not None:
            return existing

        profile = UserProfile(
            id=identity.id,
            email=identity.email,
            display_name=identity.name,
            role=UserRole.TEAM,
            created_at=self.now(),
        )
        self.store.put(USERS, profile.id, profile.to_document())
        self.log_info(f"Registered user {profile.id}")
        return profile

    def set_role(self, user_id: str, role: UserRole) -> UserProfile:
        admin = self.require_role(UserRole.ADMIN)
        profile = self.get_user(user_id)
        if profile is None:
            raise NotFoundError("User", user_id)
        role = UserRole(role)
        self.store.update(USERS, user_id, {"role": role.value})
        self.log_info(f"User {user_id} role changed to {role.value} by {admin.id}")
        return profile.model_copy(update={"role": role})

    def list_reviewer_candidates(self, user_id: str, search: Optional[str] = None) -> List[UserProfile]:
        """Everyone except `user_id`, optionally narrowed by name or email, sorted by name."""
        docs = self.store.query(USERS, filters=[("id", "!=", user_id)])
        users = [UserProfile.from_document(d) for d in docs]
        if search:
            needle = search.lower()
            users = [
                u for u in users
                if needle in (u.display_name or "").lower() or needle in (u.email or "").lower()
            ]
        return sorted(users, key=lambda u: ((u.display_name or u.email or u.id).lower(), u.id))
