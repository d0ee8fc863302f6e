from __future__ import annotations

from typing import Dict, List, Optional

from .errors import RecordNotFound, ValidationError
from .images import PendingUpload, delete_blobs, replace_single_image
from .models import CATEGORIES, EVENTS, RECIPES, REVIEWS, ROLES, SAVED_RECIPES, USERS, User
from .recipes import RecipeService
from .storage import ObjectStore, TableStore


class UserService:
    def __init__(self, tables: TableStore, objects: ObjectStore) -> None:
        self._tables = tables
        self._objects = objects

    def list_users(self) -> List[User]:
        rows = self._tables.select(USERS, order_by="created_at", descending=True)
        return [User.from_row(row) for row in rows]

    def get_user(self, user_id: str) -> User:
        rows = self._tables.select(USERS, filters={"user_id": user_id}, limit=1)
        if not rows:
            raise RecordNotFound(f"User '{user_id}' does not exist.")
        return User.from_row(rows[0])

    def update_user(self, user_id: str, *, user_name: str, email: str, role: str) -> User:
        """Administrative update of name, email and role."""

        self.get_user(user_id)
        user_name = user_name.strip()
        email = email.strip().lower()
        if not user_name or not email:
            raise ValidationError("Please provide a name and an email address.")
        if role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}.")

        clashes = [row for row in self._tables.select(USERS, filters={"email": email}) if row["user_id"] != user_id]
        if clashes:
            raise ValidationError("An account with this email already exists.")

        self._tables.update(USERS, {"user_id": user_id}, {"user_name": user_name, "email": email, "role": role})
        return self.get_user(user_id)

    def update_profile(
        self,
        user: User,
        *,
        user_name: str,
        about_me: str,
        avatar: Optional[PendingUpload] = None,
    ) -> User:
        user_name = user_name.strip()
        if not user_name:
            raise ValidationError("Please provide a name.")

        def save(image_url: Optional[str]) -> None:
            self._tables.update(
                USERS,
                {"user_id": user.user_id},
                {"user_name": user_name, "about_me": about_me.strip(), "image_url": image_url},
            )

        replace_single_image(
            self._objects,
            folder=f"avatars/{user.user_id}",
            current_url=user.image_url,
            upload=avatar,
            save=save,
        )
        return self.get_user(user.user_id)

    def delete_user(self, acting_admin: User, user_id: str) -> None:
        """Remove an account along with its recipes, reviews and saves."""

        if acting_admin.user_id == user_id:
            raise ValidationError("You cannot delete your own account.")
        user = self.get_user(user_id)

        RecipeService(self._tables, self._objects).delete_recipes_of_user(user_id)
        self._tables.delete(REVIEWS, {"user_id": user_id})
        self._tables.delete(SAVED_RECIPES, {"user_id": user_id})
        if user.image_url:
            delete_blobs(self._objects, [user.image_url])
        self._tables.delete(USERS, {"user_id": user_id})


def dashboard_counts(tables: TableStore) -> Dict[str, int]:
    return {
        "Users": tables.count(USERS),
        "Recipes": tables.count(RECIPES),
        "Events": tables.count(EVENTS),
        "Categories": tables.count(CATEGORIES),
    }


__all__ = ["UserService", "dashboard_counts"]
