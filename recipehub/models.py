from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Mapping, Optional

RECIPES = "recipe"
RECIPE_IMAGES = "image_recipe"
REVIEWS = "reviews"
SAVED_RECIPES = "saved_recipes"
USERS = "users"
EVENTS = "event"
CATEGORIES = "category"
OCCASIONS = "occasion"

# Primary key column of every table.
PRIMARY_KEYS = {
    RECIPES: "recipe_id",
    RECIPE_IMAGES: "image_id",
    REVIEWS: "review_id",
    SAVED_RECIPES: "saved_id",
    USERS: "user_id",
    EVENTS: "event_id",
    CATEGORIES: "category_id",
    OCCASIONS: "occasion_id",
}

ROLE_USER = "User"
ROLE_ADMIN = "Admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


def _timestamp(value: Any) -> Optional[datetime]:
    return value if isinstance(value, datetime) else None


def _minutes(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


@dataclass
class RecipeImage:
    image_id: str
    recipe_id: str
    image_url: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RecipeImage":
        return cls(
            image_id=row.get("image_id", ""),
            recipe_id=row.get("recipe_id", ""),
            image_url=row.get("image_url", ""),
        )


@dataclass
class User:
    """A registered account as exposed to the web layer."""

    user_id: str
    user_name: str
    email: str
    role: str = ROLE_USER
    about_me: str = ""
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "User":
        return cls(
            user_id=row.get("user_id", ""),
            user_name=row.get("user_name", ""),
            email=row.get("email", ""),
            role=row.get("role") or ROLE_USER,
            about_me=row.get("about_me") or "",
            image_url=row.get("image_url"),
            created_at=_timestamp(row.get("created_at")),
        )


@dataclass
class Review:
    review_id: str
    recipe_id: str
    user_id: str
    rating: Optional[int] = None
    comment: str = ""
    created_at: Optional[datetime] = None
    user_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Review":
        rating = row.get("rating")
        return cls(
            review_id=row.get("review_id", ""),
            recipe_id=row.get("recipe_id", ""),
            user_id=row.get("user_id", ""),
            rating=int(rating) if rating is not None else None,
            comment=row.get("comment") or "",
            created_at=_timestamp(row.get("created_at")),
        )


@dataclass
class Recipe:
    """Domain object representing a stored recipe."""

    recipe_id: str
    user_id: str
    recipe_name: str
    description: str = ""
    ingredients: str = ""
    instructions: str = ""
    prep_time: Optional[int] = None
    cook_time: Optional[int] = None
    category_id: Optional[str] = None
    occasion_id: Optional[str] = None
    created_at: Optional[datetime] = None
    images: List[RecipeImage] = field(default_factory=list)
    author: Optional[User] = None
    reviews: List[Review] = field(default_factory=list)
    average_rating: float = 0.0

    @property
    def ingredient_list(self) -> List[str]:
        return [line.strip() for line in self.ingredients.splitlines() if line.strip()]

    @property
    def image_urls(self) -> List[str]:
        return [image.image_url for image in self.images]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Recipe":
        return cls(
            recipe_id=row.get("recipe_id", ""),
            user_id=row.get("user_id", ""),
            recipe_name=row.get("recipe_name", ""),
            description=row.get("description") or "",
            ingredients=row.get("ingredients") or "",
            instructions=row.get("instructions") or "",
            prep_time=_minutes(row.get("prep_time")),
            cook_time=_minutes(row.get("cook_time")),
            category_id=row.get("category_id"),
            occasion_id=row.get("occasion_id"),
            created_at=_timestamp(row.get("created_at")),
        )


@dataclass
class SavedRecipe:
    saved_id: str
    user_id: str
    recipe_id: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SavedRecipe":
        return cls(
            saved_id=row.get("saved_id", ""),
            user_id=row.get("user_id", ""),
            recipe_id=row.get("recipe_id", ""),
            created_at=_timestamp(row.get("created_at")),
        )


@dataclass
class Event:
    event_id: str
    admin_id: str
    title: str
    description: str = ""
    start_date: str = ""
    end_date: Optional[str] = None
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Event":
        return cls(
            event_id=row.get("event_id", ""),
            admin_id=row.get("admin_id", ""),
            title=row.get("title", ""),
            description=row.get("description") or "",
            start_date=row.get("start_date") or "",
            end_date=row.get("end_date") or None,
            image_url=row.get("image_url"),
            created_at=_timestamp(row.get("created_at")),
        )


@dataclass
class Category:
    category_id: str
    category_name: str
    image_url: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Category":
        return cls(
            category_id=row.get("category_id", ""),
            category_name=row.get("category_name", ""),
            image_url=row.get("image_url"),
        )


@dataclass
class Occasion:
    occasion_id: str
    name: str
    category_id: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Occasion":
        return cls(
            occasion_id=row.get("occasion_id", ""),
            name=row.get("name", ""),
            category_id=row.get("category_id") or None,
            image_url=row.get("image_url"),
        )


__all__ = [
    "Category",
    "Event",
    "Occasion",
    "PRIMARY_KEYS",
    "Recipe",
    "RecipeImage",
    "Review",
    "SavedRecipe",
    "User",
]
