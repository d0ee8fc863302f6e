from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import AuthRequired, PermissionDenied, RecordNotFound, ValidationError
from .images import (
    ImageEdit,
    PendingUpload,
    delete_blobs,
    reconcile_recipe_images,
    stored_image_urls,
    store_new_images,
)
from .models import RECIPE_IMAGES, RECIPES, REVIEWS, SAVED_RECIPES, USERS, Recipe, RecipeImage, User
from .reviews import average_rating, average_ratings, list_reviews
from .session import SessionContext
from .storage import ObjectStore, TableStore, sort_rows

logger = logging.getLogger(__name__)

POPULAR_LIMIT = 12
SEARCH_COLUMNS = ("recipe_name", "description", "ingredients")


@dataclass
class RecipeForm:
    """Validated recipe fields submitted by a user."""

    recipe_name: str
    description: str = ""
    ingredients: str = ""
    instructions: str = ""
    prep_time: Optional[int] = None
    cook_time: Optional[int] = None
    category_id: Optional[str] = None
    occasion_id: Optional[str] = None

    @classmethod
    def from_mapping(cls, form: Mapping[str, Any]) -> "RecipeForm":
        name = (form.get("recipe_name") or "").strip()
        if not name:
            raise ValidationError("Please provide a recipe name.")
        return cls(
            recipe_name=name,
            description=(form.get("description") or "").strip(),
            ingredients=_normalize_lines(form.get("ingredients") or ""),
            instructions=(form.get("instructions") or "").strip(),
            prep_time=_parse_minutes(form.get("prep_time"), "Prep time"),
            cook_time=_parse_minutes(form.get("cook_time"), "Cook time"),
            category_id=(form.get("category_id") or "").strip() or None,
            occasion_id=(form.get("occasion_id") or "").strip() or None,
        )

    def as_row(self) -> Dict[str, Any]:
        return {
            "recipe_name": self.recipe_name,
            "description": self.description,
            "ingredients": self.ingredients,
            "instructions": self.instructions,
            "prep_time": self.prep_time,
            "cook_time": self.cook_time,
            "category_id": self.category_id,
            "occasion_id": self.occasion_id,
        }


def _normalize_lines(text: str) -> str:
    return "\n".join(line.strip() for line in text.splitlines() if line.strip())


def _parse_minutes(raw: Any, label: str) -> Optional[int]:
    if raw is None or str(raw).strip() == "":
        return None
    try:
        minutes = int(str(raw).strip())
    except ValueError:
        raise ValidationError(f"{label} must be a whole number of minutes.") from None
    if minutes < 0:
        raise ValidationError(f"{label} cannot be negative.")
    return minutes


class RecipeService:
    def __init__(self, tables: TableStore, objects: ObjectStore, *, upload_workers: int = 4) -> None:
        self._tables = tables
        self._objects = objects
        self._upload_workers = upload_workers

    def list_recipes(self, *, limit: Optional[int] = None) -> List[Recipe]:
        """Return recipes ordered newest first, each with its images."""

        rows = self._tables.select(RECIPES, order_by="created_at", descending=True, limit=limit)
        return self._with_images(rows)

    def list_by_owner(self, user_id: str) -> List[Recipe]:
        rows = self._tables.select(RECIPES, filters={"user_id": user_id})
        return self._with_images(sort_rows(rows, "created_at", descending=True))

    def list_by_category(self, category_id: str) -> List[Recipe]:
        rows = self._tables.select(RECIPES, filters={"category_id": category_id})
        return self._with_images(rows)

    def list_by_ids(self, recipe_ids: Sequence[str]) -> List[Recipe]:
        recipes = []
        for recipe_id in recipe_ids:
            rows = self._tables.select(RECIPES, filters={"recipe_id": recipe_id}, limit=1)
            recipes.extend(self._with_images(rows))
        return recipes

    def search(self, query: str) -> List[Recipe]:
        """Case-insensitive substring match over name, description and ingredients."""

        needle = query.strip().casefold()
        if not needle:
            return []
        rows = [
            row
            for row in self._tables.select(RECIPES)
            if any(needle in str(row.get(column) or "").casefold() for column in SEARCH_COLUMNS)
        ]
        return self._with_images(rows)

    def popular(self, *, limit: int = POPULAR_LIMIT) -> List[Recipe]:
        averages = average_ratings(self._tables)
        recipes = self._with_images(self._tables.select(RECIPES))
        for recipe in recipes:
            recipe.average_rating = averages.get(recipe.recipe_id, 0.0)
        recipes.sort(key=lambda recipe: recipe.average_rating, reverse=True)
        return recipes[:limit]

    def get_recipe(self, recipe_id: str) -> Recipe:
        """Return a recipe with its images, author, reviews and average rating."""

        rows = self._tables.select(RECIPES, filters={"recipe_id": recipe_id}, limit=1)
        if not rows:
            raise RecordNotFound(f"Recipe '{recipe_id}' does not exist.")

        recipe = self._with_images(rows)[0]
        authors = self._tables.select(USERS, filters={"user_id": recipe.user_id}, limit=1)
        recipe.author = User.from_row(authors[0]) if authors else None
        recipe.reviews = list_reviews(self._tables, recipe_id)
        recipe.average_rating = average_rating(self._tables, recipe_id)
        return recipe

    def add_recipe(self, context: SessionContext, form: RecipeForm, images: Sequence[PendingUpload] = ()) -> Recipe:
        """Insert a recipe and store its images.

        When the images cannot be stored the new row is removed again, so a
        failed create leaves nothing behind.
        """

        owner = _require_user(context)
        values = form.as_row()
        values["user_id"] = owner.user_id
        row = self._tables.insert(RECIPES, values)

        if images:
            try:
                store_new_images(
                    self._tables,
                    self._objects,
                    recipe_id=row["recipe_id"],
                    owner_id=owner.user_id,
                    files=images,
                    workers=self._upload_workers,
                )
            except Exception:
                self._discard_new_recipe(row["recipe_id"])
                raise
        return self.get_recipe(row["recipe_id"])

    def update_recipe(self, context: SessionContext, recipe_id: str, form: RecipeForm, edit: ImageEdit) -> Recipe:
        """Converge the recipe's images to ``edit``, then update its fields.

        An edit that keeps every stored image and adds none skips the image
        sync entirely.
        """

        current = self._get_managed(context, recipe_id)
        if not edit.is_unchanged(stored_image_urls(self._tables, recipe_id)):
            reconcile_recipe_images(
                self._tables,
                self._objects,
                recipe_id=recipe_id,
                owner_id=current.user_id,
                kept_images=edit.kept,
                new_files=edit.pending,
                workers=self._upload_workers,
            )
        self._tables.update(RECIPES, {"recipe_id": recipe_id}, form.as_row())
        return self.get_recipe(recipe_id)

    def delete_recipe(self, context: SessionContext, recipe_id: str) -> None:
        """Remove a recipe together with its images, reviews and saves."""

        self._get_managed(context, recipe_id)
        self._cascade_delete(recipe_id)

    def delete_recipes_of_user(self, user_id: str) -> int:
        rows = self._tables.select(RECIPES, filters={"user_id": user_id})
        for row in rows:
            self._cascade_delete(row["recipe_id"])
        return len(rows)

    def _cascade_delete(self, recipe_id: str) -> None:
        delete_blobs(self._objects, stored_image_urls(self._tables, recipe_id))
        self._tables.delete(RECIPE_IMAGES, {"recipe_id": recipe_id})
        self._tables.delete(REVIEWS, {"recipe_id": recipe_id})
        self._tables.delete(SAVED_RECIPES, {"recipe_id": recipe_id})
        self._tables.delete(RECIPES, {"recipe_id": recipe_id})

    def _discard_new_recipe(self, recipe_id: str) -> None:
        try:
            delete_blobs(self._objects, stored_image_urls(self._tables, recipe_id))
            self._tables.delete(RECIPE_IMAGES, {"recipe_id": recipe_id})
            self._tables.delete(RECIPES, {"recipe_id": recipe_id})
        except Exception:
            logger.exception("Failed to remove recipe %s after its images could not be stored", recipe_id)

    def _get_managed(self, context: SessionContext, recipe_id: str) -> Recipe:
        _require_user(context)
        rows = self._tables.select(RECIPES, filters={"recipe_id": recipe_id}, limit=1)
        if not rows:
            raise RecordNotFound(f"Recipe '{recipe_id}' does not exist.")
        recipe = Recipe.from_row(rows[0])
        if not context.can_manage(recipe.user_id):
            raise PermissionDenied("You can only change your own recipes.")
        return recipe

    def _with_images(self, rows: Iterable[Mapping[str, Any]]) -> List[Recipe]:
        recipes = []
        for row in rows:
            recipe = Recipe.from_row(row)
            image_rows = sort_rows(
                self._tables.select(RECIPE_IMAGES, filters={"recipe_id": recipe.recipe_id}), "created_at"
            )
            recipe.images = [RecipeImage.from_row(image) for image in image_rows]
            recipes.append(recipe)
        return recipes


def _require_user(context: SessionContext) -> User:
    if context.user is None:
        raise AuthRequired("Please log in first.")
    return context.user


__all__ = ["RecipeForm", "RecipeService"]
