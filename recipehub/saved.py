from __future__ import annotations

from typing import List, Set

from .errors import AuthRequired
from .models import SAVED_RECIPES, SavedRecipe
from .session import SessionContext
from .storage import TableStore, sort_rows

SAVED_KEY = ("user_id", "recipe_id")


def load_saved_ids(tables: TableStore, user_id: str) -> Set[str]:
    rows = tables.select(SAVED_RECIPES, filters={"user_id": user_id})
    return {row["recipe_id"] for row in rows if row.get("recipe_id")}


def toggle_saved(tables: TableStore, context: SessionContext, recipe_id: str) -> bool:
    """Save or unsave ``recipe_id`` for the signed-in user.

    Returns ``True`` when the recipe is saved afterwards. The cached set on
    ``context`` is only updated after the backend call succeeded.
    """

    user = context.user
    if user is None:
        raise AuthRequired("Please log in to save recipes.")

    if recipe_id in context.saved_ids:
        tables.delete(SAVED_RECIPES, {"user_id": user.user_id, "recipe_id": recipe_id})
        context.saved_ids.discard(recipe_id)
        return False

    tables.upsert(SAVED_RECIPES, {"user_id": user.user_id, "recipe_id": recipe_id}, on=SAVED_KEY)
    context.saved_ids.add(recipe_id)
    return True


def list_saved(tables: TableStore, user_id: str) -> List[SavedRecipe]:
    """Saved recipes of a user, most recently saved first."""

    rows = sort_rows(tables.select(SAVED_RECIPES, filters={"user_id": user_id}), "created_at", descending=True)
    return [SavedRecipe.from_row(row) for row in rows if row.get("recipe_id")]


def saved_recipe_ids_newest_first(tables: TableStore, user_id: str) -> List[str]:
    return [saved.recipe_id for saved in list_saved(tables, user_id)]


__all__ = ["list_saved", "load_saved_ids", "saved_recipe_ids_newest_first", "toggle_saved"]
