from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional

from .errors import AuthRequired, ValidationError
from .models import REVIEWS, USERS, Review, User
from .storage import Row, TableStore

MIN_RATING = 1
MAX_RATING = 5

# Ratings are unique per (recipe, user); comment-only reviews are not.
RATING_KEY = ("recipe_id", "user_id")


def _mean(ratings: Iterable[int]) -> float:
    values = list(ratings)
    if not values:
        return 0.0
    return sum(values) / len(values)


def _ratings(rows: Iterable[Mapping]) -> List[int]:
    return [int(row["rating"]) for row in rows if row.get("rating") is not None]


def average_rating(tables: TableStore, recipe_id: str) -> float:
    """Mean rating of a recipe, recomputed from its reviews; 0 without any."""

    return _mean(_ratings(tables.select(REVIEWS, filters={"recipe_id": recipe_id})))


def average_ratings(tables: TableStore) -> Dict[str, float]:
    """Mean rating of every reviewed recipe, keyed by recipe id."""

    grouped: Dict[str, List[Row]] = defaultdict(list)
    for row in tables.select(REVIEWS):
        grouped[row.get("recipe_id", "")].append(row)
    return {recipe_id: _mean(_ratings(rows)) for recipe_id, rows in grouped.items()}


def parse_rating(raw: object) -> int:
    try:
        rating = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ValidationError("Please choose a rating between 1 and 5.") from None
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError("Please choose a rating between 1 and 5.")
    return rating


def submit_rating(
    tables: TableStore,
    *,
    recipe_id: str,
    user: Optional[User],
    rating: object,
    comment: str = "",
) -> Review:
    """Create or update the user's rating of a recipe.

    The row is keyed on the recipe and user ids, so a second submission
    overwrites ``rating``, ``comment`` and ``created_at`` of the first.
    """

    if user is None:
        raise AuthRequired("Please log in to rate this recipe.")
    value = parse_rating(rating)

    row = tables.upsert(
        REVIEWS,
        {
            "recipe_id": recipe_id,
            "user_id": user.user_id,
            "rating": value,
            "comment": comment.strip(),
            "created_at": datetime.now(timezone.utc),
        },
        on=RATING_KEY,
    )
    return Review.from_row(row)


def get_user_rating(tables: TableStore, recipe_id: str, user_id: str) -> Optional[Review]:
    rows = tables.select(REVIEWS, filters={"recipe_id": recipe_id, "user_id": user_id})
    rated = [row for row in rows if row.get("rating") is not None]
    return Review.from_row(rated[0]) if rated else None


def add_comment(tables: TableStore, *, recipe_id: str, user: Optional[User], comment: str) -> Review:
    if user is None:
        raise AuthRequired("You must be logged in to comment.")
    text = comment.strip()
    if not text:
        raise ValidationError("Please write a comment first.")

    row = tables.insert(
        REVIEWS,
        {"recipe_id": recipe_id, "user_id": user.user_id, "rating": None, "comment": text},
    )
    return Review.from_row(row)


def list_reviews(tables: TableStore, recipe_id: str) -> List[Review]:
    """Reviews of a recipe, newest first, with the author's display name."""

    rows = tables.select(REVIEWS, filters={"recipe_id": recipe_id})
    reviews = [Review.from_row(row) for row in rows]
    names: Dict[str, str] = {}
    for review in reviews:
        if review.user_id not in names:
            authors = tables.select(USERS, filters={"user_id": review.user_id}, limit=1)
            names[review.user_id] = authors[0].get("user_name", "") if authors else "Unknown User"
        review.user_name = names[review.user_id]

    reviews.sort(key=lambda review: review.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
    return reviews


__all__ = [
    "add_comment",
    "average_rating",
    "average_ratings",
    "get_user_rating",
    "list_reviews",
    "submit_rating",
]
