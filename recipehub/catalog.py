"""Categories and occasions used to classify recipes."""

from __future__ import annotations

from typing import List, Optional

from .errors import RecordNotFound, ValidationError
from .images import PendingUpload, delete_blobs, replace_single_image
from .models import CATEGORIES, OCCASIONS, RECIPES, Category, Occasion
from .storage import ObjectStore, Row, TableStore


class CatalogService:
    def __init__(self, tables: TableStore, objects: ObjectStore) -> None:
        self._tables = tables
        self._objects = objects

    def list_categories(self) -> List[Category]:
        rows = self._tables.select(CATEGORIES, order_by="category_name")
        return [Category.from_row(row) for row in rows]

    def get_category(self, category_id: str) -> Category:
        rows = self._tables.select(CATEGORIES, filters={"category_id": category_id}, limit=1)
        if not rows:
            raise RecordNotFound(f"Category '{category_id}' does not exist.")
        return Category.from_row(rows[0])

    def add_category(self, name: str, image: Optional[PendingUpload] = None) -> Category:
        name = _required_name(name, "category")

        def save(image_url: Optional[str]) -> Row:
            return self._tables.insert(CATEGORIES, {"category_name": name, "image_url": image_url})

        row = replace_single_image(self._objects, folder="categories", current_url=None, upload=image, save=save)
        return Category.from_row(row)

    def update_category(
        self,
        category_id: str,
        name: str,
        image: Optional[PendingUpload] = None,
        *,
        remove_image: bool = False,
    ) -> Category:
        current = self.get_category(category_id)
        name = _required_name(name, "category")

        def save(image_url: Optional[str]) -> None:
            self._tables.update(
                CATEGORIES, {"category_id": category_id}, {"category_name": name, "image_url": image_url}
            )

        replace_single_image(
            self._objects,
            folder="categories",
            current_url=current.image_url,
            upload=image,
            save=save,
            remove=remove_image,
        )
        return self.get_category(category_id)

    def delete_category(self, category_id: str) -> None:
        """Delete a category; recipes that used it keep no category."""

        current = self.get_category(category_id)
        if current.image_url:
            delete_blobs(self._objects, [current.image_url])
        self._tables.update(RECIPES, {"category_id": category_id}, {"category_id": None})
        self._tables.update(OCCASIONS, {"category_id": category_id}, {"category_id": None})
        self._tables.delete(CATEGORIES, {"category_id": category_id})

    def list_occasions(self) -> List[Occasion]:
        rows = self._tables.select(OCCASIONS, order_by="name")
        return [Occasion.from_row(row) for row in rows]

    def get_occasion(self, occasion_id: str) -> Occasion:
        rows = self._tables.select(OCCASIONS, filters={"occasion_id": occasion_id}, limit=1)
        if not rows:
            raise RecordNotFound(f"Occasion '{occasion_id}' does not exist.")
        return Occasion.from_row(rows[0])

    def add_occasion(
        self, name: str, category_id: Optional[str] = None, image: Optional[PendingUpload] = None
    ) -> Occasion:
        values = {
            "name": _required_name(name, "occasion"),
            "category_id": self._existing_category(category_id),
        }

        def save(image_url: Optional[str]) -> Row:
            return self._tables.insert(OCCASIONS, dict(values, image_url=image_url))

        row = replace_single_image(self._objects, folder="occasions", current_url=None, upload=image, save=save)
        return Occasion.from_row(row)

    def update_occasion(
        self,
        occasion_id: str,
        name: str,
        category_id: Optional[str] = None,
        image: Optional[PendingUpload] = None,
        *,
        remove_image: bool = False,
    ) -> Occasion:
        current = self.get_occasion(occasion_id)
        values = {
            "name": _required_name(name, "occasion"),
            "category_id": self._existing_category(category_id),
        }

        def save(image_url: Optional[str]) -> None:
            self._tables.update(OCCASIONS, {"occasion_id": occasion_id}, dict(values, image_url=image_url))

        replace_single_image(
            self._objects,
            folder="occasions",
            current_url=current.image_url,
            upload=image,
            save=save,
            remove=remove_image,
        )
        return self.get_occasion(occasion_id)

    def delete_occasion(self, occasion_id: str) -> None:
        current = self.get_occasion(occasion_id)
        if current.image_url:
            delete_blobs(self._objects, [current.image_url])
        self._tables.update(RECIPES, {"occasion_id": occasion_id}, {"occasion_id": None})
        self._tables.delete(OCCASIONS, {"occasion_id": occasion_id})

    def _existing_category(self, category_id: Optional[str]) -> Optional[str]:
        category_id = (category_id or "").strip()
        if not category_id:
            return None
        return self.get_category(category_id).category_id


def _required_name(name: str, kind: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError(f"Please provide a {kind} name.")
    return name


__all__ = ["CatalogService"]
