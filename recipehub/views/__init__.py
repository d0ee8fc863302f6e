"""Blueprints of the web layer and the helpers they share."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse

from flask import current_app, redirect, request

from ..auth import AuthService
from ..catalog import CatalogService
from ..events import EventService
from ..images import PendingUpload
from ..recipes import RecipeService
from ..storage import ObjectStore, TableStore
from ..users import UserService


def tables() -> TableStore:
    return current_app.config["TABLE_STORE"]


def objects() -> ObjectStore:
    return current_app.config["OBJECT_STORE"]


def auth_service() -> AuthService:
    settings = current_app.config["SETTINGS"]
    return AuthService(tables(), secret_key=current_app.secret_key, token_max_age=settings.session_token_max_age)


def recipe_service() -> RecipeService:
    settings = current_app.config["SETTINGS"]
    return RecipeService(tables(), objects(), upload_workers=settings.upload_workers)


def event_service() -> EventService:
    return EventService(tables(), objects())


def catalog_service() -> CatalogService:
    return CatalogService(tables(), objects())


def user_service() -> UserService:
    return UserService(tables(), objects())


def single_upload(field: str = "image") -> Optional[PendingUpload]:
    upload = request.files.get(field)
    if upload is None or not upload.filename:
        return None
    return PendingUpload.from_file_storage(upload)


def image_src(url: Optional[str]) -> str:
    """Template filter turning a stored image reference into a URL."""

    if not url:
        return ""
    if urlparse(url).scheme:
        return url
    return objects().public_url(url)


def redirect_back(default: str):
    """Redirect to the form's ``next`` field when it is a local path."""

    target = request.form.get("next") or request.args.get("next") or ""
    if _is_local_path(target):
        return redirect(target)
    return redirect(default)


def _is_local_path(target: str) -> bool:
    # Browsers read "\" as "/" and drop tabs and newlines, so "/\host" and
    # "/\t/host" both leave the site.
    if not target.startswith("/") or "\\" in target or not target.isprintable():
        return False
    return not target.startswith("//")


__all__ = [
    "auth_service",
    "catalog_service",
    "event_service",
    "image_src",
    "objects",
    "recipe_service",
    "redirect_back",
    "single_upload",
    "tables",
    "user_service",
]
