"""Administrator back-office: dashboard, users, recipes, catalog and events."""

from __future__ import annotations

from typing import Callable

from flask import Blueprint, flash, redirect, render_template, request, url_for

from ..auth import admin_required, current_context
from ..errors import BackendError, RecordNotFound, ValidationError
from ..events import EventForm
from ..users import dashboard_counts
from . import catalog_service, event_service, recipe_service, single_upload, tables, user_service

bp = Blueprint("admin", __name__, url_prefix="/admin")


@bp.before_request
@admin_required
def require_admin() -> None:
    return None


def _apply(action: Callable[[], object], success: str, failure: str) -> None:
    try:
        action()
    except (ValidationError, RecordNotFound) as exc:
        flash(str(exc), "error")
    except BackendError as exc:
        flash(f"{failure}: {exc}", "error")
    else:
        flash(success, "success")


def _remove_image() -> bool:
    return request.form.get("remove_image") == "1"


@bp.get("/")
def dashboard() -> str:
    return render_template("admin/dashboard.html", counts=dashboard_counts(tables()), title="Dashboard")


@bp.get("/users")
def users() -> str:
    return render_template("admin/users.html", users=user_service().list_users(), title="Users")


@bp.post("/users/<user_id>")
def update_user(user_id: str):
    _apply(
        lambda: user_service().update_user(
            user_id,
            user_name=request.form.get("user_name", ""),
            email=request.form.get("email", ""),
            role=request.form.get("role", ""),
        ),
        "User updated.",
        "Failed to update user",
    )
    return redirect(url_for("admin.users"))


@bp.post("/users/<user_id>/delete")
def delete_user(user_id: str):
    _apply(
        lambda: user_service().delete_user(current_context().user, user_id),
        "User deleted.",
        "Failed to delete user",
    )
    return redirect(url_for("admin.users"))


@bp.get("/recipes")
def recipes() -> str:
    return render_template("admin/recipes.html", recipes=recipe_service().list_recipes(), title="Recipes")


@bp.post("/recipes/<recipe_id>/delete")
def delete_recipe(recipe_id: str):
    _apply(
        lambda: recipe_service().delete_recipe(current_context(), recipe_id),
        "Recipe deleted.",
        "Failed to delete recipe",
    )
    return redirect(url_for("admin.recipes"))


@bp.get("/categories")
def categories() -> str:
    return render_template("admin/categories.html", categories=catalog_service().list_categories(), title="Categories")


@bp.post("/categories")
def create_category():
    _apply(
        lambda: catalog_service().add_category(request.form.get("category_name", ""), single_upload()),
        "Category added.",
        "Failed to add category",
    )
    return redirect(url_for("admin.categories"))


@bp.post("/categories/<category_id>")
def update_category(category_id: str):
    _apply(
        lambda: catalog_service().update_category(
            category_id,
            request.form.get("category_name", ""),
            single_upload(),
            remove_image=_remove_image(),
        ),
        "Category updated.",
        "Failed to update category",
    )
    return redirect(url_for("admin.categories"))


@bp.post("/categories/<category_id>/delete")
def delete_category(category_id: str):
    _apply(
        lambda: catalog_service().delete_category(category_id),
        "Category deleted.",
        "Failed to delete category",
    )
    return redirect(url_for("admin.categories"))


@bp.get("/occasions")
def occasions() -> str:
    catalog = catalog_service()
    return render_template(
        "admin/occasions.html",
        occasions=catalog.list_occasions(),
        categories=catalog.list_categories(),
        title="Occasions",
    )


@bp.post("/occasions")
def create_occasion():
    _apply(
        lambda: catalog_service().add_occasion(
            request.form.get("name", ""),
            request.form.get("category_id"),
            single_upload(),
        ),
        "Occasion added.",
        "Failed to add occasion",
    )
    return redirect(url_for("admin.occasions"))


@bp.post("/occasions/<occasion_id>")
def update_occasion(occasion_id: str):
    _apply(
        lambda: catalog_service().update_occasion(
            occasion_id,
            request.form.get("name", ""),
            request.form.get("category_id"),
            single_upload(),
            remove_image=_remove_image(),
        ),
        "Occasion updated.",
        "Failed to update occasion",
    )
    return redirect(url_for("admin.occasions"))


@bp.post("/occasions/<occasion_id>/delete")
def delete_occasion(occasion_id: str):
    _apply(
        lambda: catalog_service().delete_occasion(occasion_id),
        "Occasion deleted.",
        "Failed to delete occasion",
    )
    return redirect(url_for("admin.occasions"))


@bp.get("/events")
def events() -> str:
    return render_template("admin/events.html", events=event_service().list_events(), title="Events")


@bp.post("/events")
def create_event():
    _apply(
        lambda: event_service().add_event(
            current_context().user,
            EventForm.from_mapping(request.form),
            single_upload(),
        ),
        "Event added.",
        "Failed to add event",
    )
    return redirect(url_for("admin.events"))


@bp.post("/events/<event_id>")
def update_event(event_id: str):
    _apply(
        lambda: event_service().update_event(
            event_id,
            EventForm.from_mapping(request.form),
            single_upload(),
            remove_image=_remove_image(),
        ),
        "Event updated.",
        "Failed to update event",
    )
    return redirect(url_for("admin.events"))


@bp.post("/events/<event_id>/delete")
def delete_event(event_id: str):
    _apply(
        lambda: event_service().delete_event(event_id),
        "Event deleted.",
        "Failed to delete event",
    )
    return redirect(url_for("admin.events"))
