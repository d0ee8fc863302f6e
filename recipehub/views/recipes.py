from __future__ import annotations

from flask import Blueprint, flash, redirect, render_template, request, url_for

from ..auth import current_context, login_required
from ..errors import BackendError, PermissionDenied, RecordNotFound, ValidationError
from ..images import ImageEdit, pending_uploads
from ..recipes import RecipeForm
from ..reviews import add_comment, get_user_rating, submit_rating
from ..saved import saved_recipe_ids_newest_first, toggle_saved
from . import catalog_service, recipe_service, redirect_back, tables

bp = Blueprint("recipes", __name__)


@bp.get("/")
def index() -> str:
    recipes = recipe_service().list_recipes()
    return render_template("recipe_list.html", recipes=recipes, title="Latest recipes")


@bp.get("/search")
def search() -> str:
    query = request.args.get("q", "").strip()
    recipes = recipe_service().search(query) if query else []
    return render_template("recipe_list.html", recipes=recipes, query=query, title="Search recipes")


@bp.get("/popular")
def popular() -> str:
    recipes = recipe_service().popular()
    return render_template("recipe_list.html", recipes=recipes, show_ratings=True, title="Popular recipes")


@bp.get("/categories/<category_id>")
def category(category_id: str) -> str:
    selected = catalog_service().get_category(category_id)
    recipes = recipe_service().list_by_category(category_id)
    return render_template("recipe_list.html", recipes=recipes, title=selected.category_name)


@bp.get("/recipes/<recipe_id>")
def view_recipe(recipe_id: str) -> str:
    try:
        recipe = recipe_service().get_recipe(recipe_id)
    except RecordNotFound:
        flash("Recipe not found.", "error")
        return redirect(url_for("recipes.index"))

    context = current_context()
    user_rating = None
    if context.user is not None:
        user_rating = get_user_rating(tables(), recipe_id, context.user.user_id)

    return render_template(
        "recipe_detail.html",
        recipe=recipe,
        user_rating=user_rating,
        is_saved=recipe_id in context.saved_ids,
        can_manage=context.can_manage(recipe.user_id),
        title=recipe.recipe_name,
    )


@bp.get("/recipes/new")
@login_required
def new_recipe() -> str:
    return _render_form(title="Add recipe", form=request.form, kept=[])


@bp.post("/recipes")
@login_required
def create_recipe():
    try:
        form = RecipeForm.from_mapping(request.form)
        images = pending_uploads(request.files.getlist("images"))
    except ValidationError as exc:
        flash(str(exc), "error")
        return redirect(url_for("recipes.new_recipe"))

    try:
        recipe = recipe_service().add_recipe(current_context(), form, images)
    except BackendError as exc:
        flash(f"Failed to save recipe: {exc}", "error")
        return redirect(url_for("recipes.new_recipe"))

    flash(f"Recipe '{recipe.recipe_name}' saved.", "success")
    return redirect(url_for("recipes.view_recipe", recipe_id=recipe.recipe_id))


@bp.get("/recipes/<recipe_id>/edit")
@login_required
def edit_recipe(recipe_id: str) -> str:
    try:
        recipe = recipe_service().get_recipe(recipe_id)
    except RecordNotFound:
        flash("Recipe not found.", "error")
        return redirect(url_for("recipes.index"))

    if not current_context().can_manage(recipe.user_id):
        raise PermissionDenied("You can only change your own recipes.")

    return _render_form(
        title=f"Edit {recipe.recipe_name}" if recipe.recipe_name else "Edit recipe",
        form=_form_values(recipe),
        kept=recipe.image_urls,
        recipe=recipe,
    )


@bp.post("/recipes/<recipe_id>")
@login_required
def update_recipe(recipe_id: str):
    service = recipe_service()
    try:
        recipe = service.get_recipe(recipe_id)
    except RecordNotFound:
        flash("Recipe not found.", "error")
        return redirect(url_for("recipes.index"))

    try:
        form = RecipeForm.from_mapping(request.form)
        edit = ImageEdit.from_form(
            recipe.image_urls,
            request.form.getlist("keep_image"),
            request.files.getlist("images"),
        )
    except ValidationError as exc:
        flash(str(exc), "error")
        return redirect(url_for("recipes.edit_recipe", recipe_id=recipe_id))

    try:
        updated = service.update_recipe(current_context(), recipe_id, form, edit)
    except BackendError as exc:
        # Show the form again with the user's edits so they can retry.
        flash(f"Failed to update recipe: {exc}", "error")
        page = _render_form(
            title=f"Edit {recipe.recipe_name}",
            form=request.form,
            kept=edit.kept,
            recipe=recipe,
        )
        return page, 502

    flash(f"Recipe '{updated.recipe_name}' updated.", "success")
    return redirect(url_for("recipes.view_recipe", recipe_id=recipe_id))


@bp.post("/recipes/<recipe_id>/delete")
@login_required
def delete_recipe(recipe_id: str):
    try:
        recipe_service().delete_recipe(current_context(), recipe_id)
    except RecordNotFound:
        flash("Recipe not found.", "error")
    except BackendError as exc:
        flash(f"Failed to delete recipe: {exc}", "error")
    else:
        flash("Recipe deleted.", "success")
    return redirect(url_for("recipes.my_recipes"))


@bp.post("/recipes/<recipe_id>/rating")
def rate_recipe(recipe_id: str):
    recipe_service().get_recipe(recipe_id)
    try:
        submit_rating(
            tables(),
            recipe_id=recipe_id,
            user=current_context().user,
            rating=request.form.get("rating"),
            comment=request.form.get("comment", ""),
        )
    except ValidationError as exc:
        flash(str(exc), "error")
    except BackendError as exc:
        flash(f"Failed to submit rating: {exc}", "error")
    else:
        flash("Thanks for rating this recipe!", "success")
    return redirect(url_for("recipes.view_recipe", recipe_id=recipe_id))


@bp.post("/recipes/<recipe_id>/comments")
def comment_recipe(recipe_id: str):
    recipe_service().get_recipe(recipe_id)
    try:
        add_comment(tables(), recipe_id=recipe_id, user=current_context().user, comment=request.form.get("comment", ""))
    except ValidationError as exc:
        flash(str(exc), "error")
    except BackendError as exc:
        flash(f"Failed to post comment: {exc}", "error")
    else:
        flash("Comment posted.", "success")
    return redirect(url_for("recipes.view_recipe", recipe_id=recipe_id))


@bp.post("/recipes/<recipe_id>/save")
def save_recipe(recipe_id: str):
    context = current_context()
    if context.is_authenticated:
        recipe_service().get_recipe(recipe_id)
    try:
        saved = toggle_saved(tables(), context, recipe_id)
    except BackendError as exc:
        flash(f"Failed to update saved recipes: {exc}", "error")
    else:
        flash("Recipe saved." if saved else "Recipe removed from saved recipes.", "success")
    return redirect_back(url_for("recipes.view_recipe", recipe_id=recipe_id))


@bp.get("/saved")
@login_required
def saved_recipes() -> str:
    user = current_context().user
    recipe_ids = saved_recipe_ids_newest_first(tables(), user.user_id)
    recipes = recipe_service().list_by_ids(recipe_ids)
    return render_template("recipe_list.html", recipes=recipes, title="Saved recipes")


@bp.get("/my-recipes")
@login_required
def my_recipes() -> str:
    recipes = recipe_service().list_by_owner(current_context().user.user_id)
    return render_template("recipe_list.html", recipes=recipes, show_manage=True, title="My recipes")


def _form_values(recipe) -> dict:
    return {
        "recipe_name": recipe.recipe_name,
        "description": recipe.description,
        "ingredients": recipe.ingredients,
        "instructions": recipe.instructions,
        "prep_time": recipe.prep_time if recipe.prep_time is not None else "",
        "cook_time": recipe.cook_time if recipe.cook_time is not None else "",
        "category_id": recipe.category_id or "",
        "occasion_id": recipe.occasion_id or "",
    }


def _render_form(*, title: str, form, kept, recipe=None) -> str:
    catalog = catalog_service()
    return render_template(
        "recipe_form.html",
        title=title,
        form=form,
        kept=kept,
        recipe=recipe,
        categories=catalog.list_categories(),
        occasions=catalog.list_occasions(),
    )
