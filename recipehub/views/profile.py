from __future__ import annotations

from flask import Blueprint, flash, redirect, render_template, request, url_for

from ..auth import current_context, login_required
from ..errors import BackendError, ValidationError
from . import auth_service, recipe_service, single_upload, user_service

bp = Blueprint("profile", __name__)


@bp.get("/profile")
@login_required
def profile() -> str:
    user = current_context().user
    recipes = recipe_service().list_by_owner(user.user_id)
    return render_template("profile.html", user=user, recipes=recipes, title="My profile")


@bp.post("/profile")
@login_required
def update_profile():
    user = current_context().user
    try:
        avatar = single_upload("avatar")
        updated = user_service().update_profile(
            user,
            user_name=request.form.get("user_name", ""),
            about_me=request.form.get("about_me", ""),
            avatar=avatar,
        )
    except ValidationError as exc:
        flash(str(exc), "error")
    except BackendError as exc:
        flash(f"Failed to update profile: {exc}", "error")
    else:
        flash(f"Profile of {updated.user_name} updated.", "success")
    return redirect(url_for("profile.profile"))


@bp.post("/profile/password")
@login_required
def update_password():
    new_password = request.form.get("new_password", "")
    if new_password != request.form.get("confirm_password", ""):
        flash("The new passwords do not match.", "error")
        return redirect(url_for("profile.profile"))

    try:
        auth_service().update_password(
            current_context().user,
            current_password=request.form.get("current_password", ""),
            new_password=new_password,
        )
    except ValidationError as exc:
        flash(str(exc), "error")
    except BackendError as exc:
        flash(f"Failed to update password: {exc}", "error")
    else:
        flash("Password updated.", "success")
    return redirect(url_for("profile.profile"))
