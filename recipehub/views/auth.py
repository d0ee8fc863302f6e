from __future__ import annotations

from flask import Blueprint, flash, redirect, render_template, request, url_for

from ..auth import current_context
from ..errors import AuthRequired, BackendError, ValidationError
from . import auth_service, redirect_back

bp = Blueprint("auth", __name__)


@bp.get("/login")
def login() -> str:
    return render_template("login.html", title="Log in", next=request.args.get("next", ""))


@bp.post("/login")
def login_post():
    email = request.form.get("email", "").strip()
    password = request.form.get("password", "")

    if not email or not password:
        flash("Please enter your email and password.", "error")
        return redirect(url_for("auth.login"))

    try:
        user = auth_service().sign_in(email=email, password=password)
    except ValidationError as exc:
        flash(str(exc), "error")
        return redirect(url_for("auth.login"))
    except BackendError as exc:
        flash(f"Failed to log in: {exc}", "error")
        return redirect(url_for("auth.login"))

    flash(f"Welcome back, {user.user_name}!", "success")
    if user.is_admin:
        return redirect(url_for("admin.dashboard"))
    return redirect_back(url_for("recipes.index"))


@bp.get("/register")
def register() -> str:
    return render_template("register.html", title="Create account")


@bp.post("/register")
def register_post():
    try:
        user = auth_service().sign_up(
            user_name=request.form.get("user_name", ""),
            email=request.form.get("email", ""),
            password=request.form.get("password", ""),
        )
    except ValidationError as exc:
        flash(str(exc), "error")
        return redirect(url_for("auth.register"))
    except BackendError as exc:
        flash(f"Failed to create account: {exc}", "error")
        return redirect(url_for("auth.register"))

    token = auth_service().issue_token(user.user_id)
    return redirect(url_for("auth.callback", token=token))


@bp.get("/auth/callback")
def callback():
    token = request.args.get("token", "")
    try:
        user = auth_service().set_session_from_token(token)
    except AuthRequired as exc:
        flash(str(exc), "error")
        return redirect(url_for("auth.login"))

    flash(f"Signed in as {user.user_name}.", "success")
    if user.is_admin:
        return redirect(url_for("admin.dashboard"))
    return redirect(url_for("recipes.index"))


@bp.post("/logout")
def logout():
    if current_context().is_authenticated:
        auth_service().sign_out()
        flash("You have been logged out.", "success")
    return redirect(url_for("recipes.index"))
