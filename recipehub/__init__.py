import logging
from typing import Optional

from flask import Flask, flash, g, redirect, render_template, request, url_for

from .config import Settings
from .errors import AuthRequired, BackendError, PermissionDenied, RecordNotFound
from .models import Recipe
from .storage import ObjectStore, TableStore

logger = logging.getLogger(__name__)


def create_app(
    tables: Optional[TableStore] = None,
    objects: Optional[ObjectStore] = None,
    settings: Optional[Settings] = None,
) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    tables, objects:
        Optional table and object stores. When ``None`` the application uses
        Cloud Firestore and Cloud Storage configured through environment
        variables.
    settings:
        Optional settings; read from the environment when ``None``.
    """

    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Flask(__name__)
    app.config.setdefault("MAX_CONTENT_LENGTH", settings.max_upload_mb * 1024 * 1024)
    app.secret_key = settings.secret_key

    if tables is None or objects is None:
        from .gcp_storage import CloudStorageObjectStore, FirestoreTableStore

        tables = tables or FirestoreTableStore.from_settings(settings)
        objects = objects or CloudStorageObjectStore.from_settings(settings)

    app.config["SETTINGS"] = settings
    app.config["TABLE_STORE"] = tables
    app.config["OBJECT_STORE"] = objects

    from .views import admin, auth, events, profile, recipes
    from .views import auth_service, image_src

    app.register_blueprint(auth.bp)
    app.register_blueprint(recipes.bp)
    app.register_blueprint(profile.bp)
    app.register_blueprint(events.bp)
    app.register_blueprint(admin.bp)
    app.add_template_filter(image_src)

    @app.before_request
    def load_session_context() -> None:
        try:
            g.context = auth_service().load_context()
        except BackendError:
            logger.exception("Could not load the current session")
            g.context = None

    @app.context_processor
    def inject_context() -> dict:
        from .auth import current_context

        return {"context": current_context()}

    @app.errorhandler(AuthRequired)
    def handle_auth_required(exc: AuthRequired):
        flash(str(exc), "error")
        return redirect(url_for("auth.login", next=request.path))

    @app.errorhandler(PermissionDenied)
    def handle_permission_denied(exc: PermissionDenied):
        return render_template("error.html", title="Not allowed", message=str(exc)), 403

    @app.errorhandler(RecordNotFound)
    def handle_not_found(exc: RecordNotFound):
        return render_template("error.html", title="Not found", message=str(exc)), 404

    @app.errorhandler(BackendError)
    def handle_backend_error(exc: BackendError):
        logger.error("Backend call failed during %s %s: %s", request.method, request.path, exc)
        return render_template("error.html", title="Something went wrong", message=str(exc)), 502

    return app


__all__ = ["create_app", "Recipe"]
