from __future__ import annotations

from flask import Blueprint, render_template

from . import event_service

bp = Blueprint("events", __name__)


@bp.get("/events")
def list_events() -> str:
    return render_template("events.html", events=event_service().list_events(), title="Events")


@bp.get("/events/<event_id>")
def view_event(event_id: str) -> str:
    event = event_service().get_event(event_id)
    return render_template("event_detail.html", event=event, title=event.title)
