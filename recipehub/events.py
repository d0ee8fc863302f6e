from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from .errors import RecordNotFound, ValidationError
from .images import PendingUpload, delete_blobs, replace_single_image
from .models import EVENTS, Event, User
from .storage import ObjectStore, Row, TableStore

EVENT_IMAGE_FOLDER = "events"


def _parse_date(raw: Any, label: str, *, required: bool) -> Optional[str]:
    text = (raw or "").strip()
    if not text:
        if required:
            raise ValidationError(f"Please provide a {label.lower()}.")
        return None
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        raise ValidationError(f"{label} must be a date in YYYY-MM-DD format.") from None


@dataclass
class EventForm:
    title: str
    description: str
    start_date: str
    end_date: Optional[str] = None

    @classmethod
    def from_mapping(cls, form: Mapping[str, Any]) -> "EventForm":
        title = (form.get("title") or "").strip()
        if not title:
            raise ValidationError("Please provide an event title.")
        start = _parse_date(form.get("start_date"), "Start date", required=True)
        end = _parse_date(form.get("end_date"), "End date", required=False)
        if end is not None and end < start:
            raise ValidationError("The end date cannot be before the start date.")
        return cls(
            title=title,
            description=(form.get("description") or "").strip(),
            start_date=start,
            end_date=end,
        )

    def as_row(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "start_date": self.start_date,
            "end_date": self.end_date,
        }


class EventService:
    def __init__(self, tables: TableStore, objects: ObjectStore) -> None:
        self._tables = tables
        self._objects = objects

    def list_events(self) -> List[Event]:
        """Return events ordered by start date, soonest first."""

        rows = self._tables.select(EVENTS, order_by="start_date")
        return [Event.from_row(row) for row in rows]

    def get_event(self, event_id: str) -> Event:
        rows = self._tables.select(EVENTS, filters={"event_id": event_id}, limit=1)
        if not rows:
            raise RecordNotFound(f"Event '{event_id}' does not exist.")
        return Event.from_row(rows[0])

    def add_event(self, admin: User, form: EventForm, image: Optional[PendingUpload] = None) -> Event:
        values = form.as_row()
        values["admin_id"] = admin.user_id

        def save(image_url: Optional[str]) -> Row:
            return self._tables.insert(EVENTS, dict(values, image_url=image_url))

        row = replace_single_image(
            self._objects, folder=EVENT_IMAGE_FOLDER, current_url=None, upload=image, save=save
        )
        return Event.from_row(row)

    def update_event(
        self,
        event_id: str,
        form: EventForm,
        image: Optional[PendingUpload] = None,
        *,
        remove_image: bool = False,
    ) -> Event:
        current = self.get_event(event_id)

        def save(image_url: Optional[str]) -> None:
            self._tables.update(EVENTS, {"event_id": event_id}, dict(form.as_row(), image_url=image_url))

        replace_single_image(
            self._objects,
            folder=EVENT_IMAGE_FOLDER,
            current_url=current.image_url,
            upload=image,
            save=save,
            remove=remove_image,
        )
        return self.get_event(event_id)

    def delete_event(self, event_id: str) -> None:
        current = self.get_event(event_id)
        if current.image_url:
            delete_blobs(self._objects, [current.image_url])
        self._tables.delete(EVENTS, {"event_id": event_id})


__all__ = ["EventForm", "EventService"]
