from __future__ import annotations

from contextlib import contextmanager
from typing import Any, BinaryIO, Iterable, Iterator, List, Mapping, Optional, Sequence, Union
from urllib.parse import quote, unquote, urlparse

from google.api_core import exceptions as gcloud_exceptions
from google.cloud import firestore, storage
from google.cloud.firestore_v1.base_query import FieldFilter

from .config import Settings
from .errors import BackendError
from .models import PRIMARY_KEYS
from .storage import Filters, ObjectStore, Row, TableStore, conflict_key

PUBLIC_STORAGE_HOST = "https://storage.googleapis.com"


@contextmanager
def _backend_call(action: str) -> Iterator[None]:
    try:
        yield
    except gcloud_exceptions.GoogleAPIError as exc:
        raise BackendError(f"{action} failed: {exc}") from exc


class FirestoreTableStore(TableStore):
    """Table store backed by Cloud Firestore, one collection per table."""

    def __init__(self, *, project: Optional[str] = None, collection_prefix: str = "") -> None:
        self._project = project
        self._collection_prefix = collection_prefix
        self._client = firestore.Client(project=project)

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirestoreTableStore":
        return cls(project=settings.gcp_project, collection_prefix=settings.collection_prefix)

    def select(
        self,
        table: str,
        *,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        query = self._query(table, filters)
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)

        with _backend_call(f"Select from {table}"):
            return [self._to_row(table, doc) for doc in query.stream()]

    def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        doc_ref = self._collection(table).document()
        doc = dict(values)
        doc[PRIMARY_KEYS[table]] = doc_ref.id
        doc.setdefault("created_at", firestore.SERVER_TIMESTAMP)

        with _backend_call(f"Insert into {table}"):
            doc_ref.set(doc)
            snapshot = doc_ref.get()
        return self._to_row(table, snapshot)

    def upsert(self, table: str, values: Mapping[str, Any], *, on: Sequence[str]) -> Row:
        doc_ref = self._collection(table).document(conflict_key(values, on))
        doc = dict(values)
        doc[PRIMARY_KEYS[table]] = doc_ref.id
        doc.setdefault("created_at", firestore.SERVER_TIMESTAMP)

        with _backend_call(f"Upsert into {table}"):
            doc_ref.set(doc, merge=True)
            snapshot = doc_ref.get()
        return self._to_row(table, snapshot)

    def update(self, table: str, filters: Filters, values: Mapping[str, Any]) -> List[Row]:
        updated = []
        with _backend_call(f"Update {table}"):
            for doc in self._query(table, filters).stream():
                doc.reference.update(dict(values))
                updated.append(self._to_row(table, doc.reference.get()))
        return updated

    def delete(self, table: str, filters: Filters) -> int:
        removed = 0
        with _backend_call(f"Delete from {table}"):
            for doc in self._query(table, filters).stream():
                doc.reference.delete()
                removed += 1
        return removed

    def count(self, table: str, filters: Optional[Filters] = None) -> int:
        with _backend_call(f"Count {table}"):
            results = self._query(table, filters).count(alias="total").get()
        return int(results[0][0].value) if results else 0

    def _collection(self, table: str):
        return self._client.collection(f"{self._collection_prefix}{table}")

    def _query(self, table: str, filters: Optional[Filters]):
        query = self._collection(table)
        for column, value in (filters or {}).items():
            query = query.where(filter=FieldFilter(column, "==", value))
        return query

    def _to_row(self, table: str, snapshot) -> Row:
        row = snapshot.to_dict() or {}
        row[PRIMARY_KEYS[table]] = snapshot.id
        return row


class CloudStorageObjectStore(ObjectStore):
    """Object store backed by a single Cloud Storage bucket."""

    def __init__(self, *, bucket_name: str, project: Optional[str] = None) -> None:
        self._bucket_name = bucket_name
        self._client = storage.Client(project=project)
        self._bucket = self._client.bucket(bucket_name)
        self._url_prefix = f"{PUBLIC_STORAGE_HOST}/{bucket_name}/"

    @classmethod
    def from_settings(cls, settings: Settings) -> "CloudStorageObjectStore":
        if not settings.bucket_name:
            raise RuntimeError("GCS_BUCKET must be set to store images in Cloud Storage.")
        return cls(bucket_name=settings.bucket_name, project=settings.gcp_project)

    def upload(
        self,
        path: str,
        data: Union[bytes, BinaryIO],
        *,
        content_type: Optional[str] = None,
        cache_control: str = "max-age=3600",
        overwrite: bool = False,
    ) -> str:
        blob = self._bucket.blob(path)
        blob.cache_control = cache_control
        # Generation 0 only matches when no live object exists at the path.
        generation_match = None if overwrite else 0

        with _backend_call(f"Upload of '{path}'"):
            if isinstance(data, (bytes, bytearray)):
                blob.upload_from_string(
                    bytes(data), content_type=content_type, if_generation_match=generation_match
                )
            else:
                data.seek(0)
                blob.upload_from_file(
                    data, content_type=content_type, if_generation_match=generation_match
                )
        return self.public_url(path)

    def delete(self, paths: Iterable[str]) -> None:
        for path in paths:
            self._delete_blob_if_exists(path)

    def public_url(self, path: str) -> str:
        return f"{self._url_prefix}{quote(path)}"

    def path_from_url(self, url: str) -> Optional[str]:
        if url.startswith(self._url_prefix):
            return unquote(url[len(self._url_prefix):])
        if urlparse(url).scheme:
            return None
        return url.lstrip("/")

    def _delete_blob_if_exists(self, path: str) -> None:
        blob = self._bucket.blob(path)

        try:
            with _backend_call(f"Delete of '{path}'"):
                blob.delete()
        except BackendError as exc:
            if isinstance(exc.__cause__, gcloud_exceptions.NotFound):
                # The blob may already have been removed manually; ignore.
                return
            raise


__all__ = ["CloudStorageObjectStore", "FirestoreTableStore"]
