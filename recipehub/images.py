"""Recipe image uploads and reconciliation.

Editing a recipe converges the stored images (blobs in the object store plus
``image_recipe`` rows) to the set the user asked for: the original images they
kept followed by any newly selected files. The steps are not atomic. When a
run fails, blobs it uploaded but never referenced from a row are deleted again
so that failed edits do not leave orphaned uploads behind; blobs of removed
images are deleted best-effort and may be orphaned if that deletion fails.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .errors import ValidationError
from .models import RECIPE_IMAGES
from .storage import ObjectStore, TableStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALLOWED_IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}
UNSUPPORTED_IMAGE_MESSAGE = "Unsupported image format. Allowed formats: PNG, JPG, JPEG, GIF, WEBP."


def allowed_image(filename: Optional[str]) -> bool:
    if not filename or "." not in filename:
        return False
    ext = filename.rsplit(".", 1)[1].lower()
    return ext in ALLOWED_IMAGE_EXTENSIONS


@dataclass
class PendingUpload:
    """A locally selected file that has not been stored yet."""

    filename: str
    data: bytes
    content_type: Optional[str] = None

    @classmethod
    def from_file_storage(cls, upload: FileStorage) -> "PendingUpload":
        if not allowed_image(upload.filename):
            raise ValidationError(UNSUPPORTED_IMAGE_MESSAGE)
        upload.stream.seek(0)
        return cls(filename=upload.filename or "", data=upload.stream.read(), content_type=upload.mimetype)


def pending_uploads(files: Iterable[FileStorage]) -> List[PendingUpload]:
    """Convert submitted files, skipping empty file inputs."""

    return [PendingUpload.from_file_storage(upload) for upload in files if upload and upload.filename]


@dataclass
class ImageEdit:
    """Image state of a recipe being edited.

    ``kept`` holds the original image URLs the user did not remove and
    ``pending`` the files selected during this edit. Each list is indexed on
    its own, so removing a preview never shifts the other list.
    """

    kept: List[str] = field(default_factory=list)
    pending: List[PendingUpload] = field(default_factory=list)

    @classmethod
    def from_originals(cls, originals: Sequence[str]) -> "ImageEdit":
        return cls(kept=list(originals))

    @classmethod
    def from_form(
        cls,
        originals: Sequence[str],
        kept_values: Iterable[str],
        files: Iterable[FileStorage],
    ) -> "ImageEdit":
        """Build the edit from a submitted form.

        Only URLs that belong to ``originals`` are kept, in their original
        order; anything else in ``kept_values`` is ignored.
        """

        wanted = set(kept_values)
        edit = cls.from_originals(originals)
        for index in reversed(range(len(edit.kept))):
            if edit.kept[index] not in wanted:
                edit.remove_kept(index)
        edit.add_files(pending_uploads(files))
        return edit

    def add_files(self, uploads: Iterable[PendingUpload]) -> None:
        names = {pending.filename for pending in self.pending}
        for upload in uploads:
            if upload.filename in names:
                continue
            names.add(upload.filename)
            self.pending.append(upload)

    def remove_kept(self, index: int) -> str:
        return self.kept.pop(index)

    def is_unchanged(self, originals: Sequence[str]) -> bool:
        return not self.pending and set(self.kept) == set(originals)


@dataclass
class ImageSyncResult:
    desired: List[str]
    uploaded: List[str]
    deleted: List[str]
    inserted: List[str]


def recipe_image_path(owner_id: str, recipe_id: str, filename: str) -> str:
    safe = secure_filename(filename) or "image"
    return f"recipes/{owner_id}/{recipe_id}/{uuid.uuid4().hex}-{safe}"


def upload_files(
    objects: ObjectStore,
    files: Sequence[PendingUpload],
    path_for: Callable[[PendingUpload], str],
    *,
    workers: int = 4,
) -> List[str]:
    """Upload ``files`` concurrently and return their URLs in input order.

    Either every file is stored or, after a failure, the successful uploads
    are deleted again and the first error is raised.
    """

    if not files:
        return []

    def _upload(pending: PendingUpload) -> str:
        return objects.upload(path_for(pending), pending.data, content_type=pending.content_type)

    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(files)))) as pool:
        futures = [pool.submit(_upload, pending) for pending in files]

    uploaded: List[str] = []
    errors: List[BaseException] = []
    for future in futures:
        error = future.exception()
        if error is None:
            uploaded.append(future.result())
        else:
            errors.append(error)

    if errors:
        logger.warning("Upload of %d of %d images failed; removing the rest", len(errors), len(files))
        delete_blobs(objects, uploaded)
        raise errors[0]
    return uploaded


def delete_blobs(objects: ObjectStore, urls: Iterable[str]) -> None:
    """Delete the blobs behind ``urls`` best-effort. Failures are logged."""

    for url in urls:
        path = objects.path_from_url(url)
        if path is None:
            logger.warning("Not deleting %s: it is not stored in this object store", url)
            continue
        try:
            objects.delete([path])
        except Exception:
            logger.exception("Failed to delete blob %s", path)


def replace_single_image(
    objects: ObjectStore,
    *,
    folder: str,
    current_url: Optional[str],
    upload: Optional[PendingUpload],
    save: Callable[[Optional[str]], T],
    remove: bool = False,
) -> T:
    """Store the image of an entity that holds at most one image.

    A new upload replaces the current image; ``remove`` without an upload
    clears it. ``save`` writes the resulting URL to the entity's row. The
    new blob is deleted again when ``save`` raises, and the previous blob is
    only deleted (best-effort) once ``save`` succeeded.
    """

    if upload is not None:
        safe = secure_filename(upload.filename) or "image"
        new_url = objects.upload(f"{folder}/{uuid.uuid4().hex}-{safe}", upload.data, content_type=upload.content_type)
    elif remove:
        new_url = None
    else:
        new_url = current_url

    try:
        result = save(new_url)
    except Exception:
        if upload is not None:
            logger.warning("Saving the image of %s failed; removing the new upload", folder)
            delete_blobs(objects, [new_url])
        raise

    if current_url and current_url != new_url:
        delete_blobs(objects, [current_url])
    return result


def stored_image_urls(tables: TableStore, recipe_id: str) -> List[str]:
    rows = tables.select(RECIPE_IMAGES, filters={"recipe_id": recipe_id})
    return [row["image_url"] for row in rows if row.get("image_url")]


def store_new_images(
    tables: TableStore,
    objects: ObjectStore,
    *,
    recipe_id: str,
    owner_id: str,
    files: Sequence[PendingUpload],
    workers: int = 4,
) -> List[str]:
    """Upload ``files`` for a new recipe and reference them from rows."""

    return reconcile_recipe_images(
        tables,
        objects,
        recipe_id=recipe_id,
        owner_id=owner_id,
        kept_images=[],
        new_files=files,
        workers=workers,
    ).inserted


def reconcile_recipe_images(
    tables: TableStore,
    objects: ObjectStore,
    *,
    recipe_id: str,
    owner_id: str,
    kept_images: Sequence[str],
    new_files: Sequence[PendingUpload],
    workers: int = 4,
) -> ImageSyncResult:
    """Converge the stored images of ``recipe_id`` to ``kept_images`` plus ``new_files``.

    The rows are diffed against a fresh read of ``image_recipe`` rather than
    the pre-edit snapshot. No lock is taken; a concurrent edit of the same
    recipe can still interleave.
    """

    uploaded = upload_files(
        objects,
        new_files,
        lambda pending: recipe_image_path(owner_id, recipe_id, pending.filename),
        workers=workers,
    )
    desired = list(kept_images) + uploaded
    inserted: List[str] = []

    try:
        current = stored_image_urls(tables, recipe_id)
        desired_set = set(desired)
        current_set = set(current)

        to_delete = [url for url in current if url not in desired_set]
        if to_delete:
            delete_blobs(objects, to_delete)
            for url in to_delete:
                tables.delete(RECIPE_IMAGES, {"recipe_id": recipe_id, "image_url": url})

        for url in desired:
            if url in current_set or url in inserted:
                continue
            tables.insert(RECIPE_IMAGES, {"recipe_id": recipe_id, "image_url": url})
            inserted.append(url)
    except Exception:
        orphans = [url for url in uploaded if url not in inserted]
        if orphans:
            logger.warning("Image sync for recipe %s failed; removing %d unreferenced uploads", recipe_id, len(orphans))
            delete_blobs(objects, orphans)
        raise

    logger.info(
        "Synced images for recipe %s: %d uploaded, %d removed, %d rows added",
        recipe_id,
        len(uploaded),
        len(to_delete),
        len(inserted),
    )
    return ImageSyncResult(desired=desired, uploaded=uploaded, deleted=to_delete, inserted=inserted)


__all__ = [
    "ALLOWED_IMAGE_EXTENSIONS",
    "ImageEdit",
    "ImageSyncResult",
    "PendingUpload",
    "allowed_image",
    "delete_blobs",
    "pending_uploads",
    "reconcile_recipe_images",
    "recipe_image_path",
    "replace_single_image",
    "store_new_images",
    "upload_files",
]
