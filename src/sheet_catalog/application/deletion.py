"""Song deletion with dependent-row and stored-file cleanup.

The backend offers no cross-table transaction, so deletion is a fixed
sequence of independently attempted steps. Only removing the song row is
required; every other step is best-effort and its failure is recorded
rather than raised. The outcome of each step is kept on the result so the
partial-failure policy can be inspected directly.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import unquote

from ..domain.ports import BlobStore, RelationalStore, Tables
from ..domain.value_objects import Variant
from ..events.domain_events import SongDeleted
from ..events.event_bus import EventBus
from ..exceptions import BackendError

logger = logging.getLogger(__name__)

NOT_DELETED_MESSAGE = "Song was not deleted: it does not exist or permission was denied"
NOT_FOUND_MESSAGE = "Song was not deleted: it does not exist"
PERMISSION_DENIED_MESSAGE = "Song was not deleted: permission denied"


def storage_object_name(url: str, bucket: str) -> Optional[str]:
    """Derive the blob-store object name from a stored file URL.

    The URL is decoded first so encoded characters do not break matching.
    The name is the path after ``/<bucket>/``; failing that, the last path
    segment. Query strings are dropped. Returns None when neither yields a
    usable name.
    """
    if not url:
        return None
    decoded = unquote(url)

    marker = f"/{bucket}/"
    index = decoded.find(marker)
    if index != -1:
        name = decoded[index + len(marker):].split("?", 1)[0]
        if name:
            return name

    name = decoded.split("?", 1)[0].split("/")[-1]
    return name or None


@dataclass(frozen=True)
class StepOutcome:
    """What happened in one deletion step."""
    name: str
    required: bool
    ok: bool
    detail: Optional[str] = None


@dataclass
class DeletionResult:
    """Aggregated result of a song deletion.

    ``success`` means the song row and its variant and favorite rows are
    gone. ``storage_warning`` is set when files may still need manual
    cleanup.
    """
    song_id: str
    success: bool = False
    error: Optional[str] = None
    storage_warning: Optional[str] = None
    removed_files: List[str] = field(default_factory=list)
    steps: List[StepOutcome] = field(default_factory=list)

    def step(self, name: str) -> Optional[StepOutcome]:
        return next((s for s in self.steps if s.name == name), None)

    @property
    def failed_steps(self) -> List[StepOutcome]:
        return [s for s in self.steps if not s.ok]


class DeletionReconciler:
    """Removes a song and everything that depends on it."""

    def __init__(self, store: RelationalStore, blobs: BlobStore, event_bus: Optional[EventBus] = None):
        self.store = store
        self.blobs = blobs
        self.event_bus = event_bus

    async def delete_song(self, song_id: str) -> DeletionResult:
        result = DeletionResult(song_id=song_id)

        # 1. Learn which files exist. A read failure must not block deletion.
        variants: List[Variant] = []
        try:
            rows = await self.store.select(Tables.VARIANTS, {"song_id": song_id})
            variants = [Variant.from_row(r) for r in rows]
            result.steps.append(StepOutcome("fetch_variants", False, True, f"{len(variants)} variant(s)"))
        except BackendError as e:
            logger.warning("Could not fetch variants of song %s, deleting without file cleanup: %s", song_id, e)
            result.steps.append(StepOutcome("fetch_variants", False, False, str(e)))

        # 2. Derive object names.
        names: List[str] = []
        skipped = 0
        for variant in variants:
            name = storage_object_name(variant.pdf_url, self.blobs.bucket)
            if name is None:
                skipped += 1
            elif name not in names:
                names.append(name)
        result.steps.append(StepOutcome("derive_object_names", False, True,
                                        f"{len(names)} object(s), {skipped} skipped"))

        # 3. Remove files. Failure only produces a warning.
        if names:
            try:
                await self.blobs.remove(names)
                result.removed_files = names
                result.steps.append(StepOutcome("remove_files", False, True, ", ".join(names)))
            except BackendError as e:
                logger.warning("Storage cleanup failed for song %s: %s", song_id, e)
                result.storage_warning = f"Files could not be removed from storage ({', '.join(names)}): {e}"
                result.steps.append(StepOutcome("remove_files", False, False, str(e)))
        else:
            result.steps.append(StepOutcome("remove_files", False, True, "nothing to remove"))

        # 4-5. Dependent rows.
        for step_name, table in (("delete_favorites", Tables.FAVORITES), ("delete_variants", Tables.VARIANTS)):
            try:
                removed = await self.store.delete(table, {"song_id": song_id})
                result.steps.append(StepOutcome(step_name, False, True, f"{removed} row(s)"))
            except BackendError as e:
                logger.warning("%s failed for song %s: %s", step_name, song_id, e)
                result.steps.append(StepOutcome(step_name, False, False, str(e)))

        # 6. The song row itself. Zero rows removed is a failure, not success.
        try:
            removed = await self.store.delete(Tables.SONGS, {"id": song_id})
        except BackendError as e:
            result.error = f"Failed to delete song: {e}"
            result.steps.append(StepOutcome("delete_song", True, False, str(e)))
            logger.error("Deleting song %s failed: %s", song_id, e)
            return result

        if removed == 0:
            result.error = await self._explain_zero_rows(song_id)
            result.steps.append(StepOutcome("delete_song", True, False, "0 rows removed"))
            logger.error("Deleting song %s removed no rows", song_id)
            return result

        result.steps.append(StepOutcome("delete_song", True, True, f"{removed} row(s)"))
        result.success = True
        logger.info("Deleted song %s (%d file(s) removed)", song_id, len(result.removed_files))

        if self.event_bus:
            await self.event_bus.publish(SongDeleted(
                song_id=song_id,
                removed_files=list(result.removed_files),
                storage_warning=result.storage_warning,
            ))
        return result

    async def _explain_zero_rows(self, song_id: str) -> str:
        """Tell a missing song apart from a delete the backend silently refused."""
        try:
            still_there = await self.store.select(Tables.SONGS, {"id": song_id})
        except BackendError as e:
            logger.debug("Could not re-read song %s after empty delete: %s", song_id, e)
            return NOT_DELETED_MESSAGE
        return PERMISSION_DENIED_MESSAGE if still_there else NOT_FOUND_MESSAGE
