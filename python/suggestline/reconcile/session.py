"""
ReviewSession owns one section snapshot for a view and wires the pure
operations to the asynchronous collaborators: the tailoring store, the
suggestion source, and an optional score hook run after each save.

Writes use a reset-on-edit debounce: every mutation restarts the save
timer, so a burst of edits becomes one write. A write that has already
started always runs to completion, and close() flushes pending edits.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set, Tuple

import structlog

from suggestline.config import DEFAULT_SETTINGS, ReconcileSettings
from suggestline.ingest import parse_tailoring
from suggestline.models import ReviewAction, SectionState
from suggestline.reconcile import operations
from suggestline.reconcile.merge import live_markers, rebuild_after_fetch
from suggestline.regenerate import (
    RegenerationError,
    SuggestionSource,
    build_regeneration_request,
    clean_regenerated_text,
)
from suggestline.serialize import dump_records, serialize_section

logger = structlog.get_logger(__name__)


class TailoringStore(Protocol):
    async def fetch(self) -> Tuple[Any, Any]:
        """Returns (tailoring payload, saved records or None)."""
        ...

    async def save(self, records: List[Dict[str, Any]]) -> None: ...


class ReviewSession:
    def __init__(
        self,
        store: TailoringStore,
        source: Optional[SuggestionSource] = None,
        settings: ReconcileSettings = DEFAULT_SETTINGS,
        on_saved: Optional[Callable[[], Awaitable[None]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.source = source
        self.settings = settings
        self.on_saved = on_saved
        self._clock = clock
        self._section: Optional[SectionState] = None
        self._regenerated: Dict[str, float] = {}
        self._timer_task: Optional[asyncio.Task] = None
        self._write_tasks: Set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self.save_count = 0

    @property
    def section(self) -> Optional[SectionState]:
        return self._section

    @property
    def recently_regenerated(self) -> Dict[str, float]:
        """Live regeneration markers (bullet id -> expiry)."""
        live = live_markers(self._regenerated, self._clock())
        self._regenerated = {k: v for k, v in self._regenerated.items() if k in live}
        return dict(self._regenerated)

    @property
    def has_pending_save(self) -> bool:
        timer_pending = self._timer_task is not None and not self._timer_task.done()
        return timer_pending or bool(self._write_tasks)

    # --- Loading ---

    async def reload(self) -> Optional[SectionState]:
        """Fetches stored state and replaces the snapshot wholesale."""
        payload, saved_records = await self.store.fetch()
        fresh = parse_tailoring(payload)
        if fresh is None:
            logger.info("No suggestions available")
            self._section = None
            return None

        self._section = rebuild_after_fetch(
            fresh,
            self._section,
            saved_records,
            self.recently_regenerated,
            now=self._clock(),
        )
        return self._section

    # --- Mutations ---

    def _commit(self, section: SectionState) -> SectionState:
        self._section = section
        self._schedule_save()
        return section

    def _require_section(self) -> SectionState:
        if self._section is None:
            raise RuntimeError("No section loaded; call reload() first.")
        return self._section

    def accept_bullet(self, bullet_id: str) -> SectionState:
        return self._commit(operations.accept_bullet(self._require_section(), bullet_id))

    def reject_bullet(self, bullet_id: str) -> SectionState:
        return self._commit(operations.reject_bullet(self._require_section(), bullet_id))

    def update_bullet(self, bullet_id: str, text: str) -> SectionState:
        return self._commit(operations.update_bullet(self._require_section(), bullet_id, text))

    def accept_field(self, entry_id: str, key: str) -> SectionState:
        return self._commit(operations.accept_field(self._require_section(), entry_id, key))

    def reject_field(self, entry_id: str, key: str) -> SectionState:
        return self._commit(operations.reject_field(self._require_section(), entry_id, key))

    def update_field(self, entry_id: str, key: str, text: str) -> SectionState:
        return self._commit(operations.update_field(self._require_section(), entry_id, key, text))

    def apply_actions(self, actions: List[ReviewAction]) -> Tuple[int, int]:
        section, applied, skipped = operations.apply_review_actions(self._require_section(), actions)
        if applied:
            self._commit(section)
        return applied, skipped

    async def regenerate_bullet(self, bullet_id: str) -> SectionState:
        """
        Asks the suggestion source for a new version of one bullet. On any
        failure RegenerationError is raised and the snapshot is unchanged.
        """
        if self.source is None:
            raise RegenerationError("No suggestion source configured.")

        request = build_regeneration_request(self._require_section(), bullet_id)
        if request is None:
            raise RegenerationError(f"Unknown bullet: {bullet_id}")

        try:
            response = await self.source.regenerate(request)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Bullet regeneration failed", bullet_id=bullet_id, error=str(e))
            raise RegenerationError(f"Failed to regenerate bullet {bullet_id}: {e}") from e

        suggested = clean_regenerated_text(response.suggested)
        if not suggested:
            raise RegenerationError(f"Empty suggestion returned for bullet {bullet_id}")

        # Re-read the snapshot: it may have been replaced while we awaited.
        current = self._section
        if current is None:
            raise RegenerationError(f"Section was unloaded while regenerating bullet {bullet_id}")

        section = operations.update_bullet_suggestion(current, bullet_id, suggested)
        if section is current:
            logger.warning("Regenerated bullet no longer exists", bullet_id=bullet_id)
            return current

        self._regenerated[bullet_id] = self._clock() + self.settings.regeneration_marker_ttl
        return self._commit(section)

    # --- Persistence ---
    # The debounce timer only ever sleeps; the write itself runs in its own
    # task so a later edit can reset the timer without aborting a write.

    def _schedule_save(self):
        if self._timer_task is not None and not self._timer_task.done():
            self._timer_task.cancel()
        self._timer_task = asyncio.get_running_loop().create_task(self._debounce())

    async def _debounce(self):
        await asyncio.sleep(self.settings.save_delay)
        self._timer_task = None
        self._start_write()

    def _start_write(self):
        task = asyncio.get_running_loop().create_task(self._save_now())
        self._write_tasks.add(task)
        task.add_done_callback(self._write_tasks.discard)

    async def _save_now(self):
        # Writes are serialized; each one sends the snapshot current when it starts.
        async with self._write_lock:
            if self._section is None:
                return
            records = dump_records(serialize_section(self._section))
            try:
                await self.store.save(records)
            except Exception as e:
                logger.error("Failed to auto-save", error=str(e), exc_info=True)
                return

            self.save_count += 1
            if self.on_saved is not None:
                try:
                    await self.on_saved()
                except Exception as e:
                    logger.error("Post-save hook failed", error=str(e), exc_info=True)

    async def flush(self):
        """Writes any pending change now and waits for in-flight writes."""
        if self._timer_task is not None and not self._timer_task.done():
            self._timer_task.cancel()
            self._timer_task = None
            self._start_write()
        if self._write_tasks:
            await asyncio.gather(*list(self._write_tasks))

    async def close(self):
        """Flushes pending edits so nothing is lost when the view goes away."""
        await self.flush()
