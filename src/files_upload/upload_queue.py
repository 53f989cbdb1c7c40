"""
Bounded-concurrency admission for uploads.

At most ``limit`` file uploads hold a slot at once; the rest wait in FIFO
order of submission. Folder creation is a metadata call and starts without a
slot.
"""

import asyncio
import os
from collections import deque
from collections.abc import Callable, Iterable

from .client import logger
from .models import UploadItem, UploadStatus
from .registry import UploadRegistry

Runner = Callable[[UploadItem], asyncio.Task]


def limit_from_env(default: int = 3) -> int:
    """Read the queue ceiling from FILES_UPLOAD_LIMIT."""
    raw = os.environ.get("FILES_UPLOAD_LIMIT")
    if raw is None:
        return default
    try:
        limit = int(raw)
    except ValueError:
        limit = 0
    if limit < 1:
        logger.warning(f"Invalid FILES_UPLOAD_LIMIT '{raw}', defaulting to {default}")
        return default
    return limit


class UploadQueue:
    """FIFO admission controller with a hard ceiling on file uploads."""

    DEFAULT_LIMIT = 3

    def __init__(self, registry: UploadRegistry, limit: int | None = None):
        self._registry = registry
        self.limit = limit if limit is not None else limit_from_env(self.DEFAULT_LIMIT)
        self._waiting: deque[str] = deque()
        self._loading: set[str] = set()
        self._tasks: dict[str, asyncio.Task] = {}
        # set by the manager once the executor exists
        self.runner: Runner | None = None

    @property
    def loading_count(self) -> int:
        """File uploads currently holding a slot."""
        return len(self._loading)

    @property
    def waiting_ids(self) -> list[str]:
        return list(self._waiting)

    def holds_slot(self, upload_id: str) -> bool:
        return upload_id in self._loading

    def task_for(self, upload_id: str) -> asyncio.Task | None:
        return self._tasks.get(upload_id)

    def active_tasks(self) -> list[asyncio.Task]:
        return list(self._tasks.values())

    def submit(self, upload_id: str) -> bool:
        """
        Admit an item, or park it as Queued when all slots are busy.

        Returns True if the item started immediately. Items already loading,
        completed or waiting are left alone.
        """
        item = self._registry.get(upload_id)
        if item is None:
            logger.debug(f"Cannot submit missing upload {upload_id}")
            return False
        if item.status in (UploadStatus.LOADING, UploadStatus.COMPLETED):
            return False
        if upload_id in self._waiting:
            return False
        if not _can_be_processed(item):
            raise ValueError(f"Upload {upload_id} has no destination node yet")

        if item.kind == "folder":
            self._start(item)
            return True

        if len(self._loading) < self.limit:
            self._loading.add(upload_id)
            self._start(item)
            return True

        if item.status != UploadStatus.QUEUED:
            self._registry.update(upload_id, status=UploadStatus.QUEUED)
        self._waiting.append(upload_id)
        logger.debug(f"Queued {upload_id} ({len(self._waiting)} waiting)")
        return False

    def release(self, upload_id: str) -> None:
        """Free the slot held by an item and promote the oldest waiting one."""
        if upload_id not in self._loading:
            # folders and stale callbacks never held a slot
            return
        self._loading.discard(upload_id)
        self._promote()

    def cancel(self, upload_ids: Iterable[str]) -> list[str]:
        """
        Abort in-flight items and drop waiting ones.

        Waiting items are removed without a release. Loading items have
        their task cancelled and their slot released exactly once.
        """
        ids = set(upload_ids)
        cancelled = [uid for uid in self._waiting if uid in ids]
        if cancelled:
            self._waiting = deque(uid for uid in self._waiting if uid not in ids)

        for upload_id in ids:
            task = self._tasks.pop(upload_id, None)
            if task is not None and not task.done():
                task.cancel()
                cancelled.append(upload_id)
                logger.info(f"Aborted upload {upload_id}")

        for upload_id in ids:
            self.release(upload_id)
        return cancelled

    def _promote(self) -> None:
        while len(self._loading) < self.limit and self._waiting:
            upload_id = self._waiting.popleft()
            item = self._registry.get(upload_id)
            if item is None or item.status != UploadStatus.QUEUED:
                continue
            self._loading.add(upload_id)
            self._start(item)

    def _start(self, item: UploadItem) -> None:
        if self.runner is None:
            raise RuntimeError("UploadQueue has no runner")
        started = self._registry.update(item.id, status=UploadStatus.LOADING)
        task = self.runner(started)
        self._tasks[item.id] = task

        def forget(done: asyncio.Task, upload_id: str = item.id) -> None:
            if self._tasks.get(upload_id) is done:
                del self._tasks[upload_id]

        task.add_done_callback(forget)
        logger.debug(f"Started {item.kind} upload {item.id} ({len(self._loading)}/{self.limit} slots)")


def _can_be_processed(item: UploadItem) -> bool:
    if item.kind == "file" and item.is_version:
        return item.node_id is not None
    return item.parent_node_id is not None
