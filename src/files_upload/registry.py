"""
Upload registry.

The single source of truth for upload item state. Every component reads and
mutates items through it; subscribers are notified synchronously with the full
snapshot after each mutation.
"""

import dataclasses
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType

from .client import logger
from .models import UploadItem

Subscriber = Callable[[Mapping[str, UploadItem]], None]


class UploadRegistry:
    """Observable id -> UploadItem store."""

    def __init__(self):
        self._items: dict[str, UploadItem] = {}
        self._subscribers: list[Subscriber] = []

    def __contains__(self, upload_id: str) -> bool:
        return upload_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def get(self, upload_id: str | None) -> UploadItem | None:
        """Get an item by id."""
        if upload_id is None:
            return None
        return self._items.get(upload_id)

    def snapshot(self) -> Mapping[str, UploadItem]:
        """Read-only copy of the current state."""
        return MappingProxyType(dict(self._items))

    def upsert(self, items: Iterable[UploadItem]) -> None:
        """Insert or replace items in one batch."""
        for item in items:
            self._items[item.id] = item
        self._notify()

    def update(self, upload_id: str, **patch) -> UploadItem | None:
        """
        Apply a field patch to an item.

        Returns the new item, or None when the id is unknown (the item was
        removed while a callback was in flight).
        """
        current = self._items.get(upload_id)
        if current is None:
            logger.debug(f"Ignoring update for missing upload {upload_id}")
            return None
        updated = dataclasses.replace(current, **patch)
        self._items[upload_id] = updated
        self._notify()
        return updated

    def remove(self, upload_ids: Iterable[str]) -> list[str]:
        """Remove items by id, returning the ids that were present."""
        removed = [uid for uid in upload_ids if self._items.pop(uid, None) is not None]
        if removed:
            self._notify()
        return removed

    def subtree(self, upload_id: str) -> list[UploadItem]:
        """The item and all its descendants, parents before children."""
        result: list[UploadItem] = []
        stack = [upload_id]
        while stack:
            item = self._items.get(stack.pop())
            if item is None:
                continue
            result.append(item)
            if item.kind == "folder":
                stack.extend(reversed(item.children))
        return result

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback, returning a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.exception(f"Upload subscriber {callback!r} failed: {e}")
