"""
Incremental folder progress aggregation.

Each folder's counters are adjusted by following ``parent_id`` pointers
through the registry, so a change costs O(depth) and never requires a full
recount.
"""

import dataclasses

from .client import logger
from .models import FolderItem, UploadItem, UploadStatus, derive_folder_status
from .registry import UploadRegistry


class ProgressAggregator:
    """Keeps folder completed/failed/content counters consistent."""

    def __init__(self, registry: UploadRegistry):
        self._registry = registry

    def on_terminal(
        self,
        item: UploadItem,
        previous: UploadStatus,
        new: UploadStatus,
    ) -> None:
        """
        Account for a transition of the item's own unit.

        ``previous`` and ``new`` are own-unit statuses: for a folder they
        describe its creation, not its aggregate status. A folder's counters
        include itself, so a folder is adjusted along with its ancestors.
        """
        completed = _unit(new, UploadStatus.COMPLETED) - _unit(previous, UploadStatus.COMPLETED)
        failed = _unit(new, UploadStatus.FAILED) - _unit(previous, UploadStatus.FAILED)
        if completed == 0 and failed == 0:
            return

        if item.kind == "folder":
            self._apply(item.id, completed=completed, failed=failed)
        self._walk_ancestors(item, completed=completed, failed=failed)

    def on_remove(self, subtree_root: UploadItem) -> tuple[int, int, int]:
        """
        Subtract a subtree about to be removed from every strict ancestor.

        Returns the (items, completed, failed) totals that were removed.
        """
        if subtree_root.kind == "folder":
            totals = (
                subtree_root.content_count,
                subtree_root.completed_count,
                subtree_root.failed_count,
            )
        else:
            totals = (
                1,
                int(subtree_root.status == UploadStatus.COMPLETED),
                int(subtree_root.status == UploadStatus.FAILED),
            )
        items, completed, failed = totals
        self._walk_ancestors(subtree_root, completed=-completed, failed=-failed, content=-items)
        logger.debug(
            f"Removed subtree {subtree_root.id}: {items} items, "
            f"{completed} completed, {failed} failed"
        )
        return totals

    def _walk_ancestors(
        self,
        item: UploadItem,
        completed: int = 0,
        failed: int = 0,
        content: int = 0,
    ) -> None:
        child = item
        parent = self._registry.get(child.parent_id)
        # a child already detached from its parent (aborted) no longer counts
        while isinstance(parent, FolderItem) and child.id in parent.children:
            updated = self._apply(parent.id, completed, failed, content)
            child = updated
            parent = self._registry.get(child.parent_id)

    def _apply(
        self,
        folder_id: str,
        completed: int = 0,
        failed: int = 0,
        content: int = 0,
    ) -> FolderItem:
        folder = self._registry.get(folder_id)
        completed_count = _clamp(folder.completed_count + completed, folder.content_count + content)
        failed_count = _clamp(folder.failed_count + failed, folder.content_count + content)
        counted = dataclasses.replace(
            folder,
            content_count=folder.content_count + content,
            completed_count=completed_count,
            failed_count=failed_count,
        )
        return self._registry.update(
            folder_id,
            content_count=counted.content_count,
            completed_count=completed_count,
            failed_count=failed_count,
            status=derive_folder_status(counted),
        )


def _unit(status: UploadStatus, target: UploadStatus) -> int:
    return 1 if status == target else 0


def _clamp(value: int, upper: int) -> int:
    return max(0, min(value, upper))
