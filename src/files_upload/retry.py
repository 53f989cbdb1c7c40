"""
Retry of failed uploads.

A failed file is re-armed and resubmitted. A failed folder retries only what
failed below it; if the folder's own creation failed, the whole subtree is
re-armed and the folder is submitted again, which re-submits its children
once it exists.
"""

from .aggregator import ProgressAggregator
from .client import logger
from .models import FolderItem, UploadItem, UploadStatus, own_unit_status
from .registry import UploadRegistry
from .upload_queue import UploadQueue


class RetryController:
    """Re-arms failed items and resubmits them to the queue."""

    def __init__(
        self,
        registry: UploadRegistry,
        aggregator: ProgressAggregator,
        queue: UploadQueue,
    ):
        self._registry = registry
        self._aggregator = aggregator
        self._queue = queue

    def retry(self, upload_id: str) -> int:
        """
        Retry a failed item.

        Returns the number of items re-armed; 0 if the item is not failed.
        """
        item = self._registry.get(upload_id)
        if item is None:
            raise ValueError(f"Upload '{upload_id}' not found")
        if item.status != UploadStatus.FAILED:
            logger.debug(f"Not retrying {upload_id}: status is {item.status.value}")
            return 0

        if item.parent_id is not None and item.parent_node_id is None:
            # the containing folder was never created, so retry starts there
            return self.retry(item.parent_id)

        if isinstance(item, FolderItem):
            count = self._retry_folder(item)
        else:
            count = self._retry_file(item)
        logger.info(f"Retrying {upload_id} ({item.name}): {count} items re-armed")
        return count

    def _retry_file(self, item: UploadItem) -> int:
        rearmed = self._rearm(item, progress=0)
        self._queue.submit(rearmed.id)
        return 1

    def _retry_folder(self, folder: FolderItem) -> int:
        if folder.node_id is None:
            return self._retry_uncreated_folder(folder)

        # the folder exists: retry failed descendants only
        count = 0
        for child_id in folder.children:
            child = self._registry.get(child_id)
            if child is None or child.status != UploadStatus.FAILED:
                continue
            if isinstance(child, FolderItem):
                count += self._retry_folder(child)
            else:
                count += self._retry_file(child)
        return count

    def _retry_uncreated_folder(self, folder: FolderItem) -> int:
        """Re-arm a folder whose creation failed, along with its whole subtree."""
        count = 0
        for item in self._registry.subtree(folder.id):
            if item.status != UploadStatus.FAILED:
                continue
            patch = {"progress": 0} if item.kind == "file" else {}
            if item.id != folder.id:
                # destination is unknown until the folder is created again
                patch["parent_node_id"] = None
            self._rearm(item, **patch)
            count += 1

        self._queue.submit(folder.id)
        return count

    def _rearm(self, item: UploadItem, **patch) -> UploadItem:
        previous = own_unit_status(item)
        rearmed = self._registry.update(
            item.id,
            status=UploadStatus.QUEUED,
            status_code=None,
            attempt=item.attempt + 1,
            **patch,
        )
        self._aggregator.on_terminal(rearmed, previous, UploadStatus.QUEUED)
        return rearmed
