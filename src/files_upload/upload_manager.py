"""
Upload manager for the Files MCP Server.

Wires the registry, queue, executor, aggregator and retry controller together
and exposes the commands the tools call.
"""

import asyncio
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path

from .aggregator import ProgressAggregator
from .client import FilesClient, logger
from .errors import QuotaExceeded
from .executor import UploadExecutor
from .expander import TreeExpander, new_upload_id
from .models import FileItem, FolderItem, UploadItem, UploadStatus
from .registry import UploadRegistry
from .retry import RetryController
from .sync import FolderContentSync, FolderListingCache
from .upload_queue import UploadQueue


class UploadManager:
    """
    Manages background uploads from the local system to the Files service.

    Uploads run asynchronously so callers can keep working while files and
    folder trees upload in the background. State lives in a single
    UploadRegistry that can be observed with ``subscribe``.
    """

    def __init__(
        self,
        client: FilesClient | None = None,
        limit: int | None = None,
        folder_sync: FolderContentSync | None = None,
    ):
        self.client = client or FilesClient()
        self.folder_sync = folder_sync if folder_sync is not None else FolderListingCache()
        self.registry = UploadRegistry()
        self.queue = UploadQueue(self.registry, limit)
        self.aggregator = ProgressAggregator(self.registry)
        self.executor = UploadExecutor(
            self.registry,
            self.client,
            self.aggregator,
            self.queue,
            self.folder_sync,
        )
        self.queue.runner = self.executor.start
        self.expander = TreeExpander(self.registry, self.queue)
        self.retry_controller = RetryController(self.registry, self.aggregator, self.queue)

    # Read side

    def get(self, upload_id: str) -> UploadItem | None:
        """Get an upload item by ID."""
        return self.registry.get(upload_id)

    def snapshot(self) -> Mapping[str, UploadItem]:
        """All upload items keyed by ID."""
        return self.registry.snapshot()

    def subscribe(
        self, callback: Callable[[Mapping[str, UploadItem]], None]
    ) -> Callable[[], None]:
        """Observe every change of the upload state."""
        return self.registry.subscribe(callback)

    def top_level_items(self) -> list[UploadItem]:
        """Items added directly at a destination."""
        return [item for item in self.registry.snapshot().values() if item.parent_id is None]

    def children_of(self, folder_id: str) -> list[UploadItem]:
        """Direct children of an upload folder, in tree order."""
        folder = self.registry.get(folder_id)
        if not isinstance(folder, FolderItem):
            raise ValueError(f"Upload folder '{folder_id}' not found")
        children = (self.registry.get(child_id) for child_id in folder.children)
        return [child for child in children if child is not None]

    @property
    def over_quota(self) -> bool:
        """Whether any upload failed because the account is over quota."""
        return any(
            item.status == UploadStatus.FAILED
            and item.status_code == QuotaExceeded.status_code
            for item in self.registry.snapshot().values()
        )

    # Commands

    def add_entries(
        self,
        local_paths: Iterable[str | Path],
        destination_node_id: str,
    ) -> list[UploadItem]:
        """
        Start uploading files and folder trees into a remote folder.

        Args:
            local_paths: Local files or directories
            destination_node_id: Remote folder the entries are uploaded into

        Returns:
            The top-level upload items, one per entry
        """
        paths = [Path(p).expanduser() for p in local_paths]
        if not paths:
            raise ValueError("No entries to upload")
        return self.expander.add(paths, destination_node_id)

    def add_version(
        self,
        local_path: str | Path,
        node_id: str,
        parent_node_id: str | None = None,
        overwrite: bool = False,
    ) -> FileItem:
        """
        Start uploading new content for an existing remote file.

        Args:
            local_path: Local file holding the new content
            node_id: Remote file receiving the version
            parent_node_id: Remote folder containing the file, if known
            overwrite: Replace the last version instead of adding one
        """
        local_file = Path(local_path).expanduser()
        if not local_file.is_file():
            raise ValueError(f"Not a file: {local_path}")

        item = FileItem(
            id=new_upload_id(),
            name=local_file.name,
            full_path=local_file.name,
            local_path=str(local_file),
            parent_node_id=parent_node_id,
            node_id=node_id,
            size=local_file.stat().st_size,
            is_version=True,
            overwrite_version=overwrite,
        )
        self.registry.upsert([item])
        self.queue.submit(item.id)
        logger.info(f"Started version upload {item.id}: {item.name} -> node {node_id}")
        return self.registry.get(item.id)

    def retry(self, upload_ids: Iterable[str]) -> int:
        """Retry failed uploads, returning how many items were re-armed."""
        return sum(self.retry_controller.retry(upload_id) for upload_id in upload_ids)

    def remove(self, upload_ids: Iterable[str]) -> list[str]:
        """
        Remove uploads and their subtrees, aborting whatever is in flight.

        Ancestor counters shrink by the removed subtree; siblings are kept.
        Returns every removed ID.
        """
        removed: list[str] = []
        for upload_id in upload_ids:
            item = self.registry.get(upload_id)
            if item is None:
                # already gone, e.g. inside a subtree removed earlier
                continue

            subtree_ids = [entry.id for entry in self.registry.subtree(upload_id)]
            self.queue.cancel(subtree_ids)
            self.aggregator.on_remove(item)
            self._detach_from_parent(item)
            removed.extend(self.registry.remove(subtree_ids))

        if removed:
            logger.info(f"Removed {len(removed)} upload items")
        return removed

    def remove_by_node_id(self, node_ids: Iterable[str]) -> list[str]:
        """Remove uploads whose remote node was deleted."""
        wanted = set(node_ids)
        matching = [
            item.id for item in self.registry.snapshot().values() if item.node_id in wanted
        ]
        return self.remove(matching)

    def remove_all_completed(self) -> int:
        """Remove completed top-level uploads along with their content."""
        completed = [
            item.id for item in self.top_level_items() if item.status == UploadStatus.COMPLETED
        ]
        return len(self.remove(completed))

    def abort(self, upload_id: str) -> bool:
        """
        Abort an upload that is queued or in flight.

        The aborted item is removed rather than marked failed.
        """
        item = self.registry.get(upload_id)
        if item is None or item.status.is_terminal:
            return False
        self.remove([upload_id])
        logger.info(f"Upload {upload_id} aborted by user")
        return True

    async def wait_idle(self) -> None:
        """Wait until no upload or listing update is running."""
        while True:
            tasks = [
                task
                for task in (*self.queue.active_tasks(), *self.executor.background_tasks)
                if not task.done()
            ]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        """Abort everything in flight and close the client."""
        in_flight = [
            item.id
            for item in self.registry.snapshot().values()
            if not item.status.is_terminal
        ]
        tasks = [self.queue.task_for(upload_id) for upload_id in in_flight]
        self.queue.cancel(in_flight)
        tasks = [task for task in (*tasks, *self.executor.background_tasks) if task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.client.close()

    def _detach_from_parent(self, item: UploadItem) -> None:
        parent = self.registry.get(item.parent_id)
        if isinstance(parent, FolderItem):
            self.registry.update(
                parent.id,
                children=tuple(child for child in parent.children if child != item.id),
            )


# Global upload manager instance
upload_manager = UploadManager()
