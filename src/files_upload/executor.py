"""
Upload executor.

Performs the network work for one admitted item: creates the remote folder for
a folder item, or streams the bytes of a file item. Failures are converted into
a Failed status on the item and never propagate further.
"""

import asyncio
from pathlib import Path

from .aggregator import ProgressAggregator
from .client import FilesClient, logger
from .errors import UploadError
from .models import FolderItem, UploadItem, UploadStatus, is_folder, own_unit_status
from .registry import UploadRegistry
from .sync import FolderContentSync
from .upload_queue import UploadQueue


class UploadExecutor:
    """Runs uploads admitted by the queue."""

    def __init__(
        self,
        registry: UploadRegistry,
        client: FilesClient,
        aggregator: ProgressAggregator,
        queue: UploadQueue,
        folder_sync: FolderContentSync | None = None,
    ):
        self._registry = registry
        self._client = client
        self._aggregator = aggregator
        self._queue = queue
        self._folder_sync = folder_sync
        self._background: set[asyncio.Task] = set()

    @property
    def background_tasks(self) -> set[asyncio.Task]:
        return set(self._background)

    def start(self, item: UploadItem) -> asyncio.Task:
        """Launch the network operation for an admitted item."""
        if item.kind == "folder":
            coro = self._create_folder(item.id, item.attempt)
        else:
            coro = self._upload_file(item.id, item.attempt)
        return asyncio.create_task(coro, name=f"upload-{item.id}")

    def _current(self, upload_id: str, attempt: int) -> UploadItem | None:
        """
        Re-read an item after a suspension point.

        Returns None when the item was removed, retried, or is no longer
        loading, in which case the caller must drop its result.
        """
        item = self._registry.get(upload_id)
        if item is None or item.attempt != attempt or item.status != UploadStatus.LOADING:
            logger.debug(f"Dropping stale callback for upload {upload_id}")
            return None
        return item

    async def _upload_file(self, upload_id: str, attempt: int) -> None:
        item = self._registry.get(upload_id)
        if item is None:
            return

        def on_progress(uploaded: int, total: int) -> None:
            current = self._current(upload_id, attempt)
            if current is None or total <= 0:
                return
            percent = min(100, uploaded * 100 // total)
            if percent > current.progress:
                self._registry.update(upload_id, progress=percent)

        local_path = Path(item.local_path)
        logger.info(f"Uploading {item.full_path or item.name} ({item.size} bytes)")
        try:
            if item.is_version:
                node_id = await self._client.upload_version(
                    local_path,
                    item.node_id,
                    filename=item.name,
                    overwrite=item.overwrite_version,
                    progress_callback=on_progress,
                )
            else:
                node_id = await self._client.upload_file(
                    local_path,
                    item.parent_node_id,
                    filename=item.name,
                    progress_callback=on_progress,
                )
        except asyncio.CancelledError:
            logger.debug(f"Upload {upload_id} task cancelled")
            raise
        except Exception as e:
            self._fail(upload_id, attempt, e)
            return

        current = self._current(upload_id, attempt)
        if current is None:
            return

        is_last = self._is_last_pending(current)
        completed = self._registry.update(
            upload_id,
            status=UploadStatus.COMPLETED,
            status_code=None,
            progress=100,
            node_id=current.node_id if current.is_version else node_id,
        )
        self._schedule_sync(completed.node_id, completed.parent_node_id, is_last)
        self._aggregator.on_terminal(completed, UploadStatus.LOADING, UploadStatus.COMPLETED)
        self._queue.release(upload_id)
        logger.info(f"Upload {upload_id} completed: {completed.name} (node: {completed.node_id})")

    async def _create_folder(self, upload_id: str, attempt: int) -> None:
        item = self._registry.get(upload_id)
        if item is None:
            return

        node_id = item.node_id
        if node_id is None:
            try:
                node_id = await self._client.create_folder(item.name, item.parent_node_id)
            except asyncio.CancelledError:
                logger.debug(f"Folder creation {upload_id} task cancelled")
                raise
            except Exception as e:
                self._fail(upload_id, attempt, e)
                return

        current = self._current(upload_id, attempt)
        if current is None:
            return

        previous = own_unit_status(current)
        is_last = self._is_last_pending(current)
        created = self._registry.update(upload_id, node_id=node_id, status_code=None)
        self._schedule_sync(node_id, created.parent_node_id, is_last)
        self._aggregator.on_terminal(created, previous, UploadStatus.COMPLETED)

        # children can only be admitted once their destination exists
        for child_id in created.children:
            child = self._registry.get(child_id)
            if child is None or child.node_id is not None:
                continue
            self._registry.update(child_id, parent_node_id=node_id, status=UploadStatus.QUEUED)
            self._queue.submit(child_id)

        logger.info(
            f"Folder {upload_id} created: {created.name} (node: {node_id}, "
            f"{len(created.children)} children submitted)"
        )

    def _fail(self, upload_id: str, attempt: int, error: Exception) -> None:
        current = self._current(upload_id, attempt)
        if current is None:
            return

        if isinstance(error, UploadError):
            status_code = error.status_code
            logger.error(f"Upload {upload_id} failed ({status_code}): {error}")
        else:
            status_code = UploadError.status_code
            logger.exception(f"Upload {upload_id} failed unexpectedly: {error}")

        if isinstance(current, FolderItem):
            self._fail_subtree(current, status_code)
            return

        failed = self._registry.update(
            upload_id, status=UploadStatus.FAILED, status_code=status_code
        )
        self._aggregator.on_terminal(failed, UploadStatus.LOADING, UploadStatus.FAILED)
        self._queue.release(upload_id)

    def _fail_subtree(self, folder: FolderItem, status_code: str) -> None:
        """
        Mark a folder whose creation failed, and its unattempted subtree, Failed.

        Descendants are processed before their ancestors so each folder's
        derived status settles once its own unit is counted.
        """
        failed_items = 0
        for item in reversed(self._registry.subtree(folder.id)):
            previous = own_unit_status(item)
            if previous.is_terminal:
                continue
            failed = self._registry.update(
                item.id, status=UploadStatus.FAILED, status_code=status_code
            )
            self._aggregator.on_terminal(failed, previous, UploadStatus.FAILED)
            failed_items += 1
        logger.warning(
            f"Folder {folder.id} ({folder.name}) could not be created, "
            f"{failed_items} items marked failed"
        )

    def _is_last_pending(self, item: UploadItem) -> bool:
        parent = self._registry.get(item.parent_id)
        if not is_folder(parent):
            return True
        return parent.pending_count <= 1

    def _schedule_sync(
        self,
        node_id: str | None,
        destination_node_id: str | None,
        is_last: bool,
    ) -> None:
        if self._folder_sync is None or node_id is None or destination_node_id is None:
            return
        if not self._folder_sync.has_listing(destination_node_id):
            return
        task = asyncio.create_task(self._sync_node(node_id, destination_node_id, is_last))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _sync_node(self, node_id: str, destination_node_id: str, is_last: bool) -> None:
        try:
            node = await self._client.get_node(node_id)
            if node:
                self._folder_sync.add_node(node, destination_node_id, is_last)
        except Exception as e:
            logger.error(f"Failed to add node {node_id} to listing of {destination_node_id}: {e}")
