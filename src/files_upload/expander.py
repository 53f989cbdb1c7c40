"""
Tree expansion of local entries into upload items.

A dropped or selected entry (file or directory tree) becomes a flat set of
linked upload items. Only top-level items can be admitted right away; nested
ones wait until their parent folder exists remotely.
"""

import uuid
from pathlib import Path

from .client import logger
from .models import FileItem, FolderItem, UploadItem
from .registry import UploadRegistry
from .upload_queue import UploadQueue


def new_upload_id() -> str:
    return f"upload-{uuid.uuid4()}"


class TreeExpander:
    """Builds upload items from local paths and registers them."""

    def __init__(self, registry: UploadRegistry, queue: UploadQueue):
        self._registry = registry
        self._queue = queue

    def expand(self, local_path: Path, destination_node_id: str) -> list[UploadItem]:
        """
        Build the items for one entry without registering them.

        The first returned item is the top-level one; descendants follow in
        depth-first order, each folder before its content.
        """
        if not local_path.exists():
            raise ValueError(f"Path not found: {local_path}")

        if local_path.is_dir():
            return self._expand_directory(local_path, local_path.name, None, destination_node_id)
        if local_path.is_file():
            return [self._file_item(local_path, local_path.name, None, destination_node_id)]
        raise ValueError(f"Not a file or folder: {local_path}")

    def add(self, local_paths: list[Path], destination_node_id: str) -> list[UploadItem]:
        """
        Register all entries in one batch and submit their top-level items.

        Returns the top-level items. Entries are appended next to whatever is
        already registered.
        """
        expanded: list[UploadItem] = []
        top_level: list[UploadItem] = []
        for local_path in local_paths:
            items = self.expand(local_path, destination_node_id)
            top_level.append(items[0])
            expanded.extend(items)

        self._registry.upsert(expanded)
        logger.info(
            f"Added {len(top_level)} entries ({len(expanded)} items) "
            f"for destination {destination_node_id}"
        )

        for item in top_level:
            self._queue.submit(item.id)
        return [self._registry.get(item.id) for item in top_level]

    def _expand_directory(
        self,
        directory: Path,
        full_path: str,
        parent_id: str | None,
        parent_node_id: str | None,
    ) -> list[UploadItem]:
        folder_id = new_upload_id()
        children: list[str] = []
        descendants: list[UploadItem] = []

        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            entry_path = f"{full_path}/{entry.name}"
            if entry.is_symlink() and entry.is_dir():
                logger.debug(f"Skipping symlinked directory: {entry}")
                continue
            if entry.is_dir():
                subtree = self._expand_directory(entry, entry_path, folder_id, None)
            elif entry.is_file():
                subtree = [self._file_item(entry, entry_path, folder_id, None)]
            else:
                logger.debug(f"Skipping special file: {entry}")
                continue
            children.append(subtree[0].id)
            descendants.extend(subtree)

        folder = FolderItem(
            id=folder_id,
            name=directory.name,
            full_path=full_path,
            local_path=str(directory),
            parent_id=parent_id,
            parent_node_id=parent_node_id,
            children=tuple(children),
            # the folder itself is one of the units
            content_count=len(descendants) + 1,
        )
        return [folder, *descendants]

    def _file_item(
        self,
        file_path: Path,
        full_path: str,
        parent_id: str | None,
        parent_node_id: str | None,
    ) -> FileItem:
        return FileItem(
            id=new_upload_id(),
            name=file_path.name,
            full_path=full_path,
            local_path=str(file_path),
            parent_id=parent_id,
            parent_node_id=parent_node_id,
            size=file_path.stat().st_size,
        )
