"""
Data models for the Files upload manager.

Upload items are a tagged union of two dataclasses sharing common fields.
``kind`` is the tag; code that needs variant-specific fields switches on it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class UploadStatus(str, Enum):
    """Status of an upload item."""

    QUEUED = "Queued"
    LOADING = "Loading"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadStatus.COMPLETED, UploadStatus.FAILED)


@dataclass(frozen=True)
class FileItem:
    """A single file being uploaded into a remote folder."""

    id: str
    name: str
    full_path: str
    local_path: str
    parent_id: str | None = None
    parent_node_id: str | None = None
    node_id: str | None = None
    status: UploadStatus = UploadStatus.QUEUED
    status_code: str | None = None
    progress: int = 0  # percent of bytes sent
    attempt: int = 0
    size: int = 0
    is_version: bool = False
    overwrite_version: bool = False
    kind: Literal["file"] = "file"


@dataclass(frozen=True)
class FolderItem:
    """
    A local directory mirrored as a remote folder.

    Counters cover the whole subtree, the folder itself included:
    ``content_count`` units in total, of which ``completed_count`` succeeded
    and ``failed_count`` failed. The folder's own unit is its creation.
    """

    id: str
    name: str
    full_path: str
    local_path: str
    parent_id: str | None = None
    parent_node_id: str | None = None
    node_id: str | None = None
    status: UploadStatus = UploadStatus.QUEUED
    status_code: str | None = None
    attempt: int = 0
    children: tuple[str, ...] = field(default_factory=tuple)
    content_count: int = 1
    completed_count: int = 0
    failed_count: int = 0
    kind: Literal["folder"] = "folder"

    @property
    def progress(self) -> int:
        """Folders display their completed unit count."""
        return self.completed_count

    @property
    def pending_count(self) -> int:
        """Units neither completed nor failed yet."""
        return self.content_count - self.completed_count - self.failed_count


UploadItem = FileItem | FolderItem


def is_folder(item: UploadItem | None) -> bool:
    return item is not None and item.kind == "folder"


def own_unit_status(item: UploadItem) -> UploadStatus:
    """
    Status of the item's own unit, ignoring descendants.

    For files it is the item status. A folder's own unit is completed once the
    remote folder exists, and failed when creation failed.
    """
    if item.kind == "file":
        return item.status
    if item.node_id is not None:
        return UploadStatus.COMPLETED
    if item.status == UploadStatus.FAILED:
        return UploadStatus.FAILED
    return item.status


def derive_folder_status(folder: FolderItem) -> UploadStatus:
    """Aggregate folder status from its counters."""
    if folder.completed_count == folder.content_count:
        return UploadStatus.COMPLETED
    if folder.pending_count <= 0 and folder.failed_count > 0:
        return UploadStatus.FAILED
    if folder.status == UploadStatus.QUEUED:
        return UploadStatus.QUEUED
    return UploadStatus.LOADING


def to_dict(item: UploadItem) -> dict:
    """Plain dictionary view used by the MCP tools."""
    result = {
        "upload_id": item.id,
        "type": item.kind,
        "name": item.name,
        "full_path": item.full_path,
        "parent_id": item.parent_id,
        "parent_node_id": item.parent_node_id,
        "node_id": item.node_id,
        "status": item.status.value,
        "progress": item.progress,
    }
    if item.status_code:
        result["status_code"] = item.status_code
    if item.kind == "folder":
        result["children"] = list(item.children)
        result["content_count"] = item.content_count
        result["completed_count"] = item.completed_count
        result["failed_count"] = item.failed_count
    else:
        result["size"] = item.size
        if item.is_version:
            result["is_version"] = True
    return result
