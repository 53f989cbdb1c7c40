"""
Files Upload MCP Server - Tool definitions.

This module defines the MCP tools that drive the upload manager.
"""

from typing import Any

from mcp.server.fastmcp import FastMCP

from .client import logger
from .errors import UploadError
from .models import UploadItem, to_dict
from .sync import FolderListingCache
from .upload_manager import upload_manager

# Initialize the MCP server
mcp = FastMCP("files-upload")


def _status_counts(items: list[UploadItem]) -> dict[str, int]:
    status_counts: dict[str, int] = {}
    for item in items:
        status_counts[item.status.value] = status_counts.get(item.status.value, 0) + 1
    return status_counts


@mcp.tool()
async def list_folder(folder_id: str) -> dict[str, Any]:
    """
    List the contents of a remote folder.

    The listing is cached, and uploads completing into this folder are
    inserted into it in sorted position.

    Args:
        folder_id: The remote folder node ID

    Returns:
        Dictionary with the folder ID and its child nodes (folders first)
    """
    listings = upload_manager.folder_sync
    try:
        nodes = await upload_manager.client.list_folder(folder_id)
    except (UploadError, ValueError) as e:
        if isinstance(listings, FolderListingCache):
            listings.invalidate(folder_id)
        return {"error": str(e)}

    if isinstance(listings, FolderListingCache):
        listings.set_listing(folder_id, nodes)
        nodes = listings.get_listing(folder_id)

    logger.info(f"Listed {len(nodes)} items in folder {folder_id}")
    return {"folder_id": folder_id, "nodes": nodes, "total_count": len(nodes)}


@mcp.tool()
async def upload_entries(local_paths: list[str], destination_id: str) -> dict[str, Any]:
    """
    Upload local files and folders into a remote folder.

    Folders are uploaded recursively: each remote folder is created before its
    content. Uploads run in the background, at most a few files at a time.

    Args:
        local_paths: Local files or folders to upload
        destination_id: Remote folder node ID to upload into

    Returns:
        Dictionary with the top-level upload items
    """
    try:
        items = upload_manager.add_entries(local_paths, destination_id)
    except ValueError as e:
        return {"error": str(e)}

    return {
        "uploads": [to_dict(item) for item in items],
        "message": "Upload started. Use list_uploads() or get_upload_status(upload_id) to check progress.",
    }


@mcp.tool()
async def upload_version(
    local_path: str,
    node_id: str,
    parent_id: str | None = None,
    overwrite: bool = False,
) -> dict[str, Any]:
    """
    Upload a new version of an existing remote file.

    Args:
        local_path: Local file with the new content
        node_id: Remote file node ID
        parent_id: Remote folder containing the file, if known
        overwrite: If True, replace the last version instead of adding one

    Returns:
        Dictionary with the upload item
    """
    try:
        item = upload_manager.add_version(local_path, node_id, parent_id, overwrite)
    except ValueError as e:
        return {"error": str(e)}

    return {
        "upload": to_dict(item),
        "message": f"Version upload started. Use get_upload_status('{item.id}') to check progress.",
    }


@mcp.tool()
async def get_upload_status(upload_id: str) -> dict[str, Any]:
    """
    Get the status and progress of an upload (file or folder).

    Args:
        upload_id: The upload ID returned from upload_entries

    Returns:
        Dictionary with current status, progress, and for folders the
        completed/failed/total counts and the children
    """
    item = upload_manager.get(upload_id)
    if item is None:
        return {
            "error": f"Upload '{upload_id}' not found",
            "available_uploads": [u.id for u in upload_manager.top_level_items()],
        }

    result = to_dict(item)
    if item.kind == "folder":
        result["items"] = f"{item.completed_count}/{item.content_count}"
    return result


@mcp.tool()
async def list_uploads(parent_id: str | None = None) -> dict[str, Any]:
    """
    List uploads with their status.

    Args:
        parent_id: Upload folder ID to list the content of (defaults to the
            top-level uploads)

    Returns:
        Dictionary with the uploads, status counts and whether the over-quota
        banner should be shown
    """
    try:
        if parent_id is None:
            items = upload_manager.top_level_items()
        else:
            items = upload_manager.children_of(parent_id)
    except ValueError as e:
        return {"error": str(e)}

    return {
        "uploads": [to_dict(item) for item in items],
        "total_count": len(items),
        "status_counts": _status_counts(items),
        "over_quota_banner": upload_manager.over_quota,
    }


@mcp.tool()
async def retry_uploads(upload_ids: list[str]) -> dict[str, Any]:
    """
    Retry failed uploads.

    Retrying a folder only retries what failed inside it.

    Args:
        upload_ids: Failed upload IDs

    Returns:
        Dictionary with the number of items restarted
    """
    try:
        count = upload_manager.retry(upload_ids)
    except ValueError as e:
        return {"error": str(e)}
    return {"success": True, "retried_count": count}


@mcp.tool()
async def remove_uploads(upload_ids: list[str]) -> dict[str, Any]:
    """
    Remove uploads from the list, aborting any that are still running.

    Removing a folder removes its whole content. Files already uploaded stay
    on the remote.

    Args:
        upload_ids: Upload IDs to remove

    Returns:
        Dictionary with the removed upload IDs
    """
    removed = upload_manager.remove(upload_ids)
    return {"success": True, "removed": removed, "removed_count": len(removed)}


@mcp.tool()
async def remove_completed_uploads() -> dict[str, Any]:
    """
    Remove every completed top-level upload from the list.

    Returns:
        Dictionary with the number of removed items
    """
    count = upload_manager.remove_all_completed()
    return {"success": True, "removed_count": count}


@mcp.tool()
async def abort_upload(upload_id: str) -> dict[str, Any]:
    """
    Abort an upload that is queued or in progress.

    The upload is removed from the list.

    Args:
        upload_id: The upload ID to abort

    Returns:
        Dictionary indicating success or failure
    """
    if upload_manager.abort(upload_id):
        return {
            "success": True,
            "message": f"Upload '{upload_id}' has been aborted",
        }

    item = upload_manager.get(upload_id)
    if item is None:
        return {
            "success": False,
            "error": f"Upload '{upload_id}' not found",
        }
    return {
        "success": False,
        "error": f"Upload '{upload_id}' is not running (status: {item.status.value})",
    }
