"""
Folder listing synchronization.

When an upload creates a node, an already-loaded listing of the destination
folder receives the new node in sorted position instead of being refetched.
"""

from typing import Any, Protocol, runtime_checkable

from .client import logger


@runtime_checkable
class FolderContentSync(Protocol):
    """Interface for cached folder listings."""

    def has_listing(self, folder_node_id: str) -> bool:
        """Whether a listing of the folder is cached."""
        ...

    def add_node(
        self,
        node: dict[str, Any],
        destination_node_id: str,
        is_last_in_current_page: bool,
    ) -> None:
        """Insert a newly created node into the cached listing."""
        ...


def sort_key(node: dict[str, Any]) -> tuple[int, str]:
    """Folders first, then case-insensitive name."""
    return (0 if node.get("type") == "FOLDER" else 1, (node.get("name") or "").lower())


class FolderListingCache:
    """In-memory folder listings, kept sorted."""

    def __init__(self):
        self._listings: dict[str, list[dict[str, Any]]] = {}

    def has_listing(self, folder_node_id: str) -> bool:
        return folder_node_id in self._listings

    def get_listing(self, folder_node_id: str) -> list[dict[str, Any]] | None:
        listing = self._listings.get(folder_node_id)
        return list(listing) if listing is not None else None

    def set_listing(self, folder_node_id: str, nodes: list[dict[str, Any]]) -> None:
        self._listings[folder_node_id] = sorted(nodes, key=sort_key)

    def invalidate(self, folder_node_id: str) -> None:
        self._listings.pop(folder_node_id, None)

    def add_node(
        self,
        node: dict[str, Any],
        destination_node_id: str,
        is_last_in_current_page: bool,
    ) -> None:
        listing = self._listings.get(destination_node_id)
        if listing is None:
            return

        # replace an existing entry (e.g. a new version of the same node)
        listing[:] = [n for n in listing if n.get("id") != node.get("id")]

        key = sort_key(node)
        position = len(listing)
        for index, existing in enumerate(listing):
            if sort_key(existing) > key:
                position = index
                break
        listing.insert(position, node)
        logger.debug(
            f"Inserted node {node.get('id')} into listing of {destination_node_id} "
            f"at position {position} (last pending: {is_last_in_current_page})"
        )
