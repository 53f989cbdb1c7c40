"""
Files service client and logging configuration.

Talks to the remote hierarchical storage: folder creation and node lookups go
through GraphQL, file content goes through the REST upload endpoints.
"""

import base64
import logging
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx

from .errors import GRAPHQL_ERROR_CODES, HTTP_STATUS_ERRORS, NetworkError, UploadError

# Configure logging to stderr (critical for MCP servers using stdio transport)
# stdout is reserved for JSON-RPC messages, so all logging must go to stderr
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger("files-upload")

ProgressCallback = Callable[[int, int], None]

CREATE_FOLDER_MUTATION = """
mutation createFolder($destination_id: String!, $name: String!) {
  createFolder(destination_id: $destination_id, name: $name) {
    id
    name
    type
  }
}
"""

GET_NODE_QUERY = """
query getNode($node_id: ID!) {
  getNode(node_id: $node_id) {
    id
    name
    type
    parent {
      id
    }
  }
}
"""

GET_CHILDREN_QUERY = """
query getChildren($node_id: ID!, $children_limit: Int!, $sort: NodeSort!) {
  getNode(node_id: $node_id) {
    id
    name
    type
    ... on Folder {
      children(limit: $children_limit, sort: $sort) {
        nodes {
          id
          name
          type
        }
      }
    }
  }
}
"""


class FilesClient:
    """
    Async client for the Files service.

    Configuration comes from the environment on first use:
    - FILES_BASE_URL: service origin, e.g. "https://mail.example.com"
    - FILES_AUTH_TOKEN: session token, sent as the ZM_AUTH_TOKEN cookie
    """

    REST_ENDPOINT = "/services/files"
    UPLOAD_PATH = "/upload"
    UPLOAD_VERSION_PATH = "/upload-version"
    GRAPHQL_PATH = "/graphql/"

    CHUNK_SIZE = 65536  # 64KB
    CHILDREN_LIMIT = 1000

    def __init__(
        self,
        base_url: str | None = None,
        auth_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url
        self._auth_token = auth_token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _load_config(self) -> None:
        """Load connection settings from environment variables."""
        if self._base_url is None:
            self._base_url = os.environ.get("FILES_BASE_URL")
        if self._auth_token is None:
            self._auth_token = os.environ.get("FILES_AUTH_TOKEN")

        if not self._base_url:
            raise ValueError("FILES_BASE_URL environment variable is required")
        if not self._auth_token:
            logger.warning("FILES_AUTH_TOKEN is not set, requests will be anonymous")

        self._base_url = self._base_url.rstrip("/")
        logger.info(f"Using Files service at {self._base_url}")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._load_config()
            cookies = {"ZM_AUTH_TOKEN": self._auth_token} if self._auth_token else None
            # uploads can take arbitrarily long, so no read/write timeout
            self._client = httpx.AsyncClient(
                base_url=f"{self._base_url}{self.REST_ENDPOINT}",
                cookies=cookies,
                timeout=httpx.Timeout(30.0, read=None, write=None),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """
        Run a GraphQL operation and return its ``data``.

        Raises:
            NetworkError: If the request could not be sent
            UploadError: Or a subclass matching the first error's errorCode
        """
        client = await self._get_client()

        try:
            response = await client.post(
                self.GRAPHQL_PATH,
                json={"query": query, "variables": variables},
            )
        except httpx.TransportError as e:
            raise NetworkError(str(e) or type(e).__name__) from e

        if response.status_code >= 400:
            raise _error_from_response(response)

        data = response.json()
        errors = data.get("errors") or []
        if errors:
            first = errors[0]
            error_code = (first.get("extensions") or {}).get("errorCode", "")
            error_cls = GRAPHQL_ERROR_CODES.get(error_code, UploadError)
            logger.error(f"GraphQL error ({error_code or 'no code'}): {first.get('message')}")
            raise error_cls(first.get("message", "GraphQL error"))

        return data.get("data") or {}

    async def create_folder(self, name: str, parent_node_id: str) -> str:
        """Create a folder and return its node id."""
        data = await self.graphql(
            CREATE_FOLDER_MUTATION,
            {"destination_id": parent_node_id, "name": name},
        )
        folder = data.get("createFolder")
        if not folder or not folder.get("id"):
            raise UploadError(f"No folder returned when creating '{name}'")
        logger.info(f"Created folder: {name} (id: {folder['id']})")
        return folder["id"]

    async def get_node(self, node_id: str) -> dict[str, Any] | None:
        """Fetch the metadata of a single node."""
        data = await self.graphql(GET_NODE_QUERY, {"node_id": node_id})
        return data.get("getNode")

    async def list_folder(self, node_id: str) -> list[dict[str, Any]]:
        """List the children of a folder."""
        data = await self.graphql(
            GET_CHILDREN_QUERY,
            {
                "node_id": node_id,
                "children_limit": self.CHILDREN_LIMIT,
                "sort": "NAME_ASC",
            },
        )
        node = data.get("getNode") or {}
        children = node.get("children") or {}
        return children.get("nodes") or []

    async def upload_file(
        self,
        local_path: Path,
        parent_node_id: str,
        filename: str | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> str:
        """
        Upload a file into a folder, streaming its content.

        Args:
            local_path: Local path to the file
            parent_node_id: Destination folder node id
            filename: Override filename (defaults to local filename)
            progress_callback: Optional callback(uploaded_bytes, total_bytes)

        Returns:
            The node id of the created file
        """
        filename = filename or local_path.name
        headers = {
            "Filename": _encode_filename(filename),
            "ParentId": parent_node_id,
        }
        return await self._post_content(self.UPLOAD_PATH, local_path, headers, progress_callback)

    async def upload_version(
        self,
        local_path: Path,
        node_id: str,
        filename: str | None = None,
        overwrite: bool = False,
        progress_callback: ProgressCallback | None = None,
    ) -> str:
        """Upload new content for an existing file node."""
        filename = filename or local_path.name
        headers = {
            "NodeId": node_id,
            "Filename": _encode_filename(filename),
            "OverwriteVersion": "true" if overwrite else "false",
        }
        return await self._post_content(
            self.UPLOAD_VERSION_PATH, local_path, headers, progress_callback
        )

    async def _post_content(
        self,
        path: str,
        local_path: Path,
        headers: dict[str, str],
        progress_callback: ProgressCallback | None,
    ) -> str:
        client = await self._get_client()
        file_size = local_path.stat().st_size

        # Streaming file reader with progress tracking
        async def file_reader():
            uploaded = 0
            with open(local_path, "rb") as f:
                while chunk := f.read(self.CHUNK_SIZE):
                    uploaded += len(chunk)
                    if progress_callback:
                        progress_callback(uploaded, file_size)
                    yield chunk

        headers = {**headers, "Content-Length": str(file_size)}
        try:
            response = await client.post(path, content=file_reader(), headers=headers)
        except httpx.TransportError as e:
            raise NetworkError(str(e) or type(e).__name__) from e

        if response.status_code != 200:
            raise _error_from_response(response)

        node_id = response.json().get("nodeId")
        if not node_id:
            raise UploadError("No nodeId returned by upload", http_status=response.status_code)
        return node_id


def _encode_filename(filename: str) -> str:
    return base64.b64encode(filename.encode("utf-8")).decode("ascii")


def _error_from_response(response: httpx.Response) -> UploadError:
    """Map an HTTP error response onto the upload error taxonomy."""
    error_code = None
    try:
        body = response.json()
        if isinstance(body, dict):
            error_code = body.get("errorCode")
    except ValueError:
        pass

    if error_code in GRAPHQL_ERROR_CODES:
        error_cls = GRAPHQL_ERROR_CODES[error_code]
    else:
        error_cls = HTTP_STATUS_ERRORS.get(response.status_code, UploadError)

    if error_cls is UploadError:
        logger.error(f"Upload error: unhandled status {response.status_code}")
    return error_cls(
        f"HTTP {response.status_code} from {response.request.url.path}",
        http_status=response.status_code,
    )
