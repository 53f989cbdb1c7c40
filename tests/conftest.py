"""Shared fixtures: a scriptable fake Files service and local trees."""
import asyncio
from pathlib import Path

import pytest
import pytest_asyncio

from files_upload.upload_manager import UploadManager


class FakeFilesClient:
    """
    Stand-in for FilesClient.

    Folder creation succeeds on the next loop iteration unless a failure was
    scripted. File uploads either complete at once (``auto=True``) or park on
    a future the test resolves with ``finish``/``fail``.
    """

    def __init__(self, auto: bool = False):
        self.auto = auto
        self.folder_calls: list[tuple[str, str]] = []
        self.upload_calls: list[tuple[str, str]] = []
        self.version_calls: list[tuple[str, bool]] = []
        self.failing_folders: dict[str, Exception] = {}
        self.failing_files: dict[str, Exception] = {}
        self.pending: dict[str, asyncio.Future] = {}
        self.progress: dict[str, object] = {}
        self.nodes: dict[str, dict] = {}
        self.closed = False
        self._counter = 0

    def _new_node(self, name: str, node_type: str, parent_node_id: str | None) -> str:
        self._counter += 1
        node_id = f"node-{self._counter}"
        self.nodes[node_id] = {
            "id": node_id,
            "name": name,
            "type": node_type,
            "parent": {"id": parent_node_id},
        }
        return node_id

    async def create_folder(self, name: str, parent_node_id: str) -> str:
        self.folder_calls.append((name, parent_node_id))
        await asyncio.sleep(0)
        if name in self.failing_folders:
            raise self.failing_folders.pop(name)
        return self._new_node(name, "FOLDER", parent_node_id)

    async def upload_file(self, local_path, parent_node_id, filename=None, progress_callback=None):
        name = filename or Path(local_path).name
        self.upload_calls.append((name, parent_node_id))
        self.progress[name] = progress_callback
        await asyncio.sleep(0)
        if name in self.failing_files:
            raise self.failing_files.pop(name)
        if self.auto:
            return self._new_node(name, "OTHER", parent_node_id)
        future = asyncio.get_running_loop().create_future()
        self.pending[name] = future
        await future
        return self._new_node(name, "OTHER", parent_node_id)

    async def upload_version(
        self, local_path, node_id, filename=None, overwrite=False, progress_callback=None
    ):
        self.version_calls.append((node_id, overwrite))
        await asyncio.sleep(0)
        return node_id

    async def get_node(self, node_id: str):
        return self.nodes.get(node_id)

    async def list_folder(self, node_id: str):
        return [node for node in self.nodes.values() if node["parent"]["id"] == node_id]

    async def close(self):
        self.closed = True

    def finish(self, name: str) -> None:
        self.pending.pop(name).set_result(None)

    def fail(self, name: str, error: Exception) -> None:
        self.pending.pop(name).set_exception(error)

    def uploaded_names(self) -> list[str]:
        return [name for name, _ in self.upload_calls]


async def settle(rounds: int = 20) -> None:
    """Let scheduled tasks and callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_tree(base: Path, layout: dict) -> Path:
    """Create files (str content) and directories (dict) under base."""
    base.mkdir(parents=True, exist_ok=True)
    for name, content in layout.items():
        path = base / name
        if isinstance(content, dict):
            make_tree(path, content)
        else:
            path.write_text(content)
    return base


@pytest.fixture
def fake_client():
    return FakeFilesClient()


@pytest.fixture
def auto_client():
    return FakeFilesClient(auto=True)


@pytest_asyncio.fixture
async def manager(fake_client):
    upload_manager = UploadManager(client=fake_client, limit=3)
    yield upload_manager
    await upload_manager.close()
    await settle()


@pytest_asyncio.fixture
async def auto_manager(auto_client):
    upload_manager = UploadManager(client=auto_client, limit=3)
    yield upload_manager
    await upload_manager.close()
    await settle()
