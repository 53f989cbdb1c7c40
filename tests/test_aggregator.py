"""Tests for incremental folder counters."""
from files_upload.aggregator import ProgressAggregator
from files_upload.models import FileItem, FolderItem, UploadStatus
from files_upload.registry import UploadRegistry


def _folder(upload_id, parent_id=None, children=(), content_count=1, **kwargs):
    return FolderItem(
        id=upload_id,
        name=upload_id,
        full_path=upload_id,
        local_path=f"/tmp/{upload_id}",
        parent_id=parent_id,
        children=tuple(children),
        content_count=content_count,
        status=kwargs.pop("status", UploadStatus.LOADING),
        **kwargs,
    )


def _file(upload_id, parent_id, **kwargs):
    return FileItem(
        id=upload_id,
        name=upload_id,
        full_path=upload_id,
        local_path=f"/tmp/{upload_id}",
        parent_id=parent_id,
        parent_node_id="remote",
        **kwargs,
    )


def _chain(depth):
    """Folders d0 > d1 > ... > d{depth-1}, with one file in the deepest one."""
    items = []
    for level in range(depth):
        parent_id = f"d{level - 1}" if level else None
        child = f"d{level + 1}" if level < depth - 1 else "leaf"
        items.append(
            _folder(f"d{level}", parent_id, children=[child], content_count=depth - level + 1)
        )
    items.append(_file("leaf", f"d{depth - 1}"))
    registry = UploadRegistry()
    registry.upsert(items)
    return registry


def test_file_completion_propagates_to_every_ancestor():
    registry = _chain(4)
    aggregator = ProgressAggregator(registry)

    leaf = registry.update("leaf", status=UploadStatus.COMPLETED)
    aggregator.on_terminal(leaf, UploadStatus.LOADING, UploadStatus.COMPLETED)

    for level in range(4):
        assert registry.get(f"d{level}").completed_count == 1


def test_folder_counts_its_own_creation():
    registry = _chain(3)
    aggregator = ProgressAggregator(registry)

    folder = registry.update("d1", node_id="remote-d1")
    aggregator.on_terminal(folder, UploadStatus.LOADING, UploadStatus.COMPLETED)

    assert registry.get("d0").completed_count == 1
    assert registry.get("d1").completed_count == 1
    assert registry.get("d2").completed_count == 0


def test_derived_status_follows_counters():
    registry = UploadRegistry()
    registry.upsert(
        [
            _folder("root", children=["a", "b"], content_count=3, node_id="r",
                    completed_count=1),
            _file("a", "root", status=UploadStatus.LOADING),
            _file("b", "root", status=UploadStatus.LOADING),
        ]
    )
    aggregator = ProgressAggregator(registry)

    a = registry.update("a", status=UploadStatus.COMPLETED)
    aggregator.on_terminal(a, UploadStatus.LOADING, UploadStatus.COMPLETED)
    assert registry.get("root").status == UploadStatus.LOADING

    b = registry.update("b", status=UploadStatus.FAILED)
    aggregator.on_terminal(b, UploadStatus.LOADING, UploadStatus.FAILED)
    root = registry.get("root")
    assert (root.completed_count, root.failed_count) == (2, 1)
    assert root.status == UploadStatus.FAILED

    b = registry.update("b", status=UploadStatus.QUEUED)
    aggregator.on_terminal(b, UploadStatus.FAILED, UploadStatus.QUEUED)
    root = registry.get("root")
    assert root.failed_count == 0
    assert root.status == UploadStatus.LOADING

    b = registry.update("b", status=UploadStatus.COMPLETED)
    aggregator.on_terminal(b, UploadStatus.LOADING, UploadStatus.COMPLETED)
    root = registry.get("root")
    assert root.completed_count == root.content_count == 3
    assert root.status == UploadStatus.COMPLETED


def test_on_remove_subtracts_subtree_from_strict_ancestors_only():
    registry = UploadRegistry()
    registry.upsert(
        [
            _folder("root", children=["sub", "other"], content_count=6, node_id="r",
                    completed_count=4, failed_count=1),
            _folder("sub", "root", children=["x", "y"], content_count=3, node_id="s",
                    completed_count=2, failed_count=1, status=UploadStatus.FAILED),
            _file("x", "sub", status=UploadStatus.COMPLETED),
            _file("y", "sub", status=UploadStatus.FAILED),
            _folder("other", "root", children=["z"], content_count=2, node_id="o",
                    completed_count=1),
            _file("z", "other", status=UploadStatus.LOADING),
        ]
    )
    aggregator = ProgressAggregator(registry)

    totals = aggregator.on_remove(registry.get("sub"))

    assert totals == (3, 2, 1)
    root = registry.get("root")
    assert (root.content_count, root.completed_count, root.failed_count) == (3, 2, 0)
    other = registry.get("other")
    assert (other.content_count, other.completed_count) == (2, 1)


def test_detached_child_does_not_touch_former_parent():
    registry = UploadRegistry()
    registry.upsert(
        [
            _folder("root", children=[], content_count=1, node_id="r", completed_count=1),
            _file("orphan", "root", status=UploadStatus.COMPLETED),
        ]
    )
    aggregator = ProgressAggregator(registry)

    aggregator.on_terminal(registry.get("orphan"), UploadStatus.LOADING, UploadStatus.COMPLETED)

    assert registry.get("root").completed_count == 1


def test_no_transition_is_a_no_op():
    registry = _chain(2)
    aggregator = ProgressAggregator(registry)
    snapshots = []
    registry.subscribe(snapshots.append)

    aggregator.on_terminal(registry.get("leaf"), UploadStatus.QUEUED, UploadStatus.LOADING)

    assert snapshots == []
