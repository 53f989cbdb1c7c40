"""Tests for the upload registry."""
import dataclasses

import pytest

from files_upload.models import FileItem, FolderItem, UploadItem, UploadStatus
from files_upload.registry import UploadRegistry


def _file(upload_id, parent_id=None):
    return FileItem(
        id=upload_id,
        name=f"{upload_id}.txt",
        full_path=f"{upload_id}.txt",
        local_path=f"/tmp/{upload_id}.txt",
        parent_id=parent_id,
    )


def test_upsert_and_get():
    registry = UploadRegistry()
    registry.upsert([_file("a"), _file("b")])

    assert registry.get("a").name == "a.txt"
    assert registry.get("missing") is None
    assert registry.get(None) is None
    assert len(registry) == 2
    assert "b" in registry


def test_update_replaces_item_and_keeps_old_snapshot():
    registry = UploadRegistry()
    registry.upsert([_file("a")])
    before = registry.snapshot()

    updated = registry.update("a", status=UploadStatus.LOADING, progress=10)

    assert updated.status == UploadStatus.LOADING
    assert registry.get("a").progress == 10
    assert before["a"].status == UploadStatus.QUEUED
    assert before["a"].progress == 0


def test_update_missing_item_returns_none():
    registry = UploadRegistry()
    calls = []
    registry.subscribe(calls.append)

    assert registry.update("gone", progress=50) is None
    assert calls == []


def test_items_are_immutable():
    item = _file("a")
    with pytest.raises(dataclasses.FrozenInstanceError):
        item.progress = 3


def test_subscribers_get_snapshot_after_each_mutation():
    registry = UploadRegistry()
    snapshots = []
    unsubscribe = registry.subscribe(snapshots.append)

    registry.upsert([_file("a")])
    registry.update("a", progress=5)
    registry.remove(["a"])
    unsubscribe()
    registry.upsert([_file("b")])

    assert len(snapshots) == 3
    assert snapshots[0]["a"].progress == 0
    assert snapshots[1]["a"].progress == 5
    assert "a" not in snapshots[2]
    with pytest.raises(TypeError):
        snapshots[2]["x"] = _file("x")


def test_remove_reports_present_ids_only():
    registry = UploadRegistry()
    registry.upsert([_file("a"), _file("b")])

    assert registry.remove(["a", "zzz"]) == ["a"]
    assert registry.get("a") is None
    assert registry.get("b") is not None


def test_subtree_lists_parents_before_children():
    registry = UploadRegistry()
    registry.upsert(
        [
            FolderItem(
                id="root", name="root", full_path="root", local_path="/r",
                children=("f1", "sub"), content_count=4,
            ),
            _file("f1", parent_id="root"),
            FolderItem(
                id="sub", name="sub", full_path="root/sub", local_path="/r/sub",
                parent_id="root", children=("f2",), content_count=2,
            ),
            _file("f2", parent_id="sub"),
        ]
    )

    assert [item.id for item in registry.subtree("root")] == ["root", "f1", "sub", "f2"]
    assert [item.id for item in registry.subtree("sub")] == ["sub", "f2"]
    assert [item.id for item in registry.subtree("f1")] == ["f1"]
    assert registry.subtree("missing") == []


def test_failing_subscriber_does_not_break_mutations():
    registry = UploadRegistry()
    seen = []

    def broken(snapshot):
        raise RuntimeError("listener bug")

    registry.subscribe(broken)
    registry.subscribe(seen.append)
    registry.upsert([_file("a")])

    updated = registry.update("a", progress=7)

    assert updated.progress == 7
    assert registry.get("a").progress == 7
    assert [snapshot["a"].progress for snapshot in seen] == [0, 7]


def test_upload_item_union_covers_both_kinds():
    folder = FolderItem(id="d", name="d", full_path="d", local_path="/d")

    assert isinstance(_file("a"), UploadItem)
    assert isinstance(folder, UploadItem)
    assert not isinstance("a", UploadItem)
