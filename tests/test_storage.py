import json

from conftest import day, notification
from github_inbox_agent.models import CustomState
from github_inbox_agent.storage import (
    StorageData,
    delete_storage_data,
    load_storage_data,
    save_storage_data,
)


def test_missing_file_gives_defaults(tmp_path) -> None:
    data = load_storage_data(str(tmp_path / "nope.json"))
    assert data.notifications == []
    assert data.active_batch_ids == []
    assert data.custom_states == {}
    assert data.last_sync == 0
    assert data.max_active == 0


def test_round_trip(tmp_path) -> None:
    path = str(tmp_path / "snapshot.json")
    original = StorageData(
        notifications=[
            notification("1", day(1), is_read=True, last_viewed_at=123),
            notification("2", day(2), "PullRequest", priority=2),
        ],
        last_sync=987654321,
        active_batch_ids=["2", "1"],
        custom_states={"1": CustomState(is_read=True, last_viewed_at=123)},
        max_active=7,
    )

    assert save_storage_data(path, original) is True
    loaded = load_storage_data(path)

    assert loaded.to_dict() == original.to_dict()
    assert loaded.notifications[1].subject.type == "PullRequest"


def test_partial_snapshot_defaults_missing_fields(tmp_path) -> None:
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps({"last_sync": 5}))

    data = load_storage_data(str(path))

    assert data.last_sync == 5
    assert data.notifications == []
    assert data.custom_states == {}


def test_wrongly_typed_sections_fall_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps({
        "notifications": {"1": "not a list"},
        "custom_states": ["x"],
        "active_batch_ids": "x",
        "last_sync": 7,
    }))

    data = load_storage_data(str(path))

    assert data.notifications == []
    assert data.custom_states == {}
    assert data.active_batch_ids == []
    assert data.last_sync == 7


def test_custom_states_are_applied_on_load(tmp_path) -> None:
    path = str(tmp_path / "snapshot.json")
    save_storage_data(path, StorageData(
        notifications=[notification("1", day(1), is_read=False)],
        custom_states={"1": CustomState(is_read=True, is_done=True, priority=4)},
    ))

    loaded = load_storage_data(path).notifications[0]

    assert loaded.is_read is True
    assert loaded.is_done is True
    assert loaded.priority == 4


def test_corrupt_snapshot_gives_defaults(tmp_path) -> None:
    path = tmp_path / "snapshot.json"
    path.write_text("[1, 2")

    data = load_storage_data(str(path))

    assert data.notifications == []


def test_unreadable_notification_is_skipped(tmp_path) -> None:
    path = tmp_path / "snapshot.json"
    good = notification("1", day(1)).to_dict()
    path.write_text(json.dumps({"notifications": [good, {"id": "2"}]}))

    data = load_storage_data(str(path))

    assert [n.id for n in data.notifications] == ["1"]


def test_save_failure_is_not_raised(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory")

    assert save_storage_data(str(blocker / "snapshot.json"), StorageData()) is False


def test_delete_missing_file_is_fine(tmp_path) -> None:
    path = tmp_path / "snapshot.json"
    delete_storage_data(str(path))

    save_storage_data(str(path), StorageData())
    delete_storage_data(str(path))
    assert not path.exists()
