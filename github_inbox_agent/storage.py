"""JSON snapshot persistence for notifications, overrides and inbox membership."""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .models import CustomState, Notification

logger = logging.getLogger(__name__)


@dataclass
class StorageData:
    """Everything the store persists between runs."""
    notifications: List[Notification] = field(default_factory=list)
    last_sync: int = 0                     # epoch ms
    active_batch_ids: List[str] = field(default_factory=list)
    custom_states: Dict[str, CustomState] = field(default_factory=dict)
    max_active: int = 0                    # 0 means "use the configured value"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notifications": [n.to_dict() for n in self.notifications],
            "last_sync": self.last_sync,
            "active_batch_ids": list(self.active_batch_ids),
            "custom_states": {k: v.to_dict() for k, v in self.custom_states.items()},
            "max_active": self.max_active,
        }


def _section(raw: Dict[str, Any], key: str, expected: type) -> Any:
    """Return ``raw[key]`` if it has the expected type, else an empty one."""
    value = raw.get(key)
    if value is None:
        return expected()
    if not isinstance(value, expected):
        logger.warning(
            f"Ignoring '{key}' in snapshot: expected {expected.__name__}, got {type(value).__name__}"
        )
        return expected()
    return value


def _from_dict(raw: Dict[str, Any]) -> StorageData:
    notifications = []
    for item in _section(raw, "notifications", list):
        try:
            notifications.append(Notification.from_dict(item))
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping unreadable notification in snapshot: {e}")

    custom_states = {}
    for notif_id, state in _section(raw, "custom_states", dict).items():
        if isinstance(state, dict):
            custom_states[str(notif_id)] = CustomState.from_dict(state)

    data = StorageData(
        notifications=notifications,
        last_sync=int(raw.get("last_sync") or 0),
        active_batch_ids=[str(i) for i in _section(raw, "active_batch_ids", list)],
        custom_states=custom_states,
        max_active=int(raw.get("max_active") or 0),
    )

    # Overrides are authoritative, even over what the notification list says
    for notification in data.notifications:
        state = data.custom_states.get(notification.id)
        if state is not None:
            notification.apply_overrides(state)

    return data


def load_storage_data(path: str) -> StorageData:
    """
    Read the snapshot file.

    Args:
        path: Snapshot file path.

    Returns:
        The stored data, or empty defaults if the file is missing or unreadable.
    """
    if not os.path.exists(path):
        return StorageData()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"expected a JSON object, got {type(raw).__name__}")
        data = _from_dict(raw)
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Could not load notification snapshot from {path}: {e}")
        return StorageData()

    logger.info(
        f"Loaded {len(data.notifications)} notifications, "
        f"{len(data.custom_states)} custom states from {path}"
    )
    return data


def save_storage_data(path: str, data: StorageData) -> bool:
    """
    Write the full snapshot.

    Errors are logged and reported through the return value, never raised.

    Returns:
        True if the snapshot was written.
    """
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data.to_dict(), f, indent=2)
        os.replace(tmp_path, path)
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Could not save notification snapshot to {path}: {e}")
        return False


def delete_storage_data(path: str) -> None:
    """Remove the snapshot file; a missing file is not an error."""
    try:
        os.remove(path)
        logger.info(f"Removed notification snapshot {path}")
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Could not remove notification snapshot {path}: {e}")
