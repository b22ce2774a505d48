"""
Persistence gateway for Meeting and Action records.

InMemoryGateway keeps records in dicts guarded by one lock, which gives the
per-row atomic read-modify-write the orchestrator relies on (including the
uploaded -> processing compare-and-swap). When data_root is set, every write is
also snapshotted to data_root/pipeline_store.json and reloaded on start.
"""
import copy
import json
import logging
import os
import threading
import uuid
from dataclasses import asdict, fields
from typing import Any, Dict, List, Optional, Protocol

from coachflow.core.errors import GatewayError, RecordNotFoundError
from coachflow.extract.coerce import parse_datetime
from coachflow.models.entities import (
    STATUS_TRANSITIONS,
    Action,
    Meeting,
    ProcessingStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

STORE_FILENAME = "pipeline_store.json"

_MEETING_DATES = ("created_at", "processed_at")
_ACTION_DATES = ("due_date", "completed_at", "created_at")


class PersistenceGateway(Protocol):
    def create_meeting(self, **fields: Any) -> Meeting: ...
    def update_meeting(self, meeting_id: str, **fields: Any) -> Meeting: ...
    def get_meeting(self, meeting_id: str) -> Optional[Meeting]: ...
    def transition_status(
        self, meeting_id: str, expected: ProcessingStatus, target: ProcessingStatus, **fields: Any
    ) -> Optional[Meeting]: ...
    def create_action(self, **fields: Any) -> Action: ...
    def list_actions(self, meeting_id: str) -> List[Action]: ...
    def get_action(self, action_id: str) -> Optional[Action]: ...
    def update_action(self, action_id: str, **fields: Any) -> Action: ...
    def transition_action(self, action_id: str, expected: str, **fields: Any) -> Optional[Action]: ...
    def delete_actions(self, meeting_id: str) -> int: ...
    def list_user_actions(self, user_id: str, status: Optional[str] = None) -> List[Action]: ...
    def list_user_meetings(self, user_id: str) -> List[Meeting]: ...


def check_status_move(current: ProcessingStatus, target: ProcessingStatus) -> None:
    """Raise GatewayError unless current -> target is a forward move (or no move)."""
    if current != target and target not in STATUS_TRANSITIONS[current]:
        raise GatewayError(f"Illegal status transition {current.value} -> {target.value}")


def _known(cls, values: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    unknown = set(values) - names
    if unknown:
        raise GatewayError(f"Unknown {cls.__name__} fields: {', '.join(sorted(unknown))}")
    return values


class InMemoryGateway:
    """Dict-backed store. Records handed out are copies; all changes go through update_* methods."""

    def __init__(self, data_root: Optional[str] = None):
        self.data_root = data_root
        self._lock = threading.RLock()
        self._meetings: Dict[str, Meeting] = {}
        self._actions: Dict[str, Action] = {}
        if data_root:
            self._load()

    # ---- meetings ----

    def create_meeting(self, **values: Any) -> Meeting:
        values.setdefault("id", str(uuid.uuid4()))
        meeting = Meeting(**_known(Meeting, values))
        with self._lock:
            if meeting.id in self._meetings:
                raise GatewayError(f"Meeting {meeting.id} already exists")
            self._meetings[meeting.id] = meeting
            self._save()
            return copy.deepcopy(meeting)

    def get_meeting(self, meeting_id: str) -> Optional[Meeting]:
        with self._lock:
            meeting = self._meetings.get(meeting_id)
            return copy.deepcopy(meeting) if meeting else None

    def update_meeting(self, meeting_id: str, **values: Any) -> Meeting:
        _known(Meeting, values)
        with self._lock:
            meeting = self._meetings.get(meeting_id)
            if meeting is None:
                raise RecordNotFoundError(f"Meeting {meeting_id} not found")
            if "processing_status" in values:
                values["processing_status"] = ProcessingStatus(values["processing_status"])
                check_status_move(meeting.processing_status, values["processing_status"])
            for key, val in values.items():
                setattr(meeting, key, copy.deepcopy(val))
            self._save()
            return copy.deepcopy(meeting)

    def transition_status(
        self, meeting_id: str, expected: ProcessingStatus, target: ProcessingStatus, **values: Any
    ) -> Optional[Meeting]:
        """Compare-and-swap: move to target only if the meeting is currently expected. Returns None when it is not."""
        with self._lock:
            meeting = self._meetings.get(meeting_id)
            if meeting is None:
                raise RecordNotFoundError(f"Meeting {meeting_id} not found")
            if meeting.processing_status != expected:
                return None
            return self.update_meeting(meeting_id, processing_status=target, **values)

    def list_user_meetings(self, user_id: str) -> List[Meeting]:
        with self._lock:
            found = [m for m in self._meetings.values() if m.user_id == user_id]
            found.sort(key=lambda m: m.created_at, reverse=True)
            return copy.deepcopy(found)

    # ---- actions ----

    def create_action(self, **values: Any) -> Action:
        values.setdefault("id", str(uuid.uuid4()))
        action = Action(**_known(Action, values))
        with self._lock:
            if action.meeting_id not in self._meetings:
                raise RecordNotFoundError(f"Meeting {action.meeting_id} not found")
            self._actions[action.id] = action
            self._save()
            return copy.deepcopy(action)

    def get_action(self, action_id: str) -> Optional[Action]:
        with self._lock:
            action = self._actions.get(action_id)
            return copy.deepcopy(action) if action else None

    def update_action(self, action_id: str, **values: Any) -> Action:
        _known(Action, values)
        with self._lock:
            action = self._actions.get(action_id)
            if action is None:
                raise RecordNotFoundError(f"Action {action_id} not found")
            for key, val in values.items():
                setattr(action, key, copy.deepcopy(val))
            self._save()
            return copy.deepcopy(action)

    def transition_action(self, action_id: str, expected: str, **values: Any) -> Optional[Action]:
        """Compare-and-swap on action status: apply values only if the action is currently expected. Returns None when it is not."""
        with self._lock:
            action = self._actions.get(action_id)
            if action is None:
                raise RecordNotFoundError(f"Action {action_id} not found")
            if action.status != expected:
                return None
            return self.update_action(action_id, **values)

    def delete_actions(self, meeting_id: str) -> int:
        with self._lock:
            doomed = [a.id for a in self._actions.values() if a.meeting_id == meeting_id]
            for action_id in doomed:
                del self._actions[action_id]
            if doomed:
                self._save()
            return len(doomed)

    def list_actions(self, meeting_id: str) -> List[Action]:
        with self._lock:
            found = [a for a in self._actions.values() if a.meeting_id == meeting_id]
            found.sort(key=lambda a: a.created_at)
            return copy.deepcopy(found)

    def list_user_actions(self, user_id: str, status: Optional[str] = None) -> List[Action]:
        with self._lock:
            found = [
                a for a in self._actions.values()
                if a.user_id == user_id and (status is None or a.status == status)
            ]
            return copy.deepcopy(found)

    # ---- snapshot ----

    def _path(self) -> str:
        return os.path.join(self.data_root or "", STORE_FILENAME)

    def _save(self) -> None:
        if not self.data_root:
            return
        os.makedirs(self.data_root, exist_ok=True)
        data = {
            "meetings": [asdict(m) for m in self._meetings.values()],
            "actions": [asdict(a) for a in self._actions.values()],
        }
        tmp = self._path() + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=_json_default)
            os.replace(tmp, self._path())
        except OSError as e:
            raise GatewayError(f"Could not write {self._path()}: {e}") from e

    def _load(self) -> None:
        path = self._path()
        if not os.path.isfile(path):
            return
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise GatewayError(f"Could not read {path}: {e}") from e

        for raw in data.get("meetings") or []:
            for key in _MEETING_DATES:
                raw[key] = parse_datetime(raw.get(key))
            raw["created_at"] = raw["created_at"] or utcnow()
            raw["processing_status"] = ProcessingStatus(raw.get("processing_status", "uploaded"))
            meeting = Meeting(**raw)
            self._meetings[meeting.id] = meeting
        for raw in data.get("actions") or []:
            for key in _ACTION_DATES:
                raw[key] = parse_datetime(raw.get(key))
            raw["created_at"] = raw["created_at"] or utcnow()
            action = Action(**raw)
            self._actions[action.id] = action
        logger.info("store_loaded", extra={"meetings": len(self._meetings), "actions": len(self._actions)})


def _json_default(value: Any) -> Any:
    if isinstance(value, ProcessingStatus):
        return value.value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
