"""Translation of task records into Plane issue payloads."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, ItemsView, Iterable, List, Mapping, Optional

from .records import TaskRecord

PRIORITIES = ("urgent", "high", "medium", "low", "none")

DEFAULT_PRIORITY_MAP: Dict[str, str] = {
    "1": "urgent",
    "2": "high",
    "3": "medium",
    "4": "low",
    "null": "none",
}

DEFAULT_STATUS_MAP: Dict[str, str] = {
    "taches à completer": "to_do",
    "taches en planning": "backlog",
    "taches terminé(e)s": "done",
    "taches fermé(e)s": "cancelled",
}

# Plane state groups are backlog/unstarted/started/completed/cancelled.
DEFAULT_GROUP_ALIASES: Dict[str, str] = {
    "to_do": "unstarted",
    "done": "completed",
}

UNRESOLVED_FALLBACK = "fallback"
UNRESOLVED_SKIP = "skip"


class StateCatalog:
    """Read-only map of state group key to remote state id."""

    def __init__(self, mapping: Optional[Mapping[str, str]] = None):
        self._ids: Dict[str, str] = {}
        for key, state_id in (mapping or {}).items():
            self._ids.setdefault(key.lower(), state_id)

    @classmethod
    def from_states(cls, states: Iterable[Dict[str, Any]]) -> "StateCatalog":
        catalog = cls()
        for state in states:
            group = state.get("group")
            state_id = state.get("id")
            if not group or not state_id:
                continue
            # First state listed in a group wins.
            catalog._ids.setdefault(str(group).lower(), str(state_id))
        return catalog

    def lookup(self, key: str) -> Optional[str]:
        return self._ids.get(key.lower())

    def items(self) -> ItemsView[str, str]:
        return self._ids.items()

    def __len__(self) -> int:
        return len(self._ids)

    def __bool__(self) -> bool:
        return bool(self._ids)


@dataclass
class TranslatedIssue:
    title: str
    description: str
    priority: str
    state_id: str
    assignee_ids: List[str] = field(default_factory=list)
    parent_remote_id: Optional[str] = None
    state_resolved: bool = True

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.title,
            "description": self.description,
            "priority": self.priority,
            "state": self.state_id,
            "assignees": list(self.assignee_ids),
        }
        if self.parent_remote_id:
            payload["parent"] = self.parent_remote_id
        return payload


class FieldTranslator:
    """Maps task vocabulary onto Plane's.

    All lookup tables are passed in, so a batch can run against its own
    status vocabulary and assignee directory.
    """

    def __init__(
        self,
        status_map: Optional[Mapping[str, str]] = None,
        assignee_map: Optional[Mapping[str, str]] = None,
        priority_map: Optional[Mapping[str, str]] = None,
        group_aliases: Optional[Mapping[str, str]] = None,
        default_status_key: str = "backlog",
        on_unresolved_state: str = UNRESOLVED_FALLBACK,
    ):
        if on_unresolved_state not in (UNRESOLVED_FALLBACK, UNRESOLVED_SKIP):
            raise ValueError(f"Unknown unresolved state policy: {on_unresolved_state!r}")
        self.status_map = dict(DEFAULT_STATUS_MAP if status_map is None else status_map)
        self.assignee_map = dict(assignee_map or {})
        self.priority_map = dict(DEFAULT_PRIORITY_MAP if priority_map is None else priority_map)
        self.group_aliases = {
            k.lower(): v.lower()
            for k, v in (DEFAULT_GROUP_ALIASES if group_aliases is None else group_aliases).items()
        }
        self.default_status_key = default_status_key
        self.on_unresolved_state = on_unresolved_state

    def priority(self, code: Optional[str]) -> str:
        # Unknown codes map to "none".
        value = self.priority_map.get(code or "null", "none")
        return value if value in PRIORITIES else "none"

    def status_key(self, label: str) -> str:
        return self.status_map.get(label, self.default_status_key)

    def resolve_state(self, key: str, catalog: StateCatalog) -> Optional[str]:
        state_id = catalog.lookup(key)
        if state_id:
            return state_id
        alias = self.group_aliases.get(key.lower())
        if alias:
            return catalog.lookup(alias)
        return None

    def assignee_ids(self, names: Iterable[str]) -> List[str]:
        ids: List[str] = []
        for name in names:
            user_id = self.assignee_map.get(name)
            if user_id and user_id not in ids:
                ids.append(user_id)
        return ids

    def translate(
        self,
        record: TaskRecord,
        catalog: StateCatalog,
        parent_remote_id: Optional[str] = None,
    ) -> TranslatedIssue:
        """Translate one record.

        When the state cannot be resolved the literal state key is used and
        ``state_resolved`` is False; callers apply ``on_unresolved_state``.
        """
        key = self.status_key(record.status_label)
        state_id = self.resolve_state(key, catalog)
        return TranslatedIssue(
            title=record.title,
            description=f"Estimated time: {record.estimate}" if record.estimate else "",
            priority=self.priority(record.priority_code),
            state_id=state_id or key,
            assignee_ids=self.assignee_ids(record.assignee_names),
            parent_remote_id=parent_remote_id,
            state_resolved=state_id is not None,
        )

    @property
    def skips_unresolved(self) -> bool:
        return self.on_unresolved_state == UNRESOLVED_SKIP


def load_assignee_map(path: Optional[str]) -> Dict[str, str]:
    if not path:
        return {}
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items() if v}
    raise ValueError("Assignee map must be a JSON object of {name: member_id}.")


def load_status_map(path: Optional[str]) -> Optional[Dict[str, str]]:
    if not path:
        return None
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    raise ValueError("Status map must be a JSON object of {status label: state key}.")


def load_group_aliases(path: Optional[str]) -> Optional[Dict[str, str]]:
    if not path:
        return None
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    raise ValueError("Group aliases must be a JSON object of {state key: state group}.")


def write_assignee_map_template(records: Iterable[TaskRecord], output_path: Path) -> None:
    names = sorted({name for record in records for name in record.assignee_names})
    template = {name: None for name in names}
    output_path.write_text(json.dumps(template, indent=2, sort_keys=True, ensure_ascii=False))
