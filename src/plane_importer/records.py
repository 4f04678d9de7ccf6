"""Parsing of the semicolon-delimited task export and hierarchy grouping."""

from __future__ import annotations

import csv
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

COLUMNS = (
    "id",
    "name",
    "status",
    "dueDate",
    "startDate",
    "parentId",
    "assignees",
    "priority",
    "timeEstimated",
)
DEFAULT_TASK_FILE = "datas.csv"

MALFORMED_SKIP = "skip"
MALFORMED_ABORT = "abort"

_ASSIGNEES_RE = re.compile(r"\[(.*)\]")


class ParseError(ValueError):
    """A task line could not be parsed and the batch was aborted."""

    def __init__(self, line_number: int, line: str, reason: str):
        super().__init__(f"line {line_number}: {reason}: {line!r}")
        self.line_number = line_number
        self.line = line
        self.reason = reason


@dataclass
class TaskRecord:
    local_id: str
    title: str
    status_label: str
    due_date: Optional[str] = None
    start_date: Optional[str] = None
    parent_local_id: Optional[str] = None
    assignee_names: List[str] = field(default_factory=list)
    priority_code: Optional[str] = None
    estimate: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return self.parent_local_id is None


def _optional(value: str) -> Optional[str]:
    value = value.strip()
    if not value or value == "null":
        return None
    return value


def _split_assignees(value: str) -> List[str]:
    match = _ASSIGNEES_RE.search(value)
    if not match:
        return []
    names = [n.strip() for n in match.group(1).split(",")]
    return [n for n in names if n]


def _rows(lines: Iterable[str]) -> Iterator[List[str]]:
    # Quotes carry no meaning in the export; only ";" separates fields.
    return csv.reader(lines, delimiter=";", quoting=csv.QUOTE_NONE)


def parse_row(parts: List[str]) -> TaskRecord:
    if len(parts) != len(COLUMNS):
        raise ValueError(f"expected {len(COLUMNS)} columns, got {len(parts)}")
    local_id, name, status, due, start, parent, assignees, priority, estimate = parts
    return TaskRecord(
        local_id=local_id.strip(),
        title=name.strip(),
        status_label=status.strip(),
        due_date=_optional(due),
        start_date=_optional(start),
        parent_local_id=_optional(parent),
        assignee_names=_split_assignees(assignees),
        priority_code=_optional(priority),
        estimate=_optional(estimate),
    )


def parse_line(line: str) -> TaskRecord:
    return parse_row(next(_rows([line]), []))


def parse_task_data(text: str, on_malformed_row: str = MALFORMED_SKIP) -> List[TaskRecord]:
    """Parse the raw export text into task records, one per non-blank line."""
    if on_malformed_row not in (MALFORMED_SKIP, MALFORMED_ABORT):
        raise ValueError(f"Unknown malformed row policy: {on_malformed_row!r}")
    records: List[TaskRecord] = []
    lines = [line.rstrip("\r") for line in text.split("\n")]
    for line_number, row in enumerate(_rows(lines), start=1):
        line = ";".join(row)
        if len(row) <= 1 and not line.strip():
            continue
        try:
            records.append(parse_row(row))
        except ValueError as exc:
            if on_malformed_row == MALFORMED_ABORT:
                raise ParseError(line_number, line, str(exc)) from exc
            print(f"Warning: skipping line {line_number}: {exc}", file=sys.stderr)
    return records


def read_task_file(path: Path, on_malformed_row: str = MALFORMED_SKIP) -> List[TaskRecord]:
    with path.open(encoding="utf-8-sig") as fh:
        return parse_task_data(fh.read(), on_malformed_row)


def group_by_hierarchy(
    records: Sequence[TaskRecord],
) -> Tuple[List[TaskRecord], List[TaskRecord]]:
    """Split records into (roots, children), keeping input order in each."""
    roots = [r for r in records if r.is_root]
    children = [r for r in records if not r.is_root]
    return roots, children
