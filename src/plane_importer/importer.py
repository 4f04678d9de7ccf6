"""Two-phase import of task records into a Plane project."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .client import PlaneClient, PlaneError
from .mutate import RetryingMutator
from .records import TaskRecord, group_by_hierarchy
from .translate import FieldTranslator, StateCatalog

CREATED = "created"
SKIPPED_MISSING_PARENT = "skipped_missing_parent"
SKIPPED_UNMAPPABLE_STATE = "skipped_unmappable_state"
FAILED = "failed"


class ImportAbortedError(RuntimeError):
    """The run cannot start, e.g. no states and no fallback allowed."""


@dataclass
class ImportOutcome:
    local_id: str
    title: str
    status: str
    remote_id: Optional[str] = None
    error_kind: Optional[str] = None
    reason: Optional[str] = None

    @property
    def created(self) -> bool:
        return self.status == CREATED

    @property
    def skipped(self) -> bool:
        return self.status in (SKIPPED_MISSING_PARENT, SKIPPED_UNMAPPABLE_STATE)


@dataclass
class ImportSummary:
    outcomes: List[ImportOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def created(self) -> List[Tuple[str, str]]:
        return [(o.title, o.remote_id) for o in self.outcomes if o.created]

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def skipped_count(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == FAILED)

    @property
    def problems(self) -> List[ImportOutcome]:
        return [o for o in self.outcomes if not o.created]

    def outcome_for(self, local_id: str) -> Optional[ImportOutcome]:
        for outcome in self.outcomes:
            if outcome.local_id == local_id:
                return outcome
        return None


@dataclass
class PurgeSummary:
    found: int = 0
    deleted: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)


class Importer:
    """Creates issues for a batch of records, roots before children."""

    def __init__(
        self,
        client: PlaneClient,
        translator: FieldTranslator,
        mutator: Optional[RetryingMutator] = None,
    ):
        self.client = client
        self.translator = translator
        self.mutator = mutator or RetryingMutator()

    def load_catalog(self) -> StateCatalog:
        try:
            catalog = StateCatalog.from_states(self.client.list_states())
        except PlaneError as exc:
            if self.translator.skips_unresolved:
                raise ImportAbortedError(f"Cannot fetch issue states: {exc}") from exc
            print(f"Warning: fetching states failed ({exc}); using state keys directly.", file=sys.stderr)
            return StateCatalog()
        if not catalog:
            if self.translator.skips_unresolved:
                raise ImportAbortedError("No states found - cannot proceed without valid state IDs.")
            print("Warning: no states found, using state keys directly.", file=sys.stderr)
        else:
            for key, state_id in catalog.items():
                print(f"State {key} -> {state_id}")
        return catalog

    def _create(
        self,
        record: TaskRecord,
        catalog: StateCatalog,
        parent_remote_id: Optional[str] = None,
    ) -> ImportOutcome:
        try:
            return self._create_issue(record, catalog, parent_remote_id)
        except Exception as exc:  # noqa: BLE001 - one record must not stop the batch.
            print(f"[FAIL] create task {record.title!r}: {exc!r}", file=sys.stderr)
            return ImportOutcome(
                record.local_id,
                record.title,
                FAILED,
                error_kind="unexpected",
                reason=str(exc),
            )

    def _create_issue(
        self,
        record: TaskRecord,
        catalog: StateCatalog,
        parent_remote_id: Optional[str] = None,
    ) -> ImportOutcome:
        issue = self.translator.translate(record, catalog, parent_remote_id)
        if not issue.state_resolved and self.translator.skips_unresolved:
            print(
                f"Cannot find state ID for status {record.status_label!r} "
                f"(mapped to {issue.state_id!r}); skipping {record.title!r}.",
                file=sys.stderr,
            )
            return ImportOutcome(
                record.local_id,
                record.title,
                SKIPPED_UNMAPPABLE_STATE,
                reason=f"no state for {issue.state_id!r}",
            )

        payload = issue.to_payload()
        print(f"Creating task: {record.title} with state: {issue.state_id}")
        result = self.mutator.mutate(
            f"create task {record.title!r}",
            lambda: self.client.create_issue(payload),
        )
        if not result.ok:
            return ImportOutcome(
                record.local_id,
                record.title,
                FAILED,
                error_kind=result.error_kind,
                reason=str(result.error),
            )
        data: Dict[str, Any] = result.value if isinstance(result.value, dict) else {}
        remote_id = data.get("id")
        if not remote_id:
            return ImportOutcome(
                record.local_id,
                record.title,
                FAILED,
                error_kind="invalid_response",
                reason="create returned no id",
            )
        print(f"Created task: {record.title} with ID: {remote_id}")
        return ImportOutcome(record.local_id, record.title, CREATED, remote_id=str(remote_id))

    def run(self, records: Sequence[TaskRecord]) -> ImportSummary:
        """Create roots, then children whose parent was created."""
        catalog = self.load_catalog()
        roots, children = group_by_hierarchy(records)
        id_map: Dict[str, str] = {}
        summary = ImportSummary()

        print(f"Creating {len(roots)} parent tasks...")
        for record in roots:
            outcome = self._create(record, catalog)
            if outcome.created:
                id_map[record.local_id] = outcome.remote_id
            summary.outcomes.append(outcome)

        print(f"Creating {len(children)} child tasks...")
        for record in children:
            parent_remote_id = id_map.get(record.parent_local_id)
            if not parent_remote_id:
                print(
                    f"Warning: parent task {record.parent_local_id} not found for task {record.title}",
                    file=sys.stderr,
                )
                summary.outcomes.append(
                    ImportOutcome(
                        record.local_id,
                        record.title,
                        SKIPPED_MISSING_PARENT,
                        reason=f"parent {record.parent_local_id} was not created",
                    )
                )
                continue
            outcome = self._create(record, catalog, parent_remote_id)
            if outcome.created:
                id_map[record.local_id] = outcome.remote_id
            summary.outcomes.append(outcome)
        return summary

    def run_flat(self, records: Sequence[TaskRecord]) -> ImportSummary:
        """Create every record in input order without parent links."""
        catalog = self.load_catalog()
        summary = ImportSummary()
        print(f"Importing {len(records)} tasks directly...")
        for record in records:
            summary.outcomes.append(self._create(record, catalog))
        return summary


def purge_issues(
    client: PlaneClient,
    mutator: RetryingMutator,
    confirm: Optional[str],
    per_page: int = 100,
) -> PurgeSummary:
    """Delete the first page of issues in the project."""
    if confirm != "YES":
        raise RuntimeError("Refusing to purge project without --purge-confirm YES.")
    issues = client.list_issues(page=1, per_page=per_page)
    summary = PurgeSummary(found=len(issues))
    if not issues:
        print("No tasks found to delete.")
        return summary
    print(f"Found {len(issues)} tasks to delete.")
    for issue in issues:
        issue_id = issue.get("id")
        name = issue.get("name") or ""
        if not issue_id:
            print(f"Warning: listed task {name!r} has no ID; not deleted.", file=sys.stderr)
            summary.failed.append(("<no id>", "invalid_response"))
            continue
        result = mutator.mutate(
            f"delete task {name!r} ({issue_id})",
            lambda iid=str(issue_id): client.delete_issue(iid),
        )
        if result.ok:
            print(f"Deleted task: {name!r} (ID: {issue_id})")
            summary.deleted.append(str(issue_id))
        else:
            summary.failed.append((str(issue_id), result.error_kind or "error"))
    return summary
