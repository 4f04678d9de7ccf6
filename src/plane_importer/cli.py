"""CLI for importing semicolon-delimited task exports into Plane."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .client import Config, PlaneClient
from .importer import Importer, ImportSummary, PurgeSummary, purge_issues
from .mutate import MAX_ATTEMPTS, PACING_DELAY, RetryingMutator
from .records import DEFAULT_TASK_FILE, MALFORMED_ABORT, MALFORMED_SKIP, read_task_file
from .translate import (
    UNRESOLVED_FALLBACK,
    UNRESOLVED_SKIP,
    FieldTranslator,
    load_assignee_map,
    load_group_aliases,
    load_status_map,
    write_assignee_map_template,
)

ENV_KEYS = ("PLANE_API_URL", "PLANE_API_KEY", "WORKSPACE_SLUG", "PROJECT_NAME")


def _read_env_file(path: Path) -> Dict[str, str]:
    values: Dict[str, str] = {}
    if not path.exists():
        return values
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key.startswith("export "):
            key = key[len("export "):].strip()
        values[key] = value.strip().strip("'\"")
    return values


def _resolve_settings(args: argparse.Namespace) -> Dict[str, Optional[str]]:
    """Flags win over the environment, which wins over the .env file."""
    settings: Dict[str, Optional[str]] = {
        "PLANE_API_URL": args.base_url,
        "PLANE_API_KEY": args.api_key,
        "WORKSPACE_SLUG": args.workspace,
        "PROJECT_NAME": args.project_name,
    }
    for key in ENV_KEYS:
        settings[key] = settings[key] or os.environ.get(key)
    if not all(settings.values()) and args.env_file:
        file_values = _read_env_file(Path(args.env_file))
        for key in ENV_KEYS:
            settings[key] = settings[key] or file_values.get(key)
    return settings


def _print_import_summary(summary: ImportSummary) -> None:
    print("\n====== CREATED TASKS SUMMARY ======")
    print(f"Successfully created {summary.created_count}/{summary.total} tasks:")
    for i, (title, remote_id) in enumerate(summary.created, start=1):
        print(f"{i}. {title} ({remote_id})")
    if summary.problems:
        print(f"Skipped: {summary.skipped_count}, failed: {summary.failed_count}")
        for outcome in summary.problems:
            detail = outcome.error_kind or outcome.status
            print(f"- {outcome.title} [{outcome.local_id}]: {detail}: {outcome.reason}")
    print("==================================\n")


def _print_purge_summary(summary: PurgeSummary) -> None:
    print(f"Deleted {len(summary.deleted)}/{summary.found} tasks.")
    for issue_id, kind in summary.failed:
        print(f"- {issue_id}: {kind}", file=sys.stderr)


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import a task export into a Plane project.")
    parser.add_argument("--input", default=DEFAULT_TASK_FILE, help="Path to the ';'-delimited task export.")
    parser.add_argument("--base-url", help="Plane base URL, e.g. https://plane.example.com.")
    parser.add_argument("--api-key", help="Plane API key.")
    parser.add_argument("--workspace", help="Plane workspace slug.")
    parser.add_argument("--project-name", help="Name of the Plane project to import into.")
    parser.add_argument("--env-file", default=".env", help="Path to .env file for PLANE_* settings.")
    parser.add_argument("--flat", action="store_true", help="Create every task without parent links.")
    parser.add_argument("--dry-run", action="store_true", help="Print mutating API calls without sending.")
    parser.add_argument("--insecure", action="store_true", help="Disable TLS verification.")
    parser.add_argument("--debug-http", action="store_true", help="Log HTTP requests and responses.")
    parser.add_argument("--assignee-map", help="Path to JSON file mapping assignee names to member IDs.")
    parser.add_argument(
        "--write-assignee-map",
        help="Write assignee map template JSON from the input and exit.",
    )
    parser.add_argument("--status-map", help="Path to JSON file mapping status labels to state keys.")
    parser.add_argument(
        "--group-aliases",
        help="Path to JSON file mapping state keys to Plane state groups, tried when the key itself has no state.",
    )
    parser.add_argument(
        "--on-unresolved-state",
        choices=[UNRESOLVED_FALLBACK, UNRESOLVED_SKIP],
        default=UNRESOLVED_FALLBACK,
        help="Use the state key literally, or skip the task, when no state ID matches.",
    )
    parser.add_argument(
        "--on-malformed-row",
        choices=[MALFORMED_SKIP, MALFORMED_ABORT],
        default=MALFORMED_SKIP,
        help="Skip malformed lines with a warning, or abort the batch.",
    )
    parser.add_argument("--max-attempts", type=int, default=MAX_ATTEMPTS, help="Attempts per call when rate limited.")
    parser.add_argument("--pacing", type=float, default=PACING_DELAY, help="Seconds to wait between mutating calls.")
    parser.add_argument("--purge-project", action="store_true", help="Delete tasks in the target project before import.")
    parser.add_argument("--purge-confirm", help="Set to YES to confirm purge.")
    parser.add_argument("--purge-only", action="store_true", help="Exit after purging.")
    parser.add_argument("--limit-tasks", type=int, help="Only import the first N tasks.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the Plane import CLI."""

    args = _parse_args(sys.argv[1:] if argv is None else argv)
    if args.write_assignee_map:
        records = read_task_file(Path(args.input), args.on_malformed_row)
        write_assignee_map_template(records, Path(args.write_assignee_map))
        print(f"Wrote assignee map template to {args.write_assignee_map}")
        return 0

    settings = _resolve_settings(args)
    missing = [key for key, value in settings.items() if not value]
    if missing:
        print(
            f"Error: missing settings {', '.join(missing)} (use flags, environment or .env).",
            file=sys.stderr,
        )
        return 1
    base_url = settings["PLANE_API_URL"].rstrip("/")
    if base_url.endswith("/api/v1"):
        base_url = base_url[: -len("/api/v1")]
    cfg = Config(
        base_url=base_url,
        api_key=settings["PLANE_API_KEY"],
        workspace_slug=settings["WORKSPACE_SLUG"],
        project_name=settings["PROJECT_NAME"],
        dry_run=args.dry_run,
        verify_ssl=not args.insecure,
        debug_http=args.debug_http,
    )
    try:
        client = PlaneClient(cfg)
        mutator = RetryingMutator(max_attempts=args.max_attempts, pacing_delay=args.pacing)
        project_id = client.initialize()
        print(f"Using project {cfg.project_name!r} (ID: {project_id})")

        if args.purge_project or args.purge_only:
            _print_purge_summary(purge_issues(client, mutator, args.purge_confirm))
            if args.purge_only:
                return 0

        records = read_task_file(Path(args.input), args.on_malformed_row)
        if args.limit_tasks:
            records = records[: args.limit_tasks]
        translator = FieldTranslator(
            status_map=load_status_map(args.status_map),
            group_aliases=load_group_aliases(args.group_aliases),
            assignee_map=load_assignee_map(args.assignee_map),
            on_unresolved_state=args.on_unresolved_state,
        )
        importer = Importer(client, translator, mutator)
        summary = importer.run_flat(records) if args.flat else importer.run(records)
    except Exception as exc:  # noqa: BLE001 - CLI should report any failure.
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    _print_import_summary(summary)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
