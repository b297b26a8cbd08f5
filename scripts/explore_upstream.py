#!/usr/bin/env python
"""Explore the upstream production chain of a sourcing requirement.

The requirement is decomposed recursively: each run selects the best matching process from
the workbook, and its most industry-relevant non-elementary input flows become new
requirements one level further upstream.

Usage:
  uv run python scripts/explore_upstream.py --requirement "Aluminium ingot production in China, 2020" \
      --workbook data/processes.xlsx
  uv run python scripts/explore_upstream.py --requirement-file requirement.txt --mode queue --max-iterations 20

Outputs (by default):
  - artifacts/upstream/<run_id>/report.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

SCRIPT_DIR = Path(__file__).resolve().parent
REPO_ROOT = SCRIPT_DIR.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

from tiangong_lca_upstream.core.config import Settings, get_settings  # noqa: E402
from tiangong_lca_upstream.core.exceptions import MisconfigurationError  # noqa: E402
from tiangong_lca_upstream.core.logging import configure_logging, get_logger  # noqa: E402
from tiangong_lca_upstream.datasource import WorkbookDataSource  # noqa: E402
from tiangong_lca_upstream.oracle import OpenAIOracle  # noqa: E402
from tiangong_lca_upstream.upstream import UpstreamExplorer  # noqa: E402

LOGGER = get_logger("scripts.explore_upstream")
LATEST_RUN_ID_NAME = ".latest_run_id"


def generate_run_id() -> str:
    """Return a UTC timestamp-based identifier, e.g., 20251030T053000Z."""
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def dump_json(data: Any, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--requirement", help="Free-text sourcing requirement.")
    source.add_argument("--requirement-file", type=Path, help="UTF-8 text file holding the requirement.")
    parser.add_argument("--workbook", type=Path, help="Workbook with process_* and flow_* sheets (overrides LCA_WORKBOOK_PATH).")
    parser.add_argument("--mode", choices=("tree", "queue"), help="Recursion policy (defaults to LCA_RECURSION_MODE).")
    parser.add_argument("--max-depth", type=int, help="Depth cap for tree recursion.")
    parser.add_argument("--max-iterations", type=int, help="Iteration cap for queue recursion.")
    parser.add_argument("--profile", choices=("default", "batch", "debug"), help="Workflow profile.")
    parser.add_argument("--run-id", help="Run identifier under the artifacts directory. Defaults to a new UTC timestamp.")
    parser.add_argument("--log-level", choices=("DEBUG", "INFO", "WARNING", "ERROR"), help="Logging level.")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON logs instead of the console renderer.")
    return parser.parse_args(argv)


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {}
    for attr, field_name in (
        ("workbook", "workbook_path"),
        ("mode", "recursion_mode"),
        ("max_depth", "max_depth"),
        ("max_iterations", "max_iterations"),
        ("profile", "workflow_profile"),
        ("log_level", "log_level"),
    ):
        value = getattr(args, attr)
        if value is not None:
            overrides[field_name] = value
    base = get_settings()
    return base.model_copy(update=overrides) if overrides else base


def _read_requirement(args: argparse.Namespace) -> str:
    if args.requirement_file is not None:
        text = args.requirement_file.read_text(encoding="utf-8")
    else:
        text = args.requirement or ""
    text = text.strip()
    if not text:
        raise SystemExit("Requirement text is empty")
    return text


async def _explore(settings: Settings, requirement: str) -> dict[str, Any]:
    if settings.workbook_path is None:
        raise MisconfigurationError("No workbook configured; pass --workbook or set LCA_WORKBOOK_PATH")
    oracle = OpenAIOracle(settings)
    try:
        explorer = UpstreamExplorer(oracle=oracle, data_source=WorkbookDataSource(settings.workbook_path), settings=settings)
        report = await explorer.explore(requirement, mode=settings.recursion_mode)
    finally:
        await oracle.close()
    return report.as_dict()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = _settings_from_args(args)
    configure_logging(settings=settings, json_output=args.json_logs)
    requirement = _read_requirement(args)

    run_id = args.run_id or generate_run_id()
    run_root = settings.artifacts_dir / run_id
    LOGGER.info("explore_upstream.start", run_id=run_id, mode=settings.recursion_mode, workbook=str(settings.workbook_path))
    try:
        payload = asyncio.run(_explore(settings, requirement))
    except MisconfigurationError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    payload["run_id"] = run_id
    report_path = run_root / "report.json"
    dump_json(payload, report_path)
    (settings.artifacts_dir / LATEST_RUN_ID_NAME).write_text(run_id, encoding="utf-8")
    LOGGER.info(
        "explore_upstream.completed",
        run_id=run_id,
        report=str(report_path),
        selected=len(payload["selected_processes"]),
        more_pending=payload["more_pending"],
    )
    print(report_path)


if __name__ == "__main__":
    main()
