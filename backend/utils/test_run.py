#!/usr/bin/env python3
"""
utils/test_run.py: Blog Auth test runner with a rich summary.

Usage (run from project root):
  python backend/utils/test_run.py                 # full suite
  python backend/utils/test_run.py --unit          # unit tests only
  python backend/utils/test_run.py --integration   # integration tests only
  python backend/utils/test_run.py --coverage      # with pytest-cov report
  python backend/utils/test_run.py -x              # stop on first failure
  python backend/utils/test_run.py -k "refresh"    # filter by keyword

Requires the test extra:  pip install -e ".[test]"
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.theme import Theme

THEME = Theme({
    "good":   "bright_green",
    "bad":    "bright_red",
    "warn":   "bright_yellow",
    "muted":  "bright_black",
    "unit":   "cyan",
    "intg":   "magenta",
    "accent": "bright_cyan",
})

con = Console(theme=THEME, highlight=False)

# Test module stem → the part of the auth core it exercises.
AREAS = {
    "test_token_codec":            "Token codec: round trip, expiry, algorithm pinning",
    "test_credentials":            "Credential verifier",
    "test_session_manager_units":  "Session manager: login / refresh / revoke / logout",
    "test_token_store_units":      "Token store statement timeout",
    "test_auth_gate":              "Auth gate and role decorators",
    "test_reaper_units":           "Expiry reaper scheduling and lifecycle",
    "test_token_store":            "Token store: blacklist, revoke, purge",
    "test_session_scenarios":      "End-to-end session scenarios",
    "test_reaper_and_cli":         "Reaper sweeps and CLI commands",
    "test_auth":                   "HTTP auth endpoints and rate limit",
    "test_users":                  "Admin-only user lookup",
    "test_validation_schemas":     "Request schemas",
    "test_settings_and_config":    "Settings and production config guard",
}


@dataclass
class TResult:
    nodeid:   str
    outcome:  str      # passed | failed | skipped
    duration: float
    summary:  str = ""

    @property
    def tier(self) -> str:
        if "/unit/" in self.nodeid:
            return "unit"
        if "/integration/" in self.nodeid:
            return "integration"
        return "other"

    @property
    def module_stem(self) -> str:
        return Path(self.nodeid.split("::")[0]).stem


@dataclass
class Stats:
    results: list[TResult] = field(default_factory=list)
    elapsed: float = 0.0

    def count(self, outcome: str, tier: str | None = None) -> int:
        return sum(
            1 for r in self.results
            if r.outcome == outcome and (tier is None or r.tier == tier)
        )

    @property
    def failed(self) -> int:
        return self.count("failed")


class Collector:
    """pytest plugin: records call-phase outcomes and advances the progress bar."""

    def __init__(self, progress: Progress, task_id) -> None:
        self.results: list[TResult] = []
        self._progress = progress
        self._task = task_id

    def pytest_collection_finish(self, session):
        self._progress.update(self._task, total=len(session.items))

    def pytest_runtest_logreport(self, report):
        failed_setup = report.when == "setup" and report.outcome != "passed"
        if report.when != "call" and not failed_setup:
            return
        summary = ""
        if report.failed and report.longrepr:
            lines = [ln.strip() for ln in str(report.longrepr).splitlines() if ln.strip()]
            summary = lines[-1][:160] if lines else ""
        self.results.append(
            TResult(report.nodeid, report.outcome, report.duration, summary)
        )
        self._progress.advance(self._task)


def render_areas(st: Stats) -> Table:
    tbl = Table(
        title="[muted]Coverage by area[/]", title_justify="left",
        box=box.ROUNDED, border_style="muted", expand=True,
    )
    tbl.add_column("Module", min_width=26)
    tbl.add_column("Tier", width=6)
    tbl.add_column("Area", overflow="fold")
    tbl.add_column("Passed", justify="right", width=7)
    tbl.add_column("Failed", justify="right", width=7)

    by_module: dict[str, list[TResult]] = {}
    for r in st.results:
        by_module.setdefault(r.module_stem, []).append(r)

    for name, rs in sorted(by_module.items()):
        tier = rs[0].tier
        failed = sum(1 for r in rs if r.outcome == "failed")
        tbl.add_row(
            name,
            "[unit]UNIT[/]" if tier == "unit" else "[intg]INTG[/]",
            AREAS.get(name, "[muted]unmapped[/]"),
            f"[good]{sum(1 for r in rs if r.outcome == 'passed')}[/]",
            f"[bad]{failed}[/]" if failed else "[muted]0[/]",
        )
    return tbl


def render_failures(st: Stats) -> None:
    failures = [r for r in st.results if r.outcome == "failed"]
    if not failures:
        return
    tbl = Table(box=box.SIMPLE, show_header=False, expand=True)
    tbl.add_column("Test", overflow="fold")
    tbl.add_column("Reason", overflow="fold", style="bad")
    for r in failures:
        tbl.add_row(escape(r.nodeid), escape(r.summary))
    con.print(Panel(tbl, title="[bad]Failures[/]", border_style="bad"))


def run(
        paths: list[str],
        fail_fast: bool = False,
        with_coverage: bool = False,
        keyword: str = "",
        extra: list[str] | None = None,
) -> int:
    pytest_args = [*paths, "-q", "--tb=short", "-p", "no:terminal"]
    if fail_fast:
        pytest_args.append("-x")
    if keyword:
        pytest_args += ["-k", keyword]
    if with_coverage:
        pytest_args += ["--cov=backend.app", "--cov-report=term-missing"]
        # pytest-cov writes through the terminal reporter.
        pytest_args.remove("-p")
        pytest_args.remove("no:terminal")
    pytest_args += extra or []

    progress = Progress(
        SpinnerColumn("line", style="accent"),
        TextColumn("[muted]running tests[/]"),
        BarColumn(bar_width=32),
        MofNCompleteColumn(),
        console=con,
    )
    task_id = progress.add_task("tests", total=None)
    collector = Collector(progress, task_id)

    t0 = time.perf_counter()
    with progress:
        exit_code = pytest.main(pytest_args, plugins=[collector])
    st = Stats(results=collector.results, elapsed=time.perf_counter() - t0)

    con.print(render_areas(st))
    render_failures(st)

    totals = (
        f"unit {st.count('passed', 'unit')} passed  ·  "
        f"integration {st.count('passed', 'integration')} passed  ·  "
        f"{st.failed} failed  ·  {st.count('skipped')} skipped  ·  {st.elapsed:.2f}s"
    )
    ok = exit_code == 0 and st.failed == 0 and bool(st.results)
    con.print(Panel(
        totals,
        title="[good]ALL TESTS PASSED[/]" if ok else "[bad]BUILD FAILED[/]",
        border_style="good" if ok else "bad",
    ))
    return 0 if ok else 1


def _cli() -> None:
    ap = argparse.ArgumentParser(
        prog="python backend/utils/test_run.py",
        description="Blog Auth test runner",
    )
    tier = ap.add_mutually_exclusive_group()
    tier.add_argument("--unit", action="store_true", help="backend/tests/unit only")
    tier.add_argument("--integration", action="store_true", help="backend/tests/integration only")
    ap.add_argument("--coverage", action="store_true", help="pytest-cov report for backend.app")
    ap.add_argument("-x", "--fail-fast", action="store_true", help="Stop after first failure")
    ap.add_argument("-k", metavar="EXPR", default="", help="Passed to pytest -k")
    args, remainder = ap.parse_known_args()

    # Project root holds pyproject.toml (pytest config, pythonpath).
    root = Path(__file__).resolve().parents[2]
    os.chdir(root)

    if args.unit:
        paths = ["backend/tests/unit"]
    elif args.integration:
        paths = ["backend/tests/integration"]
    else:
        paths = ["backend/tests"]

    sys.exit(run(
        paths,
        fail_fast=args.fail_fast,
        with_coverage=args.coverage,
        keyword=args.k,
        extra=remainder,
    ))


if __name__ == "__main__":
    _cli()
