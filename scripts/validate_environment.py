#!/usr/bin/env python3
"""Validate local DYP Aura environment readiness."""

from __future__ import annotations

import importlib
import sys
from dataclasses import replace
from importlib.metadata import version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from aura.domain.models import MachineStatus
from aura.repository.state_repository import StateRepository
from aura.services.clock import ManualClock
from aura.services.laundry_service import LaundryWorkflowService
from aura.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True

    # CHECK 1: Python version >= 3.11
    if sys.version_info >= (3, 11):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.11",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable with versions
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("numpy", "numpy"),
        ("requests", "requests"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            _ = version(dist_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    # The smoke cycle never reaches the network.
    settings = replace(get_settings(), ai_enabled=False, gemini_api_key=None)
    clock = ManualClock()
    repository = StateRepository(settings)
    service = LaundryWorkflowService(repository=repository, clock=clock, settings=settings)

    # CHECK 3: Machine initialization
    expected = settings.washers_per_residence + settings.dryers_per_residence
    try:
        counts = {residence: len(repository.list_machines(residence)) for residence in repository.list_residences()}
        if len(counts) != len(settings.residences) or set(counts.values()) != {expected}:
            raise RuntimeError(f"expected {expected} machines in each of {len(settings.residences)} residences")
        ok, line = _print_result("Machine initialization", True, f": {len(counts)} residences")
    except Exception as exc:
        ok, line = _print_result("Machine initialization", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 4: Start -> tick -> collect on virtual time
    try:
        residence = settings.residences[0]
        session = service.login("validator", residence)
        duration = settings.washer_durations_minutes[0]
        service.start_cycle(session.user, 1, duration)
        clock.advance(minutes=duration)
        report = service.tick()
        machine = repository.get_machine(residence, 1)
        if machine is None or machine.status is not MachineStatus.IDLE or not report.events:
            raise RuntimeError("machine did not reach Idle at its deadline")
        clock.advance(minutes=3)
        collected = service.collect_laundry(session.user, 1)
        if collected.delay_minutes != 3 or not collected.outcome.on_time:
            raise RuntimeError(f"unexpected collection delay {collected.delay_minutes}")
        ok, line = _print_result(
            "Smoke cycle",
            True,
            f": delay={collected.delay_minutes} points={collected.outcome.points_awarded}",
        )
    except Exception as exc:
        ok, line = _print_result("Smoke cycle", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    print(SEPARATOR_LINE)
    print(" DYP Aura Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
