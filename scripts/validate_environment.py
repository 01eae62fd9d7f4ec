#!/usr/bin/env python3
"""Validate local slot booking environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from slotbooking.domain.exceptions import CapacityExceededError
from slotbooking.domain.models import SLOT_MAX, BookingInput
from slotbooking.repository.booking_repository import BookingRepository
from slotbooking.services.booking_service import BookingLifecycleService
from slotbooking.services.category_service import StaticCategoryProvider
from slotbooking.utils.config import get_settings

SEPARATOR_LINE = "=" * 44
CHECK_CATEGORY = "Gastronomie"


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="slotbooking-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_specs = ["fastapi", "uvicorn", "pydantic", "apscheduler", "dotenv", "httpx", "pytest"]
    import_errors: list[str] = []
    for module_name in package_specs:
        try:
            importlib.import_module(module_name)
        except ImportError as exc:
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

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "validation.db",
        )
        repository = BookingRepository(validation_settings)

        # CHECK 3: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except RuntimeError as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Slot allocation fills 1..6 and then reports capacity
        service = BookingLifecycleService(
            repository=repository,
            category_provider=StaticCategoryProvider([CHECK_CATEGORY]),
        )
        start = datetime(2030, 1, 1, tzinfo=timezone.utc)
        try:
            slots = [
                service.create_booking(
                    BookingInput(
                        customer_name=f"Capacity check {index}",
                        customer_number=str(index),
                        category=CHECK_CATEGORY,
                        start=start,
                        advisor="Validator",
                    )
                ).slot
                for index in range(SLOT_MAX)
            ]
            if slots != list(range(1, SLOT_MAX + 1)):
                raise RuntimeError(f"unexpected slot order {slots}")
            try:
                service.create_booking(
                    BookingInput(
                        customer_name="Capacity overflow",
                        customer_number="overflow",
                        category=CHECK_CATEGORY,
                        start=start,
                        advisor="Validator",
                    )
                )
            except CapacityExceededError:
                pass
            else:
                raise RuntimeError("seventh open-ended booking was accepted")
            ok, line = _print_result("Slot allocation", True, f": slots {slots}")
        except Exception as exc:
            ok, line = _print_result("Slot allocation", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Slot Booking Environment Validation")
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
