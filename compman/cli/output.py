"""
CLI Output - Plain-text rendering for records, reports and deltas.
"""

import sys

from ..manager import ValidationReport
from ..models import ComponentRecord, ComponentStatus, UpdateDelta

__all__ = ["print_deltas", "print_error", "print_records", "print_report"]


def print_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"Error: {message}", file=sys.stderr)


def print_records(records: list[ComponentRecord]) -> None:
    if not records:
        print("No components installed")
        return
    for record in records:
        state = "[*]" if record.status is ComponentStatus.INSTALLED else "[ ]"
        print(f"{state} {record.name} {record.version} ({record.source_reference})")
        description = record.metadata.get("description")
        if description:
            print(f"    {description}")


def print_report(report: ValidationReport) -> None:
    version = f" {report.version}" if report.version else ""
    if report.ok:
        print(f"{report.name}{version}: OK")
        return
    print(f"{report.name}{version}: {len(report.problems)} problem(s)")
    for problem in report.problems:
        print(f"  - {problem}")


def print_deltas(deltas: list[UpdateDelta], stream=None) -> None:
    stream = stream or sys.stdout
    if not deltas:
        print("All components are up to date", file=stream)
        return
    for delta in deltas:
        marker = f" [{delta.priority}]" if delta.priority != "normal" else ""
        print(
            f"{delta.component_name} {delta.current_version} -> {delta.latest_version}{marker}",
            file=stream,
        )
