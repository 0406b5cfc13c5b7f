"""
Common Utilities for Lifecycle Usage Examples

Provides helper functions for formatting example output and for printing
lifecycle events and health snapshots.
"""

from typing import Any, Dict


def print_section(title: str, width: int = 60):
    """
    Print a formatted section header.

    Args:
        title: Section title
        width: Width of the header line
    """
    print("\n" + "=" * width)
    print(f" {title}")
    print("=" * width)


def print_step(step_num: int, description: str):
    """Print a step description."""
    print(f"\n[Step {step_num}] {description}")


def print_success(message: str):
    """Print a success message."""
    print(f"[SUCCESS] {message}")


def print_error(message: str):
    """Print an error message."""
    print(f"[ERROR] {message}")


def print_warning(message: str):
    """Print a warning message."""
    print(f"[WARNING] {message}")


def print_info(key: str, value: Any):
    """Print information in key-value format."""
    print(f"  - {key}: {value}")


def print_event(event) -> None:
    """State-change handler that prints each lifecycle event on one line."""
    line = f"  > {event.event.value:<20} {event.previous.value} -> {event.current.value}"
    if event.error:
        line += f" ({event.error})"
    print(line)


def print_health(snapshot: Dict[str, Any]):
    """
    Print a health snapshot as returned by ``HealthStatus.to_dict()``.

    Args:
        snapshot: Health payload with ``healthy``, ``state`` and optionally ``last_error``
    """
    status = "HEALTHY" if snapshot.get("healthy") else "DEGRADED"
    print(f"  Health: {status} (state={snapshot.get('state')})")
    if snapshot.get("last_error"):
        print(f"  Last error: {snapshot['last_error']}")
