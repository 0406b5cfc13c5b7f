"""
Graceful Shutdown Example

Starts a handful of long-running operations, then shuts down with a short
grace period so that some of them are cancelled. Press Ctrl+C during the
run to trigger the same sequence from a signal; press it twice to skip the
rest of the grace period.
"""

import sys
import os
import asyncio

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from connection_management import ShuttingDownError, ServiceConnector, ConnectionStatus
from config import load_settings
from monitoring import configure_logging
import importlib.util
utils_file_path = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'utils.py'))
spec = importlib.util.spec_from_file_location("example_utils", utils_file_path)
example_utils = importlib.util.module_from_spec(spec)
spec.loader.exec_module(example_utils)
print_section = example_utils.print_section
print_step = example_utils.print_step
print_success = example_utils.print_success
print_warning = example_utils.print_warning
print_info = example_utils.print_info
print_error = example_utils.print_error
print_event = example_utils.print_event


async def slow_operation(pool, seconds: float) -> float:
    """Stand-in for a long query: holds the pool for ``seconds``."""
    await asyncio.sleep(seconds)
    return seconds


async def main():
    print_section("Graceful Shutdown Example")

    settings = load_settings()
    settings.shutdown.grace_period = 2.0
    configure_logging(settings.monitoring)

    connector = ServiceConnector(settings=settings, name="milvus", arm_signals=True)
    manager = connector.connection_manager
    manager.on_state_change(print_event)

    print_step(1, "Connect")
    feedback = await connector.establish_connection()
    if feedback.status != ConnectionStatus.SUCCESS:
        print_error(feedback.message)
        await connector.close_connection("connect failed")
        return
    print_success("Connected")

    print_step(2, "Start operations of 1s, 3s and 5s")
    operations = [
        asyncio.create_task(manager.execute(slow_operation, seconds, timeout=10.0))
        for seconds in (1.0, 3.0, 5.0)
    ]
    await asyncio.sleep(0.1)
    print_info("In flight", manager.in_flight_operations)

    print_step(3, f"Shut down with a {settings.shutdown.grace_period}s grace period")
    report = await connector.close_connection("example finished")
    print_info("Forced", report.forced)
    print_info("Cancelled operations", report.outstanding_operations)

    for seconds, outcome in zip((1.0, 3.0, 5.0), await asyncio.gather(*operations, return_exceptions=True)):
        if isinstance(outcome, ShuttingDownError):
            print_warning(f"{seconds}s operation cancelled: {outcome}")
        else:
            print_success(f"{seconds}s operation finished")

    print_section("Example Completed")


if __name__ == "__main__":
    asyncio.run(main())
