"""
Basic Connection Example

Demonstrates how to connect to Milvus through the lifecycle manager, run an
operation, inspect health, and shut down cleanly.
"""

import sys
import os
import asyncio

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from connection_management import ConnectionStatus, ServiceConnector
from config import load_settings
from monitoring import configure_logging
# Import usage_examples utils (not a project package)
import importlib.util
utils_file_path = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'utils.py'))
spec = importlib.util.spec_from_file_location("example_utils", utils_file_path)
example_utils = importlib.util.module_from_spec(spec)
spec.loader.exec_module(example_utils)
print_section = example_utils.print_section
print_step = example_utils.print_step
print_success = example_utils.print_success
print_info = example_utils.print_info
print_error = example_utils.print_error
print_event = example_utils.print_event
print_health = example_utils.print_health


async def main():
    """Main function to demonstrate basic connection."""
    print_section("Milvus Basic Connection Example")

    # Step 1: Build the connector
    print_step(1, "Initialize Service Connector")
    settings = load_settings()
    configure_logging(settings.monitoring)
    print_info("Host", settings.pool.host)
    print_info("Port", settings.pool.port)
    print_info("Max attempts", settings.retry.max_attempts or "unlimited")
    print_info("Grace period", f"{settings.shutdown.grace_period}s")

    connector = ServiceConnector(settings=settings, name="milvus", arm_signals=True)
    manager = connector.connection_manager
    manager.on_state_change(print_event)
    print_success("Service Connector initialized")

    # Step 2: Connect with retry
    print_step(2, "Connect (retries with exponential backoff)")
    feedback = await connector.establish_connection()
    if feedback.status != ConnectionStatus.SUCCESS:
        print_error(feedback.message)
        await connector.close_connection("connect failed")
        return
    print_success(feedback.message)

    # Step 3: Run an operation through the manager
    print_step(3, "Execute Test Operation")
    try:
        def list_collections(pool):
            from pymilvus import utility
            with pool.get_connection() as conn_alias:
                return utility.list_collections(using=conn_alias)

        collections = await manager.execute(list_collections)
        print_info("Collections found", len(collections))
        if collections:
            print_info("Collection names", ", ".join(collections[:5]))
        print_success("Test operation completed successfully")
    except Exception as e:
        print_error(f"Operation failed: {e}")

    # Step 4: Health and metrics
    print_step(4, "Inspect Health and Metrics")
    print_health(manager.health_status().to_dict())
    metrics = manager.get_metrics()
    print_info("State", metrics["state"])
    print_info("Pool connections", metrics["pool"].get("total_connections", 0))

    # Step 5: Graceful shutdown
    print_step(5, "Shut Down")
    report = await connector.close_connection("example finished")
    print_info("Forced", report.forced)
    print_info("Duration", f"{report.duration:.3f}s")
    print_success("Connection closed successfully")

    print_section("Example Completed")
    print("\nKey Takeaways:")
    print("  - ConnectionManager owns the connection lifecycle")
    print("  - acquire()/execute() fail fast while the service is unavailable")
    print("  - SIGINT/SIGTERM drain in-flight work before the pool closes")


if __name__ == "__main__":
    asyncio.run(main())
