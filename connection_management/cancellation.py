"""
Cancellation helpers.

Before Python 3.12, ``asyncio.wait_for`` can return the inner result (or
raise its exception) even though the calling task was cancelled at the same
moment. Code that catches broad exceptions after ``wait_for`` calls
``raise_if_cancel_requested()`` so that such a cancel is not lost.
"""

import asyncio


def cancel_requested() -> bool:
    """Whether the current task has a cancel request that was not withdrawn."""
    try:
        task = asyncio.current_task()
    except RuntimeError:
        return False
    cancelling = getattr(task, "cancelling", None)  # Python 3.11+
    return cancelling is not None and cancelling() > 0


def raise_if_cancel_requested() -> None:
    """Raise CancelledError if the current task has a pending cancel request."""
    if cancel_requested():
        raise asyncio.CancelledError()
