"""Cooperative cancellation for bulk operations."""

import threading


class CancellationToken:
    """Checked by bulk operations between employees.

    Cancelling never interrupts an employee mid-transaction; work already
    committed for earlier employees stays committed.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
