"""
Cooperative cancellation shared between the runner and the rules.
"""

import threading
from typing import List, Optional

from .errors import OperationCancelled


class CancellationToken:
    """Thread-safe flag the host sets to stop analysis early."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, diagnostics: Optional[List] = None) -> None:
        """Raise OperationCancelled carrying ``diagnostics`` if cancellation was requested."""
        if self._event.is_set():
            raise OperationCancelled(diagnostics)

