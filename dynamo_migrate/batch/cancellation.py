"""
Cooperative cancellation for migration runs.
"""


class CancellationToken:
    """
    Explicit stop request shared between a signal handler and the runner.

    The runner polls it between files and between batches; a write or a
    streaming read in progress is never interrupted.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> bool:
        """
        Request cancellation.

        Returns:
            True on the first request, False if already cancelled
        """
        if self._cancelled:
            return False
        self._cancelled = True
        self.reason = reason
        return True

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled}, reason={self.reason!r})"
