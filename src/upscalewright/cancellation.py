"""Cooperative cancellation for long-running upscale operations."""
import threading
from typing import Optional

from .exceptions import OperationCancelledError


class CancellationToken:
    """Thread-safe cancellation flag checked between tiles and frames.

    The token can be cancelled from any thread (a signal handler, a UI
    thread, another task); the pipeline polls it at its suspension points.

    Example:
        >>> token = CancellationToken()
        >>> task = asyncio.ensure_future(pipeline.run_image(image, token))
        >>> token.cancel()
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        """Signal cancellation. Subsequent calls keep the first reason."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self, operation: Optional[str] = None) -> None:
        """Raise OperationCancelledError when the token has been cancelled."""
        if self._event.is_set():
            raise OperationCancelledError(
                self._reason or "Operation cancelled",
                operation=operation,
            )
