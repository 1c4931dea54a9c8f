"""
=============================================================================
SIGNAL-TO-SHUTDOWN BRIDGE
=============================================================================

Turns an interrupt into exactly one graceful shutdown of an HTTPServer.

=============================================================================
FLOW
=============================================================================

    main thread                          signal handler
    ───────────                          ──────────────
    bridge.install()
    server.start()
    bridge.run()
      └── wait()  ◄──── Event ──────────  SIGINT → trigger()
      "shutting down..."
      server.shutdown(grace_period)
      "server stopped"
      return 0 | 1

The handler only sets an Event. Everything that blocks or takes locks
happens on the main thread after wait() returns, because a signal
handler interrupts arbitrary code and must not wait on anything that
code might hold.

A second SIGINT during shutdown is absorbed: the handler stays installed
until run() returns, and trigger() is idempotent.

=============================================================================
EXIT CODES
=============================================================================

    0   shutdown finished within the grace period
    1   grace period exceeded, or the server failed after starting

=============================================================================
"""

import logging
import signal
import threading
from typing import Iterable, Optional

from .server import HTTPServer


logger = logging.getLogger(__name__)


# Poll interval for wait(); keeps the main thread responsive to signals on
# every platform
WAIT_POLL_INTERVAL = 0.5


class ShutdownBridge:
    """
    Waits for a signal, then shuts the server down once.

        bridge = ShutdownBridge(server, grace_period=5.0)
        bridge.install()
        server.start()
        sys.exit(bridge.run())

    trigger() can be called from any thread (or a test) instead of sending
    a real signal. A fatal server error triggers the bridge as well, via
    the server's on_fatal callback.
    """

    def __init__(
        self,
        server: HTTPServer,
        grace_period: float = 5.0,
        signals: Iterable[signal.Signals] = (signal.SIGINT,),
    ):
        self.server = server
        self.grace_period = grace_period
        self.signals = tuple(signals)

        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None
        self._failure: Optional[BaseException] = None
        self._previous_handlers: dict = {}

        server.on_fatal = self.fail

    @property
    def triggered(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        """What triggered the shutdown: a signal name, "server failure", ..."""
        return self._reason

    # =========================================================================
    # SIGNAL HANDLERS
    # =========================================================================

    def install(self) -> None:
        """
        Install handlers for self.signals. Must run on the main thread.
        Calling it again is a no-op.
        """
        if self._previous_handlers:
            return
        for sig in self.signals:
            self._previous_handlers[sig] = signal.signal(sig, self._handle_signal)
        logger.debug(f"Installed handlers for {', '.join(signal.Signals(s).name for s in self.signals)}")

    def restore(self) -> None:
        """Put back the handlers that were active before install()."""
        for sig, handler in self._previous_handlers.items():
            # None means the previous handler was not installed from Python
            if handler is not None:
                signal.signal(sig, handler)
        self._previous_handlers.clear()

    def _handle_signal(self, signum, frame) -> None:
        name = signal.Signals(signum).name
        if self.trigger(name):
            logger.info(f"received {name}")
        else:
            logger.info(f"received {name} again; shutdown already in progress")

    # =========================================================================
    # TRIGGERING
    # =========================================================================

    def trigger(self, reason: str = "requested") -> bool:
        """
        Request the shutdown.

        Returns:
            True for the first call, False for every later one.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
        return True

    def fail(self, error: BaseException) -> None:
        """Record a fatal server error and trigger the shutdown."""
        self._failure = error
        self.trigger("server failure")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until triggered.

        Returns:
            True if triggered, False if timeout elapsed first.
        """
        if timeout is not None:
            return self._event.wait(timeout)
        while not self._event.wait(WAIT_POLL_INTERVAL):
            pass
        return True

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    def run(self) -> int:
        """
        Install handlers, block until triggered, shut the server down.

        Returns:
            Process exit code: 0 for a clean stop, 1 otherwise.
        """
        self.install()
        try:
            self.wait()
            logger.info("shutting down...")
            clean = self.server.shutdown(self.grace_period)
        finally:
            self.restore()

        if self._failure is not None:
            logger.error(f"server failed: {self._failure}")
            exit_code = 1
        elif not clean:
            exit_code = 1
        else:
            exit_code = 0

        logger.info("server stopped")
        return exit_code
