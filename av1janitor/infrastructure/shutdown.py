import signal
import logging
import threading


class CancellationToken:
    """Cooperative stop request shared by the CLI and the scheduler."""

    def __init__(self):
        self._event = threading.Event()

    def request(self):
        self._event.set()

    def is_requested(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleeps up to timeout seconds; returns True as soon as a stop is requested."""
        return self._event.wait(timeout)


def install_signal_handlers(token: CancellationToken):
    """SIGINT/SIGTERM request a graceful stop; running encodes are left to finish."""
    logger = logging.getLogger(__name__)

    def handle(signum, frame):
        logger.info(f"Signal {signal.Signals(signum).name} received, stopping after running jobs")
        token.request()

    signal.signal(signal.SIGINT, handle)
    signal.signal(signal.SIGTERM, handle)
