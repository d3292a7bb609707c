from enum import Enum
import threading
import time


class StopSignalType(str, Enum):
    NONE = "none"
    CANCEL = "cancel"
    TIMEOUT = "timeout"
    TERMINATE = "terminate"


class StageStatus(str, Enum):
    NOT_STARTED_YET = "NOT_STARTED_YET"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    CANCELLED = "CANCELLED"


class StopSignal:
    """
    A request to stop a running stage, issued by whoever schedules the stage. The first signal that is raised wins;
    later ones are ignored. If a *timeout* is given, the signal turns into a timeout once it has elapsed.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._type = StopSignalType.NONE
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def __repr__(self) -> str:
        return f"StopSignal({self.signal().value})"

    def _raise(self, type: StopSignalType) -> None:
        with self._lock:
            if self._type == StopSignalType.NONE:
                self._type = type
                self._event.set()

    def _check_deadline(self) -> None:
        if self._deadline is not None and not self._event.is_set() and time.monotonic() >= self._deadline:
            self._raise(StopSignalType.TIMEOUT)

    def cancel(self) -> None:
        self._raise(StopSignalType.CANCEL)

    def terminate(self) -> None:
        self._raise(StopSignalType.TERMINATE)

    def timeout(self) -> None:
        self._raise(StopSignalType.TIMEOUT)

    def stopped(self) -> bool:
        self._check_deadline()
        return self._event.is_set()

    def signal(self) -> StopSignalType:
        self._check_deadline()
        with self._lock:
            return self._type

    def remaining(self) -> float | None:
        """
        Seconds until the timeout elapses, or `None` if there is no timeout.
        """

        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """
        Block until the signal is raised or *seconds* have passed. Returns whether the signal was raised.
        """

        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(seconds)
        return self.stopped()


def determine_stage_status(signal: StopSignalType, original: StageStatus, got: StageStatus) -> StageStatus:
    """
    Fold the stop signal into the status computed by a stage. A stop signal always takes precedence over the
    computed status.
    """

    match signal:
        case StopSignalType.NONE:
            return got
        case StopSignalType.CANCEL:
            return StageStatus.CANCELLED
        case StopSignalType.TIMEOUT:
            return StageStatus.FAILURE
        case StopSignalType.TERMINATE:
            return original
    return StageStatus.FAILURE
