"""Acknowledgment-gated G-code sequencer.

Streams a program to a device one line at a time. A line is only sent once
the previous one has been acknowledged with ``ok``; after each ack the next
line goes out following a short delay. Cancelling or disconnecting bumps the
run generation so that late acknowledgments for an abandoned run are
ignored.
"""

import logging
import threading
from enum import Enum, auto
from typing import Callable, Dict, Iterable, List, Optional

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_DELAY = 0.05  # seconds between an ack and the next line


class SequencerState(Enum):
    """Current sequencer state."""

    IDLE = auto()
    AWAITING_ACK = auto()
    WAITING_DELAY = auto()


class SequencerError(Exception):
    """Base class for sequencer failures."""


class SequencerBusy(SequencerError):
    """Raised when a run is started while another is active."""


class SequencerTimeout(SequencerError):
    """Reported when no acknowledgment arrives in time."""


def thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Default scheduler: run ``callback`` on a daemon timer thread."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


def is_ack(message: str) -> bool:
    """True for ``ok`` and any message starting with it (case-insensitive)."""
    return message.strip().lower().startswith("ok")


class JogSequencer:
    """Single-flight line sender driven by device acknowledgments."""

    def __init__(self, send: Callable[[str], None], delay: float = DEFAULT_DELAY,
                 timeout: Optional[float] = None, scheduler=None,
                 on_complete: Optional[Callable[[], None]] = None,
                 on_error: Optional[Callable[[Exception], None]] = None,
                 on_line: Optional[Callable[[int, str], None]] = None):
        """Initialize the sequencer.

        Args:
            send: Transmits one line to the device
            delay: Seconds to wait after an ack before sending the next line
            timeout: Seconds to wait for an ack (None waits forever)
            scheduler: ``scheduler(delay, callback)`` returning an object with
                ``cancel()``; defaults to a threading.Timer
            on_complete: Called when the last line has been acknowledged
            on_error: Called with a SequencerTimeout when an ack is overdue
            on_line: Called with (index, line) as each line is sent
        """
        self._send = send
        self.delay = delay
        self.timeout = timeout
        self._schedule = scheduler or thread_timer
        self.on_complete = on_complete
        self.on_error = on_error
        self.on_line = on_line

        self._lock = threading.RLock()
        self._state = SequencerState.IDLE
        self._lines: List[str] = []
        self._index = 0
        self._generation = 0
        self._delay_timer = None
        self._timeout_timer = None

    @classmethod
    def from_config(cls, send: Callable[[str], None], config: Optional[Dict] = None,
                    **kwargs) -> "JogSequencer":
        """Create a sequencer from the ``sequencer`` section of a config dict.

        Extra keyword arguments (scheduler, callbacks) are passed through.
        """
        settings = (config or {}).get("sequencer", {})
        timeout = settings.get("timeout")
        return cls(
            send,
            delay=float(settings.get("delay", DEFAULT_DELAY)),
            timeout=None if timeout is None else float(timeout),
            **kwargs,
        )

    @property
    def state(self) -> SequencerState:
        return self._state

    @property
    def generation(self) -> int:
        """Identifier of the current (or last) run."""
        return self._generation

    @property
    def index(self) -> int:
        """Index of the line in flight, or of the next line to send."""
        return self._index

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    @property
    def is_running(self) -> bool:
        return self._state is not SequencerState.IDLE

    def start_run(self, lines: Iterable[str], repeat: int = 1) -> int:
        """Start streaming a program.

        Blank lines and comment-only lines are skipped.

        Args:
            lines: Program lines
            repeat: Number of times the program is sent back to back

        Returns:
            The generation of the new run
        """
        program = []
        for line in lines:
            line = line.strip()
            if line and not line.startswith(";"):
                program.append(line)

        with self._lock:
            if self.is_running:
                raise SequencerBusy("A run is already in progress")
            if not program:
                raise ValueError("Nothing to send: the program has no commands")
            if repeat < 1:
                raise ValueError(f"Repeat count must be at least 1, got {repeat}")

            self._generation += 1
            self._lines = program * repeat
            self._index = 0
            logger.info(f"Starting run {self._generation}: {len(self._lines)} lines")
            self._send_current()
            return self._generation

    def handle_message(self, message: str, generation: Optional[int] = None) -> bool:
        """Feed an inbound device message.

        Args:
            message: Text received from the device
            generation: Run the message belongs to, if the transport tags it

        Returns:
            True if the message was taken as the acknowledgment of the line in flight
        """
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug(f"Ignoring message for stale run {generation}")
                return False
            if self._state is not SequencerState.AWAITING_ACK or not is_ack(message):
                return False

            self._cancel_timer("_timeout_timer")
            self._index += 1
            if self._index >= len(self._lines):
                self._finish()
                return True

            self._state = SequencerState.WAITING_DELAY
            if self.delay <= 0:
                self._send_current()
            else:
                run = self._generation
                self._delay_timer = self._schedule(self.delay, lambda: self._send_next(run))
            return True

    def cancel(self) -> None:
        """Stop the current run; safe to call in any state."""
        with self._lock:
            if self.is_running:
                logger.info(f"Cancelled run {self._generation} at line {self._index}")
            self._stop()

    def disconnect(self) -> None:
        """Device link lost: abandon the run without sending anything else."""
        with self._lock:
            if self.is_running:
                logger.warning(f"Device disconnected during run {self._generation}")
            self._stop()

    def _send_next(self, run: int) -> None:
        with self._lock:
            if run != self._generation or self._state is not SequencerState.WAITING_DELAY:
                return
            self._delay_timer = None
            self._send_current()

    def _send_current(self) -> None:
        index = self._index
        line = self._lines[index]
        self._state = SequencerState.AWAITING_ACK
        if self.timeout is not None:
            run = self._generation
            self._timeout_timer = self._schedule(self.timeout, lambda: self._expire(run, index))

        logger.debug(f"Sending line {index}: {line}")
        if self.on_line:
            self.on_line(index, line)
        try:
            self._send(line)
        except Exception:
            self._stop()
            raise

    def _expire(self, run: int, index: int) -> None:
        with self._lock:
            if (run != self._generation or index != self._index
                    or self._state is not SequencerState.AWAITING_ACK):
                return
            self._timeout_timer = None
            line = self._lines[index]
            self._stop()
            error = SequencerTimeout(f"No acknowledgment for line {index}: {line}")
            logger.error(str(error))
            if self.on_error:
                self.on_error(error)

    def _finish(self) -> None:
        logger.info(f"Run {self._generation} completed: {len(self._lines)} lines")
        self._state = SequencerState.IDLE
        self._lines = []
        self._index = 0
        if self.on_complete:
            self.on_complete()

    def _stop(self) -> None:
        self._cancel_timer("_delay_timer")
        self._cancel_timer("_timeout_timer")
        if self.is_running:
            self._generation += 1
        self._state = SequencerState.IDLE
        self._lines = []
        self._index = 0

    def _cancel_timer(self, name: str) -> None:
        timer = getattr(self, name)
        if timer is not None:
            timer.cancel()
            setattr(self, name, None)
