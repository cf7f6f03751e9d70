#!/usr/bin/env python3
"""Test script for the acknowledgment-gated sequencer."""

import logging
import sys
import threading

import pytest

from svgplot.config import Config
from svgplot.sequencer import (
    JogSequencer,
    SequencerBusy,
    SequencerState,
    SequencerTimeout,
    is_ack,
)

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("test_sequencer")

PROGRAM = ["G1 X1", "G1 X2", "G1 X3"]


class ManualTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Collects scheduled callbacks so tests decide when they run."""

    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback):
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled]

    def fire_next(self):
        timer = self.pending[0]
        self.timers.remove(timer)
        timer.callback()


class Recorder:
    def __init__(self):
        self.sent = []
        self.completed = 0
        self.errors = []

    def send(self, line):
        self.sent.append(line)

    def complete(self):
        self.completed += 1

    def error(self, exc):
        self.errors.append(exc)


def make_sequencer(delay=0, timeout=None, scheduler=None):
    recorder = Recorder()
    sequencer = JogSequencer(recorder.send, delay=delay, timeout=timeout, scheduler=scheduler,
                             on_complete=recorder.complete, on_error=recorder.error)
    return sequencer, recorder


def test_from_config():
    """Delay and timeout come from the sequencer section."""
    scheduler = ManualScheduler()
    config = Config()
    config.set("sequencer.delay", 0.2)
    config.set("sequencer.timeout", 3)
    sequencer = JogSequencer.from_config(lambda line: None, config.config, scheduler=scheduler)
    assert sequencer.delay == 0.2
    assert sequencer.timeout == 3.0

    sequencer.start_run(PROGRAM)
    assert scheduler.pending[0].delay == 3.0
    sequencer.handle_message("ok")
    assert scheduler.pending[0].delay == 0.2

    defaults = JogSequencer.from_config(lambda line: None, Config().config)
    assert defaults.delay == 0.05
    assert defaults.timeout is None
    assert JogSequencer.from_config(lambda line: None).delay == 0.05


def test_is_ack():
    assert is_ack("ok")
    assert is_ack("OK")
    assert is_ack("  ok T:25.0\n")
    assert not is_ack("error: 20")
    assert not is_ack("POS:0,0,0|0,0,0")


def test_three_line_run():
    """One line in flight; each ok releases the next; the last completes."""
    logger.info("Testing three-line run...")
    sequencer, recorder = make_sequencer()
    sequencer.start_run(PROGRAM)
    assert recorder.sent == ["G1 X1"]
    assert sequencer.state is SequencerState.AWAITING_ACK

    assert sequencer.handle_message("ok")
    assert recorder.sent == ["G1 X1", "G1 X2"]

    assert sequencer.handle_message("ok")
    assert recorder.sent == PROGRAM
    assert recorder.completed == 0

    assert sequencer.handle_message("ok")
    assert recorder.sent == PROGRAM
    assert recorder.completed == 1
    assert sequencer.state is SequencerState.IDLE
    assert not sequencer.is_running

    assert not sequencer.handle_message("ok")
    assert recorder.sent == PROGRAM


def test_non_ack_messages_ignored():
    sequencer, recorder = make_sequencer()
    sequencer.start_run(PROGRAM)
    assert not sequencer.handle_message("POS:1,2,3|1,2,3")
    assert not sequencer.handle_message("busy")
    assert recorder.sent == ["G1 X1"]
    assert sequencer.index == 0


def test_delay_between_lines():
    """The next line waits for the scheduled delay; extra acks are ignored."""
    logger.info("Testing delayed sending...")
    scheduler = ManualScheduler()
    sequencer, recorder = make_sequencer(delay=0.05, scheduler=scheduler)
    sequencer.start_run(PROGRAM)

    assert sequencer.handle_message("ok")
    assert sequencer.state is SequencerState.WAITING_DELAY
    assert recorder.sent == ["G1 X1"]
    assert scheduler.pending[0].delay == 0.05

    # Duplicate ack while waiting
    assert not sequencer.handle_message("ok")
    assert sequencer.index == 1

    scheduler.fire_next()
    assert recorder.sent == ["G1 X1", "G1 X2"]
    assert sequencer.state is SequencerState.AWAITING_ACK


def test_comment_and_blank_lines_filtered():
    sequencer, recorder = make_sequencer()
    sequencer.start_run(["; header", "", "G0 X1", "   ", "G0 X2 ; move"])
    assert sequencer.lines == ["G0 X1", "G0 X2 ; move"]
    sequencer.handle_message("ok")
    sequencer.handle_message("ok")
    assert recorder.sent == ["G0 X1", "G0 X2 ; move"]
    assert recorder.completed == 1


def test_repeat():
    sequencer, recorder = make_sequencer()
    sequencer.start_run(["G0 X1", "G0 X2"], repeat=3)
    for _ in range(6):
        sequencer.handle_message("ok")
    assert recorder.sent == ["G0 X1", "G0 X2"] * 3
    assert recorder.completed == 1


def test_start_run_errors():
    sequencer, _ = make_sequencer()
    with pytest.raises(ValueError):
        sequencer.start_run([])
    with pytest.raises(ValueError):
        sequencer.start_run(["; only a comment", ""])
    with pytest.raises(ValueError):
        sequencer.start_run(PROGRAM, repeat=0)

    sequencer.start_run(PROGRAM)
    with pytest.raises(SequencerBusy):
        sequencer.start_run(PROGRAM)


def test_cancel_ignores_late_ack():
    """A cancelled run never sends again, even if its ack arrives later."""
    logger.info("Testing cancellation...")
    scheduler = ManualScheduler()
    sequencer, recorder = make_sequencer(delay=0.05, scheduler=scheduler)
    generation = sequencer.start_run(PROGRAM)

    sequencer.cancel()
    assert sequencer.state is SequencerState.IDLE
    assert sequencer.generation != generation
    assert not sequencer.handle_message("ok")
    assert recorder.sent == ["G1 X1"]

    # A new run ignores acks tagged with the old generation
    new_generation = sequencer.start_run(["G0 X9"])
    assert not sequencer.handle_message("ok", generation=generation)
    assert sequencer.handle_message("ok", generation=new_generation)
    assert recorder.completed == 1


def test_cancel_during_delay():
    scheduler = ManualScheduler()
    sequencer, recorder = make_sequencer(delay=0.05, scheduler=scheduler)
    sequencer.start_run(PROGRAM)
    sequencer.handle_message("ok")
    timer = scheduler.timers[0]

    sequencer.cancel()
    assert timer.cancelled
    # Even if the timer thread had already started the callback
    timer.callback()
    assert recorder.sent == ["G1 X1"]

    # Safe in any state
    sequencer.cancel()
    sequencer.disconnect()
    assert sequencer.state is SequencerState.IDLE


def test_disconnect_then_new_run():
    sequencer, recorder = make_sequencer()
    sequencer.start_run(PROGRAM)
    sequencer.disconnect()
    assert not sequencer.is_running
    sequencer.start_run(["G0 X0"])
    assert recorder.sent == ["G1 X1", "G0 X0"]


def test_timeout():
    logger.info("Testing acknowledgment timeout...")
    scheduler = ManualScheduler()
    sequencer, recorder = make_sequencer(timeout=2.0, scheduler=scheduler)
    sequencer.start_run(PROGRAM)
    assert scheduler.pending[0].delay == 2.0

    scheduler.fire_next()
    assert sequencer.state is SequencerState.IDLE
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], SequencerTimeout)
    assert not sequencer.handle_message("ok")


def test_ack_cancels_timeout():
    scheduler = ManualScheduler()
    sequencer, recorder = make_sequencer(timeout=2.0, scheduler=scheduler)
    sequencer.start_run(PROGRAM)
    first_timeout = scheduler.timers[0]
    sequencer.handle_message("ok")
    assert first_timeout.cancelled
    # The stale timeout does nothing if it fires anyway
    first_timeout.callback()
    assert sequencer.state is SequencerState.AWAITING_ACK
    assert recorder.errors == []


def test_send_failure_resets():
    def broken_send(line):
        raise ConnectionError("link down")

    sequencer = JogSequencer(broken_send, delay=0)
    with pytest.raises(ConnectionError):
        sequencer.start_run(PROGRAM)
    assert sequencer.state is SequencerState.IDLE


def test_on_line_callback():
    seen = []
    sequencer = JogSequencer(lambda line: None, delay=0, on_line=lambda i, line: seen.append((i, line)))
    sequencer.start_run(PROGRAM[:2])
    sequencer.handle_message("ok")
    assert seen == [(0, "G1 X1"), (1, "G1 X2")]


def test_threaded_timer():
    """The default scheduler sends the next line from a timer thread."""
    second_sent = threading.Event()
    sent = []

    def send(line):
        sent.append(line)
        if len(sent) == 2:
            second_sent.set()

    sequencer = JogSequencer(send, delay=0.01)
    sequencer.start_run(PROGRAM[:2])
    sequencer.handle_message("ok")
    assert second_sent.wait(timeout=5)
    assert sent == PROGRAM[:2]
    sequencer.cancel()
