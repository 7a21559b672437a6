from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Literal

import mido

from piano_helper.logging_utils import log_event
from piano_helper.models import NoteEvent

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.005

EventKind = Literal["note_on", "note_off"]


def message_to_event(msg: mido.Message, *, timestamp: float | None = None, event_id: str | None = None) -> tuple[EventKind, NoteEvent] | None:
    if msg.type == "note_on" and msg.velocity > 0:
        kind: EventKind = "note_on"
    elif msg.type == "note_off" or (msg.type == "note_on" and msg.velocity == 0):
        kind = "note_off"
    else:
        return None
    return kind, NoteEvent(note=msg.note, velocity=msg.velocity, timestamp=timestamp, event_id=event_id)


def pick_port(preferred: str | None = None) -> str | None:
    try:
        ports = mido.get_input_names()
    except (ImportError, OSError) as exc:
        # Raised when no port backend such as python-rtmidi is installed.
        log_event(logger, "midi_input_unavailable", level=logging.WARNING, reason="backend_unavailable", error=str(exc))
        return None
    if not ports:
        log_event(logger, "midi_input_unavailable", level=logging.WARNING, reason="no_ports")
        return None
    if preferred:
        for name in ports:
            if preferred.lower() in name.lower():
                return name
    return ports[0]


class MidiInputListener:
    """Reads a MIDI input port on a daemon thread and feeds note events to a drill session."""

    def __init__(self, session, port_name: str):
        self.session = session
        self.port_name = port_name
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._sequence = itertools.count(1)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._listen, name="midi-input", daemon=True)
        self._thread.start()
        log_event(logger, "midi_input_started", port=self.port_name)

    def stop(self, timeout: float = 1.0) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout)
        self._thread = None
        log_event(logger, "midi_input_stopped", port=self.port_name)

    def dispatch(self, msg: mido.Message) -> None:
        converted = message_to_event(
            msg,
            timestamp=time.monotonic(),
            event_id=f"{self.port_name}:{next(self._sequence)}",
        )
        if converted is None:
            return
        kind, event = converted
        if kind == "note_on":
            self.session.note_on(event)
        else:
            self.session.note_off(event)

    def _listen(self) -> None:
        try:
            with mido.open_input(self.port_name) as port:
                while not self._stop.is_set():
                    for msg in port.iter_pending():
                        self.dispatch(msg)
                    self._stop.wait(POLL_INTERVAL_SECONDS)
        except (ImportError, OSError) as exc:
            log_event(logger, "midi_input_failed", level=logging.ERROR, port=self.port_name, error=str(exc))
