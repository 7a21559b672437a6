from __future__ import annotations

import logging
from collections.abc import Hashable

from piano_helper.logging_utils import log_event
from piano_helper.models import ChordStep, DrillScore, DrillSequence, DrillStatus, MatchOutcome, NoteEvent, NoteStep

logger = logging.getLogger(__name__)


def event_key(event: NoteEvent) -> Hashable | None:
    """Identity used to drop re-delivered events; None means the event cannot be deduplicated."""
    if event.event_id is not None:
        return ("id", event.event_id)
    if event.timestamp is not None:
        return ("ts", event.timestamp, event.note)
    return None


class DrillMatcher:
    """Scores live note-on events against a drill sequence, one step at a time.

    The matcher never raises from ``note_on``: a step it cannot evaluate is
    logged and the event is reported as ``ignored``.
    """

    def __init__(self) -> None:
        self.sequence: DrillSequence | None = None
        self.current_index = 0
        self.correct = 0
        self.incorrect = 0
        self.notes_held: set[int] = set()
        self._processed: set[Hashable] = set()

    @property
    def status(self) -> DrillStatus:
        if self.sequence is None:
            return "idle"
        if self.current_index >= len(self.sequence.steps):
            return "complete"
        return "awaiting"

    @property
    def score(self) -> DrillScore:
        return DrillScore(correct=self.correct, incorrect=self.incorrect)

    @property
    def total_steps(self) -> int:
        return len(self.sequence.steps) if self.sequence is not None else 0

    def reset(self, sequence: DrillSequence) -> None:
        self.sequence = sequence
        self._clear_progress()

    def stop(self) -> None:
        self.sequence = None
        self._clear_progress()

    def _clear_progress(self) -> None:
        self.current_index = 0
        self.correct = 0
        self.incorrect = 0
        self.notes_held = set()
        self._processed = set()

    def current_step(self) -> NoteStep | ChordStep | None:
        if self.status != "awaiting":
            return None
        return self.sequence.steps[self.current_index]

    def note_off(self, event: NoteEvent) -> MatchOutcome:
        return "ignored"

    def note_on(self, event: NoteEvent) -> MatchOutcome:
        if event.velocity == 0:
            return self.note_off(event)
        if self.status != "awaiting":
            return "ignored"

        key = event_key(event)
        if key is not None:
            if key in self._processed:
                log_event(logger, "drill_event_duplicate", level=logging.DEBUG, note=event.note, event_key=str(key))
                return "duplicate"
            self._processed.add(key)

        step = self.current_step()
        expected = set(step.expected_notes) if step is not None else set()
        if not expected:
            log_event(logger, "drill_step_invalid", level=logging.WARNING, index=self.current_index)
            return "ignored"

        if isinstance(step, NoteStep):
            if event.note == step.expected_midi:
                self.correct += 1
                self._advance()
                return "correct"
            return self._record_incorrect(event.note, expected)

        if event.note not in expected:
            return self._record_incorrect(event.note, expected)

        self.notes_held.add(event.note)
        if len(self.notes_held) < len(expected):
            return "chord_progress"
        self.correct += 1
        self._advance()
        return "chord_complete"

    def _record_incorrect(self, note: int, expected: set[int]) -> MatchOutcome:
        self.incorrect += 1
        log_event(
            logger,
            "drill_note_incorrect",
            level=logging.DEBUG,
            note=note,
            expected=sorted(expected),
            index=self.current_index,
        )
        return "incorrect"

    def _advance(self) -> None:
        self.current_index += 1
        self.notes_held = set()
        if self.status == "complete":
            log_event(logger, "drill_completed", correct=self.correct, incorrect=self.incorrect, total=self.total_steps)
        else:
            log_event(logger, "drill_step_advanced", level=logging.DEBUG, index=self.current_index, total=self.total_steps)
