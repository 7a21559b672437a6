"""Session state that pairs the drill sequencer with the matcher.

Every public method takes the session lock, so a note event is never matched
against a sequence that is half way through regeneration. Configuration
changes that alter an active drill's fingerprint stop the drill instead of
letting it run on stale notes. Random-style drills reshuffle whenever they
are regenerated, including regeneration caused by unrelated option changes.
"""

from __future__ import annotations

import logging
import random
import uuid
from contextlib import contextmanager
from threading import Lock

from piano_helper.logging_utils import log_event, reset_session_context, set_session_context
from piano_helper.models import (
    CurrentStep,
    DiatonicChord,
    DisplayMode,
    DrillMode,
    DrillOptions,
    DrillScore,
    DrillStateResponse,
    Key,
    NoteEvent,
    NoteEventResponse,
    ResolvedProgressionChord,
    StartDrillResponse,
    VoicingOptions,
)
from piano_helper.services.degree_resolver import DEGREE_COUNT, diatonic_chord, diatonic_chords
from piano_helper.services.drill_matcher import DrillMatcher
from piano_helper.services.drill_sequencer import (
    DrillContext,
    DrillGenerationRefused,
    check_generation_inputs,
    compute_fingerprint,
    generate_drill,
    scale_octave_notes,
)
from piano_helper.services.music_theory import chord_intervals, in_midi_range, normalize_chord_type
from piano_helper.services.progression import preset_numerals, resolve_progression
from piano_helper.services.voicing import voice
from piano_helper.settings import Settings, load_settings

logger = logging.getLogger(__name__)


class DrillSession:
    def __init__(self, settings: Settings | None = None, rng: random.Random | None = None):
        self.settings = settings or load_settings()
        self.session_id = uuid.uuid4().hex[:12]
        self._lock = Lock()
        self._rng = rng or random.Random()
        self.key = Key(octave=self.settings.default_octave)
        self.voicing = VoicingOptions(lh_octave_offset=self.settings.lh_octave_offset)
        self.want_seventh = False
        self.chord_type = "maj"
        self.progression_numerals: list[str] = []
        self.progression: list[ResolvedProgressionChord] = []
        self.display_mode: DisplayMode = "scale"
        self.selected_degree = 0
        self.matcher = DrillMatcher()

    @contextmanager
    def _locked(self):
        with self._lock:
            token = set_session_context(self.session_id)
            try:
                yield
            finally:
                reset_session_context(token)

    # Configuration

    def set_key(self, key: Key) -> DrillStateResponse:
        with self._locked():
            self.key = key
            self._refresh_progression()
            self._deactivate_if_stale("key")
            return self._snapshot()

    def set_voicing_options(self, options: VoicingOptions, seventh: bool | None = None) -> DrillStateResponse:
        with self._locked():
            self.voicing = options
            if seventh is not None:
                self.want_seventh = seventh
            self._refresh_progression()
            self._deactivate_if_stale("voicing")
            return self._snapshot()

    def set_seventh(self, seventh: bool) -> DrillStateResponse:
        with self._locked():
            self.want_seventh = seventh
            self._refresh_progression()
            self._deactivate_if_stale("seventh")
            return self._snapshot()

    def set_chord_type(self, chord_type: str) -> DrillStateResponse:
        normalized = normalize_chord_type(chord_type)
        if normalized is None:
            raise ValueError(f"Unknown chord type '{chord_type}'.")
        with self._locked():
            self.chord_type = normalized
            self._deactivate_if_stale("chord_type")
            return self._snapshot()

    def set_progression(
        self,
        preset: str | None = None,
        numerals: list[str] | None = None,
    ) -> list[ResolvedProgressionChord]:
        if preset is not None:
            selected = preset_numerals(preset)
            if selected is None:
                raise ValueError(f"Unknown progression preset '{preset}'.")
        else:
            selected = [n.strip() for n in numerals or [] if n.strip()]
        with self._locked():
            self.progression_numerals = selected
            self._refresh_progression()
            self._deactivate_if_stale("progression")
            return list(self.progression)

    def set_display_mode(self, mode: DisplayMode, degree: int = 0) -> DrillStateResponse:
        if not 0 <= degree < DEGREE_COUNT:
            raise ValueError(f"Degree must be between 0 and {DEGREE_COUNT - 1}.")
        with self._locked():
            self.display_mode = mode
            self.selected_degree = degree
            return self._snapshot()

    # Drill commands

    def start_drill(self, mode: DrillMode, options: DrillOptions | None = None) -> StartDrillResponse:
        options = self._bounded(options or DrillOptions())
        with self._locked():
            return self._start(mode, options, event="drill_started")

    def regenerate(self, options: DrillOptions | None = None) -> StartDrillResponse:
        if options is not None:
            options = self._bounded(options)
        with self._locked():
            sequence = self.matcher.sequence
            if sequence is None:
                return StartDrillResponse(started=False, reason="drill_not_active", state=self._snapshot())
            return self._start(sequence.mode, options or sequence.options, event="drill_regenerated")

    def stop_drill(self) -> DrillStateResponse:
        with self._locked():
            if self.matcher.sequence is not None:
                log_event(logger, "drill_stopped", mode=self.matcher.sequence.mode, score=self.matcher.score.model_dump())
            self.matcher.stop()
            return self._snapshot()

    def note_on(self, event: NoteEvent) -> NoteEventResponse:
        with self._locked():
            outcome = self.matcher.note_on(event)
            return NoteEventResponse(outcome=outcome, state=self._snapshot())

    def note_off(self, event: NoteEvent) -> NoteEventResponse:
        with self._locked():
            outcome = self.matcher.note_off(event)
            return NoteEventResponse(outcome=outcome, state=self._snapshot())

    # Reads

    def snapshot(self) -> DrillStateResponse:
        with self._locked():
            return self._snapshot()

    def current_step(self) -> CurrentStep:
        with self._locked():
            return self._current_step()

    def score(self) -> DrillScore:
        with self._locked():
            return self.matcher.score

    def highlighted_notes(self) -> list[int]:
        with self._locked():
            return self._highlighted_notes()

    def diatonic_table(self) -> list[DiatonicChord]:
        with self._locked():
            return diatonic_chords(self.key, self.want_seventh, self.voicing)

    def resolved_progression(self) -> list[ResolvedProgressionChord]:
        with self._locked():
            return list(self.progression)

    # Internals; callers hold the lock.

    def _bounded(self, options: DrillOptions) -> DrillOptions:
        if options.octaves > self.settings.max_octaves:
            raise ValueError(f"Octaves must be between 1 and {self.settings.max_octaves}.")
        if options.repetitions > self.settings.max_repetitions:
            raise ValueError(f"Repetitions must be between 1 and {self.settings.max_repetitions}.")
        return options

    def _context(self) -> DrillContext:
        return DrillContext(
            key=self.key,
            voicing=self.voicing,
            chord_type=self.chord_type,
            want_seventh=self.want_seventh,
            diatonic=[diatonic_chord(self.key, degree, self.want_seventh, self.voicing) for degree in range(DEGREE_COUNT)],
            progression_numerals=list(self.progression_numerals),
            progression=list(self.progression),
        )

    def _refresh_progression(self) -> None:
        if self.progression_numerals:
            self.progression = resolve_progression(self.key, self.progression_numerals, self.want_seventh, self.voicing)
        else:
            self.progression = []

    def _start(self, mode: DrillMode, options: DrillOptions, event: str) -> StartDrillResponse:
        context = self._context()
        try:
            check_generation_inputs(mode, context)
        except DrillGenerationRefused as exc:
            log_event(logger, "drill_start_refused", level=logging.WARNING, mode=mode, reason=str(exc))
            self.matcher.stop()
            return StartDrillResponse(started=False, reason=str(exc), state=self._snapshot())

        sequence = generate_drill(mode, context, options, rng=self._rng)
        if sequence.empty:
            self.matcher.stop()
            return StartDrillResponse(started=False, reason="no_playable_steps", state=self._snapshot())

        self.matcher.reset(sequence)
        log_event(logger, event, mode=mode, step_count=len(sequence.steps), style=options.style)
        return StartDrillResponse(started=True, state=self._snapshot())

    def _deactivate_if_stale(self, changed: str) -> bool:
        sequence = self.matcher.sequence
        if sequence is None:
            return False
        fingerprint = compute_fingerprint(sequence.mode, sequence.options, self._context())
        if fingerprint == sequence.fingerprint:
            return False
        log_event(
            logger,
            "drill_deactivated_stale_config",
            level=logging.WARNING,
            mode=sequence.mode,
            changed=changed,
        )
        self.matcher.stop()
        return True

    def _current_step(self) -> CurrentStep:
        return CurrentStep(
            step=self.matcher.current_step(),
            index=self.matcher.current_index,
            total=self.matcher.total_steps,
        )

    def _display_notes(self) -> list[int]:
        if self.display_mode == "scale":
            return scale_octave_notes(self.key, 0)
        if self.display_mode == "chord":
            root_midi = self.key.root_midi
            intervals = chord_intervals(self.chord_type)
            if root_midi is None or intervals is None:
                return []
            return voice([root_midi + i for i in intervals], self.voicing, root_midi, intervals)
        if self.display_mode == "diatonic":
            chord = diatonic_chord(self.key, self.selected_degree, self.want_seventh, self.voicing)
            return chord.midi_notes if chord is not None else []
        return [note for chord in self.progression for note in chord.midi_notes]

    def _highlighted_notes(self) -> list[int]:
        if self.matcher.status == "awaiting":
            step = self.matcher.current_step()
            notes = step.expected_notes if step is not None else []
        else:
            notes = self._display_notes()
        return sorted({n for n in notes if in_midi_range(n)})

    def _snapshot(self) -> DrillStateResponse:
        sequence = self.matcher.sequence
        return DrillStateResponse(
            status=self.matcher.status,
            mode=sequence.mode if sequence is not None else None,
            current=self._current_step(),
            score=self.matcher.score,
            notes_held=sorted(self.matcher.notes_held),
            highlighted_notes=self._highlighted_notes(),
            fingerprint=sequence.fingerprint if sequence is not None else None,
        )
