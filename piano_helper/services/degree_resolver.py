from __future__ import annotations

import logging
from dataclasses import dataclass

from piano_helper.logging_utils import log_event
from piano_helper.models import DiatonicChord, Key, VoicingOptions
from piano_helper.services.music_theory import (
    ROMAN_STEPS,
    chord_display_name,
    detect_chord_quality,
    in_midi_range,
    pitch_class_name,
    scale_intervals,
)
from piano_helper.services.voicing import voice

logger = logging.getLogger(__name__)

DEGREE_COUNT = 7
TRIAD_STACK = (0, 2, 4)
SEVENTH_STACK = (0, 2, 4, 6)

# Roman-numeral case and suffix per chord alias.
_NUMERAL_FORMS: dict[str, tuple[bool, str]] = {
    "maj": (False, ""),
    "m": (True, ""),
    "dim": (True, "°"),
    "aug": (False, "+"),
    "sus2": (False, "sus2"),
    "sus4": (False, "sus4"),
    "6": (False, "6"),
    "m6": (True, "6"),
    "7": (False, "7"),
    "maj7": (False, "maj7"),
    "m7": (True, "7"),
    "m7b5": (True, "ø7"),
    "dim7": (True, "°7"),
    "mMaj7": (True, "maj7"),
    "maj7#5": (False, "+maj7"),
    "aug7": (False, "+7"),
    "7sus4": (False, "7sus4"),
}


@dataclass(frozen=True)
class NoteWithOctave:
    name: str
    octave: int
    midi: int

    @property
    def label(self) -> str:
        return f"{self.name}{self.octave}"


def _scale_for(key: Key, degree_index: int) -> list[int] | None:
    intervals = scale_intervals(key.scale_type)
    if intervals is None or len(intervals) != DEGREE_COUNT:
        log_event(logger, "degree_resolution_failed", level=logging.WARNING, reason="unknown_scale", scale_type=key.scale_type)
        return None
    if not 0 <= degree_index < DEGREE_COUNT:
        log_event(logger, "degree_resolution_failed", level=logging.WARNING, reason="degree_out_of_range", degree=degree_index)
        return None
    return intervals


def resolve_degree_root(key: Key, degree_index: int) -> NoteWithOctave | None:
    """Transpose the key's root by the scale's own interval at ``degree_index``."""
    intervals = _scale_for(key, degree_index)
    if intervals is None:
        return None
    root_midi = key.root_midi
    if root_midi is None:
        log_event(logger, "degree_resolution_failed", level=logging.WARNING, reason="root_out_of_range", root=key.root, octave=key.octave)
        return None
    midi = root_midi + intervals[degree_index]
    if not in_midi_range(midi):
        log_event(logger, "degree_resolution_failed", level=logging.WARNING, reason="degree_out_of_range", degree=degree_index, midi=midi)
        return None
    return NoteWithOctave(name=pitch_class_name(midi), octave=midi // 12 - 1, midi=midi)


def degree_chord_intervals(key: Key, degree_index: int, want_seventh: bool) -> list[int] | None:
    """Stack scale tones in thirds from ``degree_index``; semitone offsets from the degree root."""
    intervals = _scale_for(key, degree_index)
    if intervals is None:
        return None
    stack = SEVENTH_STACK if want_seventh else TRIAD_STACK
    base = intervals[degree_index]
    offsets: list[int] = []
    for step in stack:
        idx = degree_index + step
        tone = intervals[idx % DEGREE_COUNT] + 12 * (idx // DEGREE_COUNT)
        offsets.append(tone - base)
    return offsets


def synthesized_quality(intervals: list[int]) -> str:
    return "(" + ",".join(str(i) for i in intervals) + ")"


def resolve_diatonic_chord_type(key: Key, degree_index: int, want_seventh: bool) -> str | None:
    intervals = degree_chord_intervals(key, degree_index, want_seventh)
    if intervals is None:
        return None
    alias = detect_chord_quality(intervals)
    if alias is None:
        log_event(
            logger,
            "chord_detection_fallback",
            level=logging.WARNING,
            degree=degree_index,
            scale_type=key.scale_type,
            intervals=intervals,
        )
        return synthesized_quality(intervals)
    return alias


def roman_numeral_label(degree_index: int, quality: str, intervals: list[int]) -> str:
    base = ROMAN_STEPS[degree_index]
    form = _NUMERAL_FORMS.get(quality)
    if form is None:
        pcs = {i % 12 for i in intervals}
        lower = 3 in pcs and 4 not in pcs
        return (base.lower() if lower else base) + "?"
    lower, suffix = form
    return (base.lower() if lower else base) + suffix


def diatonic_chord(
    key: Key,
    degree_index: int,
    want_seventh: bool,
    voicing: VoicingOptions | None = None,
) -> DiatonicChord | None:
    root = resolve_degree_root(key, degree_index)
    intervals = degree_chord_intervals(key, degree_index, want_seventh)
    if root is None or intervals is None:
        return None
    quality = resolve_diatonic_chord_type(key, degree_index, want_seventh) or synthesized_quality(intervals)
    base_notes = [root.midi + interval for interval in intervals]
    return DiatonicChord(
        degree=degree_index,
        numeral=roman_numeral_label(degree_index, quality, intervals),
        root=root.label,
        root_midi=root.midi,
        quality=quality,
        chord_name=chord_display_name(root.midi % 12, quality),
        detected=detect_chord_quality(intervals) is not None,
        intervals=intervals,
        midi_notes=voice(base_notes, voicing or VoicingOptions(), root.midi, intervals),
    )


def diatonic_chords(key: Key, want_seventh: bool, voicing: VoicingOptions | None = None) -> list[DiatonicChord]:
    chords = [diatonic_chord(key, degree, want_seventh, voicing) for degree in range(DEGREE_COUNT)]
    return [chord for chord in chords if chord is not None]

