from __future__ import annotations

import re
from dataclasses import dataclass

NOTE_TO_SEMITONE = {
    "C": 0,
    "B#": 0,
    "C#": 1,
    "Db": 1,
    "D": 2,
    "D#": 3,
    "Eb": 3,
    "E": 4,
    "Fb": 4,
    "E#": 5,
    "F": 5,
    "F#": 6,
    "Gb": 6,
    "G": 7,
    "G#": 8,
    "Ab": 8,
    "A": 9,
    "A#": 10,
    "Bb": 10,
    "B": 11,
    "Cb": 11,
}
SEMITONE_TO_NOTE = {
    0: "C",
    1: "C#",
    2: "D",
    3: "D#",
    4: "E",
    5: "F",
    6: "F#",
    7: "G",
    8: "G#",
    9: "A",
    10: "A#",
    11: "B",
}
ROOT_NOTES = [SEMITONE_TO_NOTE[pc] for pc in range(12)]

MIDI_MIN = 0
MIDI_MAX = 127

SCALE_PATTERNS: dict[str, list[int]] = {
    "major": [0, 2, 4, 5, 7, 9, 11],
    "minor": [0, 2, 3, 5, 7, 8, 10],
    "harmonic minor": [0, 2, 3, 5, 7, 8, 11],
    "melodic minor": [0, 2, 3, 5, 7, 9, 11],
    "dorian": [0, 2, 3, 5, 7, 9, 10],
    "phrygian": [0, 1, 3, 5, 7, 8, 10],
    "lydian": [0, 2, 4, 6, 7, 9, 11],
    "mixolydian": [0, 2, 4, 5, 7, 9, 10],
    "locrian": [0, 1, 3, 5, 6, 8, 10],
}
SCALE_ALIASES = {
    "ionian": "major",
    "aeolian": "minor",
    "natural minor": "minor",
}

CHORD_FORMULAS: dict[str, list[int]] = {
    "maj": [0, 4, 7],
    "m": [0, 3, 7],
    "dim": [0, 3, 6],
    "aug": [0, 4, 8],
    "sus2": [0, 2, 7],
    "sus4": [0, 5, 7],
    "6": [0, 4, 7, 9],
    "m6": [0, 3, 7, 9],
    "7": [0, 4, 7, 10],
    "maj7": [0, 4, 7, 11],
    "m7": [0, 3, 7, 10],
    "m7b5": [0, 3, 6, 10],
    "dim7": [0, 3, 6, 9],
    "mMaj7": [0, 3, 7, 11],
    "maj7#5": [0, 4, 8, 11],
    "aug7": [0, 4, 8, 10],
    "7sus4": [0, 5, 7, 10],
}
CHORD_ALIASES = {
    "": "maj",
    "M": "maj",
    "major": "maj",
    "min": "m",
    "minor": "m",
    "-": "m",
    "°": "dim",
    "o": "dim",
    "diminished": "dim",
    "+": "aug",
    "augmented": "aug",
    "dom7": "7",
    "M7": "maj7",
    "Maj7": "maj7",
    "min7": "m7",
    "-7": "m7",
    "ø": "m7b5",
    "ø7": "m7b5",
    "half-diminished": "m7b5",
    "°7": "dim7",
    "o7": "dim7",
    "mM7": "mMaj7",
    "minmaj7": "mMaj7",
    "augmaj7": "maj7#5",
    "+7": "aug7",
}
CHORD_SUFFIXES = {"maj": "", "m": "m"}

_INTERVALS_TO_CHORD = {frozenset(formula): alias for alias, formula in CHORD_FORMULAS.items()}

NOTE_RE = re.compile(r"^([A-Ga-g])([#b]?)(-?\d+)$")
PITCH_RE = re.compile(r"^([A-Ga-g])([#b]?)$")


def normalize_note_name(name: str) -> str | None:
    m = PITCH_RE.fullmatch(name.strip())
    if not m:
        return None
    normalized = f"{m.group(1).upper()}{m.group(2)}"
    return normalized if normalized in NOTE_TO_SEMITONE else None


def pitch_class(name: str) -> int | None:
    normalized = normalize_note_name(name)
    if normalized is None:
        return None
    return NOTE_TO_SEMITONE[normalized]


def note_name_to_midi(name: str) -> int | None:
    m = NOTE_RE.fullmatch(name.strip())
    if not m:
        return None
    pc = pitch_class(f"{m.group(1)}{m.group(2)}")
    if pc is None:
        return None
    letter = m.group(1).upper()
    octave = int(m.group(3))
    # B#4 sounds as C5 and Cb4 as B3.
    if letter == "B" and m.group(2) == "#":
        octave += 1
    elif letter == "C" and m.group(2) == "b":
        octave -= 1
    midi = pc + (octave + 1) * 12
    if not MIDI_MIN <= midi <= MIDI_MAX:
        return None
    return midi


def midi_to_note_name(midi: int) -> str:
    if not MIDI_MIN <= midi <= MIDI_MAX:
        raise ValueError(f"MIDI note out of range: {midi}")
    octave = (midi // 12) - 1
    return f"{SEMITONE_TO_NOTE[midi % 12]}{octave}"


def pitch_class_name(pc: int) -> str:
    return SEMITONE_TO_NOTE[pc % 12]


def in_midi_range(midi: int) -> bool:
    return MIDI_MIN <= midi <= MIDI_MAX


def normalize_scale_type(scale_type: str) -> str | None:
    cleaned = " ".join(scale_type.strip().lower().replace("_", " ").split())
    cleaned = SCALE_ALIASES.get(cleaned, cleaned)
    return cleaned if cleaned in SCALE_PATTERNS else None


def scale_intervals(scale_type: str) -> list[int] | None:
    normalized = normalize_scale_type(scale_type)
    if normalized is None:
        return None
    return list(SCALE_PATTERNS[normalized])


def supported_scale_types() -> list[str]:
    return list(SCALE_PATTERNS)


def normalize_chord_type(alias: str) -> str | None:
    cleaned = alias.strip()
    if cleaned in CHORD_FORMULAS:
        return cleaned
    if cleaned in CHORD_ALIASES:
        return CHORD_ALIASES[cleaned]
    # Case only matters for the short forms (M7 vs m7); spelled-out words are case-insensitive.
    if len(cleaned) <= 3:
        return None
    lowered = cleaned.lower()
    return lowered if lowered in CHORD_FORMULAS else CHORD_ALIASES.get(lowered)


def chord_intervals(alias: str) -> list[int] | None:
    normalized = normalize_chord_type(alias)
    if normalized is None:
        return None
    return list(CHORD_FORMULAS[normalized])


def supported_chord_types() -> list[str]:
    return list(CHORD_FORMULAS)


def detect_chord_quality(intervals: list[int]) -> str | None:
    """Return the chord alias whose formula equals ``intervals`` (relative to the root), or None."""
    if not intervals:
        return None
    pcs = frozenset({0, *(i % 12 for i in intervals)})
    return _INTERVALS_TO_CHORD.get(pcs)


def chord_display_name(root_pc: int, alias: str) -> str:
    return f"{pitch_class_name(root_pc)}{CHORD_SUFFIXES.get(alias, alias)}"


ROMAN_RE = re.compile(
    r"^(?P<accidental>[b#]?)"
    r"(?P<numeral>VII|VI|V|IV|III|II|I|vii|vi|v|iv|iii|ii|i)"
    r"(?P<quality>°|o|dim|ø|\+|aug)?"
    r"(?P<extension>maj7|M7|7)?$"
)
ROMAN_STEPS = ["I", "II", "III", "IV", "V", "VI", "VII"]
MAJOR_STEP_OFFSETS = SCALE_PATTERNS["major"]

_SEVENTH_OF = {"maj": "7", "m": "m7", "dim": "dim7", "aug": "aug7", "m7b5": "m7b5"}
_MAJOR_SEVENTH_OF = {"maj": "maj7", "m": "mMaj7", "aug": "maj7#5"}


@dataclass(frozen=True)
class RomanNumeral:
    text: str
    step: int | None
    accidental: int = 0
    quality: str | None = None
    has_seventh: bool = False
    explicit_quality: bool = False

    @property
    def valid(self) -> bool:
        return self.step is not None and self.quality is not None


def parse_roman_numeral(text: str) -> RomanNumeral:
    cleaned = text.strip()
    m = ROMAN_RE.fullmatch(cleaned)
    if not m:
        return RomanNumeral(text=cleaned, step=None)

    numeral = m.group("numeral")
    step = ROMAN_STEPS.index(numeral.upper())
    accidental = {"b": -1, "#": 1}.get(m.group("accidental"), 0)
    mark = m.group("quality")
    extension = m.group("extension")

    quality = "maj" if numeral.isupper() else "m"
    if mark in {"°", "o", "dim"}:
        quality = "dim"
    elif mark == "ø":
        quality = "m7b5"
    elif mark in {"+", "aug"}:
        quality = "aug"

    has_seventh = quality == "m7b5"
    if extension == "7":
        quality = _SEVENTH_OF[quality]
        has_seventh = True
    elif extension in {"maj7", "M7"}:
        if quality not in _MAJOR_SEVENTH_OF:
            return RomanNumeral(text=cleaned, step=None)
        quality = _MAJOR_SEVENTH_OF[quality]
        has_seventh = True

    return RomanNumeral(
        text=cleaned,
        step=step,
        accidental=accidental,
        quality=quality,
        has_seventh=has_seventh,
        explicit_quality=mark is not None or extension is not None,
    )
