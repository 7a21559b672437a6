from __future__ import annotations

import logging

from piano_helper.logging_utils import log_event
from piano_helper.models import Key, ResolvedProgressionChord, VoicingOptions
from piano_helper.services.degree_resolver import diatonic_chord, resolve_degree_root
from piano_helper.services.music_theory import (
    MAJOR_STEP_OFFSETS,
    RomanNumeral,
    chord_display_name,
    chord_intervals,
    in_midi_range,
    parse_roman_numeral,
    pitch_class_name,
)
from piano_helper.services.voicing import voice

logger = logging.getLogger(__name__)

PROGRESSION_PRESETS: dict[str, list[str]] = {
    "I-IV-V-I": ["I", "IV", "V", "I"],
    "I-V-vi-IV": ["I", "V", "vi", "IV"],
    "ii-V-I": ["ii", "V", "I"],
    "I-vi-IV-V": ["I", "vi", "IV", "V"],
    "vi-IV-I-V": ["vi", "IV", "I", "V"],
    "I-IV-vii°-iii-vi-ii-V-I": ["I", "IV", "vii°", "iii", "vi", "ii", "V", "I"],
    "i-iv-v-i": ["i", "iv", "v", "i"],
    "i-VI-III-VII": ["i", "VI", "III", "VII"],
}

# Seventh added to a non-diatonic chord when sevenths are requested.
_FALLBACK_SEVENTHS = {"maj": "7", "m": "m7", "dim": "dim7", "aug": "aug7"}


def preset_numerals(preset: str) -> list[str] | None:
    numerals = PROGRESSION_PRESETS.get(preset.strip())
    return list(numerals) if numerals is not None else None


def literal_root_midi(key: Key, numeral: RomanNumeral) -> int | None:
    """Root the numeral names literally: the diatonic degree, or the major-scale step shifted by its accidental."""
    if numeral.step is None:
        return None
    if numeral.accidental == 0:
        root = resolve_degree_root(key, numeral.step)
        return root.midi if root is not None else None
    tonic = key.root_midi
    if tonic is None:
        return None
    midi = tonic + MAJOR_STEP_OFFSETS[numeral.step] + numeral.accidental
    return midi if in_midi_range(midi) else None


def fallback_quality(numeral: RomanNumeral, want_seventh: bool) -> str:
    quality = numeral.quality or "maj"
    if want_seventh and not numeral.has_seventh:
        return _FALLBACK_SEVENTHS.get(quality, quality)
    return quality


def _placeholder(text: str, error: str, label: str) -> ResolvedProgressionChord:
    return ResolvedProgressionChord(roman=text, chord_name=label, diatonic=False, error=error)


def resolve_progression_chord(
    key: Key,
    text: str,
    want_seventh: bool,
    voicing: VoicingOptions,
) -> ResolvedProgressionChord:
    numeral = parse_roman_numeral(text)
    if not numeral.valid:
        log_event(logger, "progression_numeral_invalid", level=logging.WARNING, numeral=text)
        return _placeholder(text, "invalid_numeral", f"Invalid numeral '{text}'")

    seventh = want_seventh or numeral.has_seventh
    literal_root = literal_root_midi(key, numeral)
    if literal_root is None:
        log_event(logger, "progression_numeral_invalid", level=logging.WARNING, numeral=text, reason="root_unresolvable")
        return _placeholder(text, "root_unresolvable", f"Unresolvable numeral '{text}'")

    diatonic = diatonic_chord(key, numeral.step, seventh)
    if diatonic is not None and diatonic.root_midi % 12 == literal_root % 12:
        root_midi = diatonic.root_midi
        intervals = diatonic.intervals
        chord_name = diatonic.chord_name
        is_diatonic = True
    else:
        quality = fallback_quality(numeral, want_seventh)
        intervals = chord_intervals(quality) or [0, 4, 7]
        root_midi = literal_root
        chord_name = chord_display_name(root_midi % 12, quality)
        is_diatonic = False
        log_event(logger, "progression_fallback_chord", numeral=text, chord_name=chord_name)

    base_notes = [root_midi + interval for interval in intervals]
    return ResolvedProgressionChord(
        roman=text,
        chord_name=chord_name,
        theoretical_notes=[pitch_class_name(n) for n in base_notes],
        midi_notes=voice(base_notes, voicing, root_midi, intervals),
        diatonic=is_diatonic,
    )


def resolve_progression(
    key: Key,
    roman_numerals: list[str],
    want_seventh: bool,
    voicing: VoicingOptions | None = None,
) -> list[ResolvedProgressionChord]:
    options = voicing or VoicingOptions()
    resolved: list[ResolvedProgressionChord] = []
    for index, text in enumerate(roman_numerals):
        try:
            resolved.append(resolve_progression_chord(key, text, want_seventh, options))
        except ValueError as exc:
            log_event(logger, "progression_numeral_invalid", level=logging.WARNING, numeral=text, position=index, reason=str(exc))
            resolved.append(_placeholder(text, "resolution_failed", f"Unresolvable numeral '{text}'"))
    log_event(
        logger,
        "progression_resolved",
        level=logging.DEBUG,
        numerals=list(roman_numerals),
        chord_names=[chord.chord_name for chord in resolved],
    )
    return resolved
