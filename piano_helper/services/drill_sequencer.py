"""Drill sequence generation.

A sequence is built in three passes: a per-mode base sequence, an ordering
pass for the requested style, and repetition. Generation never raises for
incomplete inputs; it logs the reason and returns an empty sequence so the
caller can surface a "cannot start" state.
"""

from __future__ import annotations

import hashlib
import json
import logging
import random
from dataclasses import dataclass, field

from piano_helper.logging_utils import log_event
from piano_helper.models import (
    ChordStep,
    DiatonicChord,
    DrillMode,
    DrillOptions,
    DrillSequence,
    Key,
    NoteStep,
    ResolvedProgressionChord,
    VoicingOptions,
)
from piano_helper.services.music_theory import (
    ROOT_NOTES,
    chord_display_name,
    chord_intervals,
    in_midi_range,
    midi_to_note_name,
    normalize_chord_type,
    scale_intervals,
)
from piano_helper.services.voicing import voice

logger = logging.getLogger(__name__)

THIRDS_STEP = 2


class DrillGenerationRefused(ValueError):
    pass


@dataclass
class DrillContext:
    """Everything a generation pass reads; the diatonic and progression entries arrive pre-voiced."""

    key: Key
    voicing: VoicingOptions = field(default_factory=VoicingOptions)
    chord_type: str = "maj"
    want_seventh: bool = False
    diatonic: list[DiatonicChord | None] = field(default_factory=list)
    progression_numerals: list[str] = field(default_factory=list)
    progression: list[ResolvedProgressionChord] = field(default_factory=list)


def generation_inputs(mode: str, context: DrillContext) -> dict:
    """The subset of ``context`` that shapes the notes of a ``mode`` drill."""
    if mode == "scale":
        return {"key": context.key.model_dump()}
    if mode == "chord_search":
        return {
            "octave": context.key.octave,
            "chord_type": context.chord_type,
            "voicing": context.voicing.model_dump(),
        }
    if mode == "diatonic":
        return {
            "key": context.key.model_dump(),
            "voicing": context.voicing.model_dump(),
            "seventh": context.want_seventh,
        }
    if mode == "progression":
        return {
            "key": context.key.model_dump(),
            "voicing": context.voicing.model_dump(),
            "seventh": context.want_seventh,
            "progression": list(context.progression_numerals),
        }
    return {}


def compute_fingerprint(mode: str, options: DrillOptions, context: DrillContext) -> str:
    payload = {
        "mode": mode,
        "options": options.model_dump(),
        "inputs": generation_inputs(mode, context),
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _shifted(notes: list[int], octave_index: int) -> list[int]:
    return [n + 12 * octave_index for n in notes if in_midi_range(n + 12 * octave_index)]


def scale_octave_notes(key: Key, octave_index: int) -> list[int]:
    intervals = scale_intervals(key.scale_type) or []
    root_midi = key.root_midi
    if root_midi is None:
        return []
    return [root_midi + 12 * octave_index + interval for interval in intervals]


def thirds_pattern(octave_notes: list[int]) -> list[int]:
    """Each scale tone followed by the tone two steps above it, wrapping into the next octave."""
    count = len(octave_notes)
    pattern: list[int] = []
    for index in range(count):
        upper = index + THIRDS_STEP
        pattern.append(octave_notes[index])
        pattern.append(octave_notes[upper % count] + 12 * (upper // count))
    return pattern


def _scale_steps(context: DrillContext, options: DrillOptions, rng) -> list[NoteStep]:
    entries: list[tuple[int, int]] = []
    for octave_index in range(options.octaves):
        octave_notes = scale_octave_notes(context.key, octave_index)
        if options.style == "thirds":
            octave_notes = thirds_pattern(octave_notes)
        entries.extend((note, octave_index) for note in octave_notes if in_midi_range(note))

    if options.style == "ascending":
        entries.sort(key=lambda entry: entry[0])
    elif options.style == "descending":
        entries.sort(key=lambda entry: entry[0], reverse=True)
    elif options.style == "random":
        rng.shuffle(entries)

    return [
        NoteStep(expected_midi=note, label=midi_to_note_name(note), octave_index=octave_index)
        for note, octave_index in entries
    ]


def _chord_search_steps(context: DrillContext, options: DrillOptions) -> list[ChordStep]:
    chord_type = normalize_chord_type(context.chord_type) or context.chord_type
    intervals = chord_intervals(chord_type) or []
    steps: list[ChordStep] = []
    for root_pc, root_name in enumerate(ROOT_NOTES):
        root_midi = (context.key.octave + 1) * 12 + root_pc
        if not in_midi_range(root_midi):
            continue
        voiced = voice([root_midi + i for i in intervals], context.voicing, root_midi, intervals)
        chord_name = chord_display_name(root_pc, chord_type)
        for octave_index in range(options.octaves):
            notes = _shifted(voiced, octave_index)
            if not notes:
                continue
            steps.append(
                ChordStep(
                    expected_midi_set=notes,
                    label=f"{chord_name} (Oct {octave_index + 1})",
                    root_note=root_name,
                    octave_index=octave_index,
                )
            )
    return steps


def _diatonic_steps(context: DrillContext, options: DrillOptions) -> list[ChordStep]:
    steps: list[ChordStep] = []
    for octave_index in range(options.octaves):
        for degree_index, chord in enumerate(context.diatonic):
            if chord is None or not chord.midi_notes:
                continue
            notes = _shifted(chord.midi_notes, octave_index)
            if not notes:
                continue
            steps.append(
                ChordStep(
                    expected_midi_set=notes,
                    label=f"{chord.numeral}: {chord.chord_name} (Oct {octave_index + 1})",
                    degree_index=degree_index,
                    octave_index=octave_index,
                )
            )
    return steps


def _progression_steps(context: DrillContext) -> list[ChordStep]:
    steps: list[ChordStep] = []
    for position, chord in enumerate(context.progression):
        notes = [n for n in chord.midi_notes if in_midi_range(n)]
        if not notes:
            continue
        steps.append(
            ChordStep(
                expected_midi_set=notes,
                label=f"{chord.roman}: {chord.chord_name}",
                progression_index=position,
            )
        )
    return steps


def _order_chord_steps(mode: str, steps: list[ChordStep], style: str, rng) -> list[ChordStep]:
    ordered = list(steps)
    if style == "descending":
        ordered.reverse()
    elif style == "random":
        rng.shuffle(ordered)
    elif style == "thirds":
        log_event(logger, "drill_style_ignored", level=logging.WARNING, mode=mode, style=style)
    return ordered


def check_generation_inputs(mode: str, context: DrillContext) -> None:
    """Raise ``DrillGenerationRefused`` when ``mode`` lacks the inputs it needs."""
    if mode == "scale":
        if scale_intervals(context.key.scale_type) is None or context.key.root_midi is None:
            raise DrillGenerationRefused("scale_unavailable")
    elif mode == "chord_search":
        if chord_intervals(context.chord_type) is None:
            raise DrillGenerationRefused("unknown_chord_type")
    elif mode == "diatonic":
        if len(context.diatonic) != 7:
            raise DrillGenerationRefused("diatonic_notes_incomplete")
        if not any(chord is not None and chord.midi_notes for chord in context.diatonic):
            raise DrillGenerationRefused("diatonic_notes_empty")
    elif mode == "progression":
        if not any(chord.midi_notes for chord in context.progression):
            raise DrillGenerationRefused("no_progression_selected")
    else:
        raise DrillGenerationRefused("unknown_mode")


def generate_drill(
    mode: DrillMode,
    context: DrillContext,
    options: DrillOptions | None = None,
    rng: random.Random | None = None,
) -> DrillSequence:
    options = options or DrillOptions()
    rng = rng or random.Random()
    fingerprint = compute_fingerprint(mode, options, context)

    try:
        check_generation_inputs(mode, context)
    except DrillGenerationRefused as exc:
        log_event(logger, "drill_generation_refused", level=logging.WARNING, mode=mode, reason=str(exc))
        return DrillSequence(mode=mode, options=options, steps=[], fingerprint=fingerprint)

    if mode == "scale":
        base = _scale_steps(context, options, rng)
    else:
        if mode == "chord_search":
            chord_steps = _chord_search_steps(context, options)
        elif mode == "diatonic":
            chord_steps = _diatonic_steps(context, options)
        else:
            chord_steps = _progression_steps(context)
        base = _order_chord_steps(mode, chord_steps, options.style, rng)

    if not base:
        log_event(logger, "drill_generation_refused", level=logging.WARNING, mode=mode, reason="no_playable_steps")
        return DrillSequence(mode=mode, options=options, steps=[], fingerprint=fingerprint)

    steps = base * options.repetitions
    log_event(
        logger,
        "drill_generated",
        mode=mode,
        style=options.style,
        octaves=options.octaves,
        repetitions=options.repetitions,
        step_count=len(steps),
        fingerprint=fingerprint[:12],
    )
    return DrillSequence(mode=mode, options=options, steps=steps, fingerprint=fingerprint)
