"""Chord voicing transforms.

``voice`` runs a fixed pipeline over a root-position chord: inversion, shell
reduction, split-hand bass with optional rootless right hand, and octave-root
doubling. Every stage tolerates an empty note list and the result is always
sorted, de-duplicated and inside the MIDI range.
"""

from __future__ import annotations

from piano_helper.models import VoicingOptions
from piano_helper.services.music_theory import in_midi_range

MAJOR_THIRD = 4
MINOR_THIRD = 3


def apply_inversion(notes: list[int], inversion: int) -> list[int]:
    """Move the lowest ``inversion`` notes up an octave, keeping the order of the rest."""
    if 0 < inversion < len(notes):
        return notes[inversion:] + [n + 12 for n in notes[:inversion]]
    return list(notes)


def shell_intervals(intervals: list[int]) -> list[int]:
    pcs = {i % 12 for i in intervals}
    shell = [0]
    if MAJOR_THIRD in pcs:
        shell.append(MAJOR_THIRD)
    elif MINOR_THIRD in pcs:
        shell.append(MINOR_THIRD)
    if 10 in pcs:
        shell.append(10)
    elif 11 in pcs:
        shell.append(11)
    elif 9 in pcs and 6 in pcs and 7 not in pcs:
        # Diminished seventh: the bb7 is the seventh.
        shell.append(9)
    return shell


def shell_voicing(chord_root_midi: int, intervals: list[int]) -> list[int]:
    return [chord_root_midi + interval for interval in shell_intervals(intervals)]


def split_hand(notes: list[int], chord_root_midi: int, lh_octave_offset: int, rootless: bool = False) -> list[int]:
    if not notes:
        return []
    if rootless:
        right_hand = [n for n in notes if (n - chord_root_midi) % 12 != 0]
    else:
        right_hand = [n for n in notes if n != chord_root_midi]
    lh_note = chord_root_midi + lh_octave_offset
    if in_midi_range(lh_note):
        return [lh_note, *sorted(right_hand)]
    return sorted(right_hand)


def add_octave_root(notes: list[int], chord_root_midi: int) -> list[int]:
    root_class_notes = [n for n in notes if (n - chord_root_midi) % 12 == 0]
    if not root_class_notes:
        return list(notes)
    doubled = min(root_class_notes) + 12
    if doubled > 127 or doubled in notes:
        return list(notes)
    return sorted([*notes, doubled])


def finalize_notes(notes: list[int]) -> list[int]:
    return sorted({n for n in notes if in_midi_range(n)})


def voice(
    chord_notes: list[int],
    options: VoicingOptions,
    chord_root_midi: int,
    intervals: list[int] | None = None,
) -> list[int]:
    notes = apply_inversion(list(chord_notes), options.inversion)

    if options.shell_voicing:
        # Shell reduction works from interval identity and discards the inversion.
        signature = intervals if intervals is not None else [n - chord_root_midi for n in chord_notes]
        notes = shell_voicing(chord_root_midi, signature) if signature else []

    if options.split_hand:
        notes = split_hand(notes, chord_root_midi, options.lh_octave_offset, rootless=options.rootless)

    if options.add_octave_root and notes:
        notes = add_octave_root(notes, chord_root_midi)

    return finalize_notes(notes)
