from collections import Counter

import pytest

from piano_helper.models import VoicingOptions
from piano_helper.services.voicing import add_octave_root, apply_inversion, shell_intervals, split_hand, voice

C_MAJOR = [60, 64, 67]
C_MAJOR_SEVENTH = [60, 64, 67, 71]


def test_voice_without_options_sorts_and_dedupes():
    assert voice([67, 60, 64, 60], VoicingOptions(), 60) == [60, 64, 67]


@pytest.mark.parametrize(
    ("inversion", "expected"),
    [(0, [60, 64, 67]), (1, [64, 67, 72]), (2, [67, 72, 76]), (3, [60, 64, 67])],
)
def test_inversion_rotates_lowest_notes_up_an_octave(inversion, expected):
    assert voice(C_MAJOR, VoicingOptions(inversion=inversion), 60) == expected


def test_third_inversion_of_a_seventh_chord():
    assert voice(C_MAJOR_SEVENTH, VoicingOptions(inversion=3), 60) == [71, 72, 76, 79]


@pytest.mark.parametrize("inversion", [1, 2, 3])
def test_inversion_preserves_pitch_classes(inversion):
    inverted = apply_inversion(C_MAJOR_SEVENTH, inversion)
    restored = [n - 12 for n in inverted[-inversion:]] + inverted[:-inversion]

    assert Counter(n % 12 for n in restored) == Counter(n % 12 for n in C_MAJOR_SEVENTH)


def test_shell_voicing_keeps_root_third_and_seventh():
    assert voice(C_MAJOR_SEVENTH, VoicingOptions(shell_voicing=True), 60, [0, 4, 7, 11]) == [60, 64, 71]
    assert voice([60, 64, 67, 70], VoicingOptions(shell_voicing=True), 60, [0, 4, 7, 10]) == [60, 64, 70]
    assert voice([60, 63, 66, 69], VoicingOptions(shell_voicing=True), 60, [0, 3, 6, 9]) == [60, 63, 69]
    assert voice(C_MAJOR, VoicingOptions(shell_voicing=True), 60, [0, 4, 7]) == [60, 64]


def test_shell_voicing_ignores_inversion():
    plain = voice(C_MAJOR_SEVENTH, VoicingOptions(shell_voicing=True), 60, [0, 4, 7, 11])
    inverted = voice(C_MAJOR_SEVENTH, VoicingOptions(shell_voicing=True, inversion=2), 60, [0, 4, 7, 11])
    assert inverted == plain


def test_shell_intervals_are_a_subset_including_root():
    for intervals in ([0, 4, 7], [0, 3, 7, 10], [0, 3, 6, 10], [0, 4, 8, 11], [0, 5, 7]):
        shell = shell_intervals(intervals)
        assert shell[0] == 0
        assert len(shell) <= 3
        assert set(shell) <= {i % 12 for i in intervals}


def test_split_hand_replaces_root_with_bass_note():
    assert voice(C_MAJOR, VoicingOptions(split_hand=True, lh_octave_offset=-12), 60) == [48, 64, 67]
    assert voice(C_MAJOR, VoicingOptions(split_hand=True, rootless=True), 60) == [48, 64, 67]


def test_split_hand_keeps_upper_root_unless_rootless():
    inverted = VoicingOptions(inversion=1, split_hand=True)
    inverted_rootless = VoicingOptions(inversion=1, split_hand=True, rootless=True)

    assert voice(C_MAJOR, inverted, 60) == [48, 64, 67, 72]
    assert voice(C_MAJOR, inverted_rootless, 60) == [48, 64, 67]


def test_split_hand_drops_bass_note_below_midi_range():
    assert voice([5, 9, 12], VoicingOptions(split_hand=True), 5) == [9, 12]


def test_split_hand_on_empty_input_is_empty():
    assert split_hand([], 60, -12) == []


def test_add_octave_root_doubles_lowest_root_class_note():
    assert add_octave_root([48, 64, 67], 60) == [48, 60, 64, 67]
    assert voice(C_MAJOR, VoicingOptions(split_hand=True, add_octave_root=True), 60) == [48, 60, 64, 67]


def test_add_octave_root_after_rootless_doubles_the_bass():
    options = VoicingOptions(split_hand=True, rootless=True, add_octave_root=True)
    assert voice(C_MAJOR, options, 60) == [48, 60, 64, 67]


def test_add_octave_root_is_a_noop_without_root_or_headroom():
    assert add_octave_root([64, 67], 60) == [64, 67]
    assert voice([120, 124, 127], VoicingOptions(add_octave_root=True), 120) == [120, 124, 127]


def test_all_options_on_empty_chord():
    options = VoicingOptions(inversion=2, split_hand=True, rootless=True, shell_voicing=True, add_octave_root=True)
    assert voice([], options, 60) == []


def test_output_is_always_in_midi_range():
    notes = voice([120, 124, 127, 131], VoicingOptions(inversion=1), 120)
    assert notes == sorted(set(notes))
    assert all(0 <= n <= 127 for n in notes)
