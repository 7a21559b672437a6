import logging

from piano_helper.models import Key, VoicingOptions
from piano_helper.services.progression import PROGRESSION_PRESETS, preset_numerals, resolve_progression


def test_one_four_five_one_in_c_major():
    chords = resolve_progression(Key(root="C"), ["I", "IV", "V", "I"], False)

    assert [chord.chord_name for chord in chords] == ["C", "F", "G", "C"]
    assert [chord.midi_notes for chord in chords] == [[60, 64, 67], [65, 69, 72], [67, 71, 74], [60, 64, 67]]
    assert chords[1].theoretical_notes == ["F", "A", "C"]
    assert all(chord.diatonic and chord.error is None for chord in chords)


def test_seventh_flag_uses_diatonic_seventh_qualities():
    chords = resolve_progression(Key(root="C"), ["I", "IV", "V", "I"], True)
    assert [chord.chord_name for chord in chords] == ["Cmaj7", "Fmaj7", "G7", "Cmaj7"]


def test_written_seventh_is_honoured_without_flag():
    chord = resolve_progression(Key(root="C"), ["V7"], False)[0]

    assert chord.chord_name == "G7"
    assert chord.midi_notes == [67, 71, 74, 77]


def test_diatonic_quality_wins_when_roots_match():
    chord = resolve_progression(Key(root="A", scale_type="minor"), ["V"], False)[0]
    assert chord.chord_name == "Em"


def test_invalid_numeral_becomes_placeholder_without_breaking_neighbours(caplog):
    with caplog.at_level(logging.WARNING):
        chords = resolve_progression(Key(root="C"), ["I", "Iv", "V"], False)

    assert len(chords) == 3
    assert chords[1].error == "invalid_numeral"
    assert chords[1].midi_notes == []
    assert "Iv" in chords[1].chord_name
    assert chords[0].chord_name == "C"
    assert chords[2].chord_name == "G"
    assert any(getattr(record, "event", "") == "progression_numeral_invalid" for record in caplog.records)


def test_borrowed_flat_seven_falls_back_to_literal_root(caplog):
    with caplog.at_level(logging.INFO):
        chord = resolve_progression(Key(root="C"), ["bVII"], False)[0]

    assert chord.chord_name == "A#"
    assert chord.midi_notes == [70, 74, 77]
    assert chord.theoretical_notes == ["A#", "D", "F"]
    assert chord.diatonic is False
    assert any(getattr(record, "event", "") == "progression_fallback_chord" for record in caplog.records)


def test_flat_seven_is_diatonic_in_natural_minor():
    chord = resolve_progression(Key(root="C", scale_type="minor"), ["bVII"], False)[0]

    assert chord.diatonic is True
    assert chord.midi_notes == [70, 74, 77]


def test_fallback_chord_gets_dominant_seventh_when_requested():
    chord = resolve_progression(Key(root="C"), ["bVII"], True)[0]
    assert chord.chord_name == "A#7"
    assert chord.midi_notes == [70, 74, 77, 80]


def test_shared_voicing_options_apply_to_every_chord():
    chords = resolve_progression(Key(root="C"), ["I", "V"], False, VoicingOptions(split_hand=True))
    assert [chord.midi_notes for chord in chords] == [[48, 64, 67], [55, 71, 74]]


def test_presets():
    assert preset_numerals("ii-V-I") == ["ii", "V", "I"]
    assert preset_numerals("I-IV-vii°-iii-vi-ii-V-I")[2] == "vii°"
    assert preset_numerals("unknown") is None
    assert len(PROGRESSION_PRESETS) == 8


def test_circle_preset_resolves_fully_in_c_major():
    chords = resolve_progression(Key(root="C"), preset_numerals("I-IV-vii°-iii-vi-ii-V-I"), False)
    assert [chord.chord_name for chord in chords] == ["C", "F", "Bdim", "Em", "Am", "Dm", "G", "C"]
