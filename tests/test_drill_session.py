import logging
import random
import threading

import pytest

from piano_helper.models import DrillOptions, Key, NoteEvent, VoicingOptions
from piano_helper.services.drill_session import DrillSession
from piano_helper.settings import Settings


@pytest.fixture
def session() -> DrillSession:
    return DrillSession(settings=Settings(), rng=random.Random(0))


def test_new_session_uses_configured_defaults():
    session = DrillSession(settings=Settings(default_octave=3, lh_octave_offset=-24))

    assert session.key.octave == 3
    assert session.voicing.lh_octave_offset == -24
    assert session.snapshot().status == "idle"


def test_start_scale_drill(session):
    result = session.start_drill("scale", DrillOptions())

    assert result.started is True
    assert result.state.status == "awaiting"
    assert result.state.current.total == 7
    assert result.state.current.step.label == "C4"
    assert result.state.highlighted_notes == [60]


def test_note_events_flow_through_to_matcher(session):
    session.start_drill("scale", DrillOptions())

    response = session.note_on(NoteEvent(note=60))

    assert response.outcome == "correct"
    assert response.state.current.index == 1
    assert response.state.highlighted_notes == [62]
    assert session.note_off(NoteEvent(note=60)).outcome == "ignored"


def test_progression_drill_refused_without_progression(session, caplog):
    with caplog.at_level(logging.WARNING):
        result = session.start_drill("progression", DrillOptions())

    assert result.started is False
    assert result.reason == "no_progression_selected"
    assert result.state.status == "idle"
    assert any(getattr(record, "event", "") == "drill_start_refused" for record in caplog.records)


def test_progression_preset_then_drill(session):
    chords = session.set_progression(preset="I-IV-V-I")

    assert [chord.chord_name for chord in chords] == ["C", "F", "G", "C"]
    result = session.start_drill("progression", DrillOptions(repetitions=2))
    assert result.state.current.total == 8


def test_set_progression_from_numerals_strips_blanks(session):
    chords = session.set_progression(numerals=[" ii ", "", "V7"])
    assert [chord.roman for chord in chords] == ["ii", "V7"]


def test_unknown_preset_is_rejected(session):
    with pytest.raises(ValueError):
        session.set_progression(preset="I-II-III")


def test_drill_options_are_bounded_by_settings():
    session = DrillSession(settings=Settings(max_octaves=2, max_repetitions=3))

    with pytest.raises(ValueError):
        session.start_drill("scale", DrillOptions(octaves=3))
    with pytest.raises(ValueError):
        session.start_drill("scale", DrillOptions(repetitions=4))


def test_key_change_deactivates_active_drill(session, caplog):
    session.start_drill("diatonic", DrillOptions())

    with caplog.at_level(logging.WARNING):
        state = session.set_key(Key(root="D"))

    assert state.status == "idle"
    assert any(getattr(record, "event", "") == "drill_deactivated_stale_config" for record in caplog.records)


def test_unchanged_configuration_keeps_drill_active(session):
    session.start_drill("diatonic", DrillOptions())

    assert session.set_key(Key(root="C")).status == "awaiting"
    assert session.set_display_mode("progression").status == "awaiting"


def test_voicing_change_deactivates_chord_drill(session):
    session.start_drill("chord_search", DrillOptions())
    state = session.set_voicing_options(VoicingOptions(inversion=1))
    assert state.status == "idle"


def test_unrelated_changes_keep_scale_drill_and_score(session):
    session.start_drill("scale", DrillOptions())
    session.note_on(NoteEvent(note=60))

    session.set_chord_type("m7")
    session.set_progression(preset="ii-V-I")
    state = session.set_voicing_options(VoicingOptions(inversion=1))

    assert state.status == "awaiting"
    assert state.current.index == 1
    assert state.score.correct == 1


def test_progression_change_keeps_diatonic_drill(session):
    session.start_drill("diatonic", DrillOptions())

    session.set_progression(preset="I-IV-V-I")

    assert session.snapshot().status == "awaiting"


def test_chord_search_drill_survives_key_root_change_in_same_octave(session):
    session.start_drill("chord_search", DrillOptions())

    assert session.set_key(Key(root="D", scale_type="minor")).status == "awaiting"
    assert session.set_key(Key(root="D", octave=3)).status == "idle"


def test_progression_drill_stops_when_numerals_change(session):
    session.set_progression(preset="I-IV-V-I")
    session.start_drill("progression", DrillOptions())

    session.set_progression(preset="ii-V-I")

    assert session.snapshot().status == "idle"


def test_regenerate_resets_score(session):
    session.start_drill("scale", DrillOptions())
    session.note_on(NoteEvent(note=61))

    result = session.regenerate(DrillOptions(octaves=2))

    assert result.started is True
    assert result.state.score.model_dump() == {"correct": 0, "incorrect": 0}
    assert result.state.current.total == 14


def test_regenerate_without_active_drill(session):
    result = session.regenerate()
    assert (result.started, result.reason) == (False, "drill_not_active")


def test_stop_drill(session):
    session.start_drill("scale", DrillOptions())
    state = session.stop_drill()

    assert state.status == "idle"
    assert state.fingerprint is None


def test_highlighted_notes_follow_display_mode(session):
    assert session.highlighted_notes() == [60, 62, 64, 65, 67, 69, 71]

    session.set_chord_type("m")
    session.set_display_mode("chord")
    assert session.highlighted_notes() == [60, 63, 67]

    session.set_display_mode("diatonic", degree=4)
    assert session.highlighted_notes() == [67, 71, 74]

    session.set_progression(preset="I-IV-V-I")
    session.set_display_mode("progression")
    assert session.highlighted_notes() == [60, 64, 65, 67, 69, 71, 72, 74]


def test_highlighted_notes_follow_current_chord_step(session):
    session.start_drill("diatonic", DrillOptions())
    session.note_on(NoteEvent(note=60))

    state = session.snapshot()
    assert state.highlighted_notes == [60, 64, 67]
    assert state.notes_held == [60]


def test_invalid_chord_type_and_degree_are_rejected(session):
    with pytest.raises(ValueError):
        session.set_chord_type("nonsense")
    with pytest.raises(ValueError):
        session.set_display_mode("diatonic", degree=7)


def test_diatonic_table_reflects_seventh_flag(session):
    session.set_seventh(True)
    assert [chord.chord_name for chord in session.diatonic_table()][:2] == ["Cmaj7", "Dm7"]


def test_current_step_score_and_progression_reads(session):
    session.set_progression(preset="ii-V-I")
    session.start_drill("progression", DrillOptions())
    session.note_on(NoteEvent(note=62))

    current = session.current_step()
    assert (current.index, current.total) == (0, 3)
    assert current.step.label == "ii: Dm"
    assert session.score().model_dump() == {"correct": 0, "incorrect": 0}
    assert [chord.chord_name for chord in session.resolved_progression()] == ["Dm", "G", "C"]


def test_snapshots_stay_consistent_while_drill_regenerates_concurrently(session):
    session.start_drill("scale", DrillOptions(octaves=2))
    failures: list[str] = []

    def check(state) -> None:
        if state.current.index > state.current.total:
            failures.append(f"index {state.current.index} past total {state.current.total}")
        if state.score.correct > state.current.index:
            failures.append(f"{state.score.correct} correct at index {state.current.index}")

    def play() -> None:
        for i in range(400):
            check(session.note_on(NoteEvent(note=[60, 62, 64, 65, 67, 69, 71][i % 7])).state)

    def restart() -> None:
        for i in range(100):
            if i % 2:
                result = session.regenerate(DrillOptions(octaves=1 + i % 3))
            else:
                result = session.start_drill("scale", DrillOptions(style="random"))
            check(result.state)

    threads = [threading.Thread(target=play), threading.Thread(target=restart)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert failures == []
    check(session.snapshot())
    assert failures == []
