import logging

import pytest

from piano_helper.settings import load_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


def test_defaults(monkeypatch):
    for name in (
        "PIANO_HELPER_DEFAULT_OCTAVE",
        "PIANO_HELPER_LH_OCTAVE_OFFSET",
        "PIANO_HELPER_MAX_OCTAVES",
        "PIANO_HELPER_MAX_REPETITIONS",
        "PIANO_HELPER_MIDI_INPUT",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert (settings.default_octave, settings.lh_octave_offset) == (4, -12)
    assert (settings.max_octaves, settings.max_repetitions) == (4, 10)
    assert settings.midi_input_port is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PIANO_HELPER_MAX_OCTAVES", "2")
    monkeypatch.setenv("PIANO_HELPER_LH_OCTAVE_OFFSET", "-24")
    monkeypatch.setenv("PIANO_HELPER_MIDI_INPUT", " Yamaha ")

    settings = load_settings()

    assert settings.max_octaves == 2
    assert settings.lh_octave_offset == -24
    assert settings.midi_input_port == "Yamaha"


def test_invalid_values_fall_back_with_warning(monkeypatch, caplog):
    monkeypatch.setenv("PIANO_HELPER_MAX_REPETITIONS", "lots")
    monkeypatch.setenv("PIANO_HELPER_LH_OCTAVE_OFFSET", "12")

    with caplog.at_level(logging.WARNING):
        settings = load_settings()

    assert settings.max_repetitions == 10
    assert settings.lh_octave_offset == -12
    events = [getattr(record, "event", "") for record in caplog.records]
    assert events.count("settings_invalid_value") == 2
