from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from piano_helper.logging_utils import log_event

logger = logging.getLogger(__name__)

# Bounds shared with the drill controls in the browser UI.
DEFAULT_OCTAVE = 4
DEFAULT_LH_OCTAVE_OFFSET = -12
DEFAULT_MAX_OCTAVES = 4
DEFAULT_MAX_REPETITIONS = 10


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    log_format: str = "text"
    default_octave: int = DEFAULT_OCTAVE
    lh_octave_offset: int = DEFAULT_LH_OCTAVE_OFFSET
    max_octaves: int = DEFAULT_MAX_OCTAVES
    max_repetitions: int = DEFAULT_MAX_REPETITIONS
    midi_input_port: str | None = None


def _int_env(name: str, default: int, *, minimum: int | None = None, maximum: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        log_event(logger, "settings_invalid_value", level=logging.WARNING, variable=name, value=raw, fallback=default)
        return default
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        log_event(logger, "settings_invalid_value", level=logging.WARNING, variable=name, value=raw, fallback=default)
        return default
    return value


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    midi_port = (os.getenv("PIANO_HELPER_MIDI_INPUT") or "").strip() or None
    return Settings(
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_format=os.getenv("LOG_FORMAT", "text").lower(),
        default_octave=_int_env("PIANO_HELPER_DEFAULT_OCTAVE", DEFAULT_OCTAVE, minimum=-1, maximum=9),
        lh_octave_offset=_int_env("PIANO_HELPER_LH_OCTAVE_OFFSET", DEFAULT_LH_OCTAVE_OFFSET, minimum=-48, maximum=-1),
        max_octaves=_int_env("PIANO_HELPER_MAX_OCTAVES", DEFAULT_MAX_OCTAVES, minimum=1, maximum=8),
        max_repetitions=_int_env("PIANO_HELPER_MAX_REPETITIONS", DEFAULT_MAX_REPETITIONS, minimum=1, maximum=100),
        midi_input_port=midi_port,
    )
