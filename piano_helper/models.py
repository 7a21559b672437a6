from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from piano_helper.services.music_theory import (
    normalize_chord_type,
    normalize_note_name,
    normalize_scale_type,
    note_name_to_midi,
)

DrillMode = Literal["scale", "chord_search", "diatonic", "progression"]
DrillStyle = Literal["ascending", "descending", "random", "thirds"]
DisplayMode = Literal["scale", "chord", "diatonic", "progression"]
DrillStatus = Literal["idle", "awaiting", "complete"]
MatchOutcome = Literal["correct", "chord_progress", "chord_complete", "incorrect", "duplicate", "ignored"]


class Key(BaseModel):
    model_config = ConfigDict(frozen=True)

    root: str = "C"
    octave: int = Field(default=4, ge=-1, le=9)
    scale_type: str = "major"

    @field_validator("root")
    @classmethod
    def validate_root(cls, value: str) -> str:
        normalized = normalize_note_name(value)
        if normalized is None:
            raise ValueError("Invalid root. Use pitch names like C, F#, Bb.")
        return normalized

    @field_validator("scale_type")
    @classmethod
    def validate_scale_type(cls, value: str) -> str:
        normalized = normalize_scale_type(value)
        if normalized is None:
            raise ValueError(f"Unknown scale type '{value}'.")
        return normalized

    @property
    def root_midi(self) -> int | None:
        return note_name_to_midi(f"{self.root}{self.octave}")


class VoicingOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    inversion: int = Field(default=0, ge=0, le=3)
    split_hand: bool = False
    lh_octave_offset: int = Field(default=-12, ge=-48, le=-1)
    rootless: bool = False
    shell_voicing: bool = False
    add_octave_root: bool = False


class DrillOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    octaves: int = Field(default=1, ge=1)
    repetitions: int = Field(default=1, ge=1)
    style: DrillStyle = "ascending"


class NoteStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["note"] = "note"
    expected_midi: int = Field(ge=0, le=127)
    label: str
    octave_index: int | None = None

    @property
    def expected_notes(self) -> list[int]:
        return [self.expected_midi]


class ChordStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["chord"] = "chord"
    expected_midi_set: list[int]
    label: str
    degree_index: int | None = None
    root_note: str | None = None
    progression_index: int | None = None
    octave_index: int | None = None

    @property
    def expected_notes(self) -> list[int]:
        return list(self.expected_midi_set)


DrillStep = Annotated[Union[NoteStep, ChordStep], Field(discriminator="kind")]


class DrillSequence(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: DrillMode
    options: DrillOptions = Field(default_factory=DrillOptions)
    steps: list[DrillStep] = Field(default_factory=list)
    fingerprint: str = ""

    @property
    def empty(self) -> bool:
        return not self.steps


class NoteEvent(BaseModel):
    note: int = Field(ge=0, le=127)
    velocity: int = Field(default=64, ge=0, le=127)
    timestamp: float | None = None
    event_id: str | None = Field(default=None, min_length=1, max_length=120)


class DrillScore(BaseModel):
    correct: int = 0
    incorrect: int = 0


class DiatonicChord(BaseModel):
    degree: int = Field(ge=0, le=6)
    numeral: str
    root: str
    root_midi: int
    quality: str
    chord_name: str
    detected: bool = True
    intervals: list[int]
    midi_notes: list[int] = Field(default_factory=list)


class ResolvedProgressionChord(BaseModel):
    roman: str
    chord_name: str
    theoretical_notes: list[str] = Field(default_factory=list)
    midi_notes: list[int] = Field(default_factory=list)
    diatonic: bool = True
    error: str | None = None


class VoicingUpdateRequest(BaseModel):
    options: VoicingOptions = Field(default_factory=VoicingOptions)
    seventh: bool | None = None


class ChordTypeRequest(BaseModel):
    chord_type: str = Field(min_length=1, max_length=20)

    @field_validator("chord_type")
    @classmethod
    def validate_chord_type(cls, value: str) -> str:
        normalized = normalize_chord_type(value)
        if normalized is None:
            raise ValueError(f"Unknown chord type '{value}'.")
        return normalized


class ProgressionRequest(BaseModel):
    preset: str | None = Field(default=None, min_length=1, max_length=80)
    numerals: list[str] | None = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def require_exactly_one_source(self):
        if (self.preset is None) == (self.numerals is None):
            raise ValueError("Provide either a preset name or a list of numerals.")
        return self


class DisplayModeRequest(BaseModel):
    mode: DisplayMode
    degree: int = Field(default=0, ge=0, le=6)


class StartDrillRequest(BaseModel):
    mode: DrillMode
    options: DrillOptions = Field(default_factory=DrillOptions)


class RegenerateDrillRequest(BaseModel):
    options: DrillOptions | None = None


class CurrentStep(BaseModel):
    step: DrillStep | None = None
    index: int = 0
    total: int = 0


class DrillStateResponse(BaseModel):
    status: DrillStatus
    mode: DrillMode | None = None
    current: CurrentStep
    score: DrillScore
    notes_held: list[int] = Field(default_factory=list)
    highlighted_notes: list[int] = Field(default_factory=list)
    fingerprint: str | None = None


class StartDrillResponse(BaseModel):
    started: bool
    reason: str | None = None
    state: DrillStateResponse


class NoteEventResponse(BaseModel):
    outcome: MatchOutcome
    state: DrillStateResponse


class HighlightResponse(BaseModel):
    notes: list[int]
    note_names: list[str]


class ProgressionResponse(BaseModel):
    numerals: list[str]
    chords: list[ResolvedProgressionChord]
