from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from piano_helper.logging_utils import (
    clear_request_context,
    configure_logging,
    current_request_id,
    log_event,
    new_request_id,
    request_elapsed_ms,
    set_request_context,
)
from piano_helper.models import (
    ChordTypeRequest,
    CurrentStep,
    DiatonicChord,
    DisplayModeRequest,
    DrillScore,
    DrillStateResponse,
    HighlightResponse,
    Key,
    NoteEvent,
    NoteEventResponse,
    ProgressionRequest,
    ProgressionResponse,
    RegenerateDrillRequest,
    StartDrillRequest,
    StartDrillResponse,
    VoicingUpdateRequest,
)
from piano_helper.services.drill_session import DrillSession
from piano_helper.services.midi_input import MidiInputListener, pick_port
from piano_helper.services.music_theory import midi_to_note_name, supported_chord_types, supported_scale_types
from piano_helper.services.progression import PROGRESSION_PRESETS
from piano_helper.settings import load_settings

settings = load_settings()
configure_logging(settings.log_level, settings.log_format)
logger = logging.getLogger(__name__)

session = DrillSession(settings)

_REFUSAL_MESSAGES = {
    "scale_unavailable": "The selected key has no playable scale.",
    "unknown_chord_type": "Choose a chord type before starting a chord search drill.",
    "diatonic_notes_incomplete": "Diatonic chords could not be resolved for the selected key.",
    "diatonic_notes_empty": "Diatonic chords could not be resolved for the selected key.",
    "no_progression_selected": "Select a progression before starting a progression drill.",
    "no_playable_steps": "Every step of this drill falls outside the keyboard range.",
    "drill_not_active": "Start a drill before regenerating it.",
}


@asynccontextmanager
async def lifespan(_app: FastAPI):
    listener = None
    if settings.midi_input_port:
        port_name = pick_port(settings.midi_input_port)
        if port_name is not None:
            listener = MidiInputListener(session, port_name)
            listener.start()
    try:
        yield
    finally:
        if listener is not None:
            listener.stop()


app = FastAPI(title="Piano Helper", lifespan=lifespan)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or new_request_id()
    set_request_context(request_id=request_id, route=request.url.path, method=request.method)
    started = time.perf_counter()
    log_event(logger, "request_started")
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = request_elapsed_ms(started)
        log_event(logger, "request_completed", status_code=500, duration_ms=elapsed_ms)
        raise

    elapsed_ms = request_elapsed_ms(started)
    log_event(logger, "request_completed", status_code=response.status_code, duration_ms=elapsed_ms)
    response.headers["X-Request-ID"] = request_id
    clear_request_context()
    return response


@app.exception_handler(Exception)
async def global_exception_handler(_request: Request, exc: Exception):
    request_id = current_request_id()
    logger.exception(
        "unhandled_exception",
        extra={"event": "unhandled_exception", "request_id": request_id},
    )
    response = JSONResponse(
        status_code=500,
        content={
            "detail": "Something went wrong while processing your request. Please try again.",
            "request_id": request_id,
        },
        headers={"X-Request-ID": request_id},
    )
    clear_request_context()
    return response


def _handle_user_error(action: str, exc: ValueError) -> HTTPException:
    log_event(logger, "request_failed", level=logging.WARNING, action=action, reason=str(exc))
    return HTTPException(
        status_code=422,
        detail={
            "message": f"{action} failed. {exc}",
            "request_id": current_request_id(),
        },
    )


def _refusal(action: str, result: StartDrillResponse) -> HTTPException:
    reason = result.reason or "unknown"
    return _handle_user_error(action, ValueError(_REFUSAL_MESSAGES.get(reason, reason)))


@app.get("/api/health")
def health():
    return {"ok": True, "session_id": session.session_id}


@app.get("/api/theory/scales")
def scale_types_endpoint():
    return {"scale_types": supported_scale_types()}


@app.get("/api/theory/chords")
def chord_types_endpoint():
    return {"chord_types": supported_chord_types()}


@app.get("/api/diatonic-chords", response_model=list[DiatonicChord])
def diatonic_chords_endpoint():
    return session.diatonic_table()


@app.get("/api/progressions/presets")
def progression_presets_endpoint():
    return {"presets": {name: list(numerals) for name, numerals in PROGRESSION_PRESETS.items()}}


@app.put("/api/key", response_model=DrillStateResponse)
def set_key_endpoint(payload: Key):
    log_event(logger, "key_changed", root=payload.root, octave=payload.octave, scale_type=payload.scale_type)
    return session.set_key(payload)


@app.put("/api/voicing", response_model=DrillStateResponse)
def set_voicing_endpoint(payload: VoicingUpdateRequest):
    log_event(logger, "voicing_changed", options=payload.options.model_dump(), seventh=payload.seventh)
    return session.set_voicing_options(payload.options, seventh=payload.seventh)


@app.put("/api/chord-type", response_model=DrillStateResponse)
def set_chord_type_endpoint(payload: ChordTypeRequest):
    try:
        return session.set_chord_type(payload.chord_type)
    except ValueError as exc:
        raise _handle_user_error("Chord type update", exc) from exc


@app.put("/api/progression", response_model=ProgressionResponse)
def set_progression_endpoint(payload: ProgressionRequest):
    try:
        chords = session.set_progression(preset=payload.preset, numerals=payload.numerals)
    except ValueError as exc:
        raise _handle_user_error("Progression update", exc) from exc
    return ProgressionResponse(numerals=[chord.roman for chord in chords], chords=chords)


@app.get("/api/progression", response_model=ProgressionResponse)
def progression_endpoint():
    chords = session.resolved_progression()
    return ProgressionResponse(numerals=[chord.roman for chord in chords], chords=chords)


@app.put("/api/display-mode", response_model=DrillStateResponse)
def set_display_mode_endpoint(payload: DisplayModeRequest):
    try:
        return session.set_display_mode(payload.mode, payload.degree)
    except ValueError as exc:
        raise _handle_user_error("Display mode update", exc) from exc


@app.post("/api/drill/start", response_model=StartDrillResponse)
def start_drill_endpoint(payload: StartDrillRequest):
    try:
        result = session.start_drill(payload.mode, payload.options)
    except ValueError as exc:
        raise _handle_user_error("Drill start", exc) from exc
    if not result.started:
        raise _refusal("Drill start", result)
    return result


@app.post("/api/drill/stop", response_model=DrillStateResponse)
def stop_drill_endpoint():
    return session.stop_drill()


@app.post("/api/drill/regenerate", response_model=StartDrillResponse)
def regenerate_drill_endpoint(payload: RegenerateDrillRequest):
    try:
        result = session.regenerate(payload.options)
    except ValueError as exc:
        raise _handle_user_error("Drill regeneration", exc) from exc
    if not result.started:
        raise _refusal("Drill regeneration", result)
    return result


@app.post("/api/drill/note-on", response_model=NoteEventResponse)
def note_on_endpoint(payload: NoteEvent):
    return session.note_on(payload)


@app.post("/api/drill/note-off", response_model=NoteEventResponse)
def note_off_endpoint(payload: NoteEvent):
    return session.note_off(payload)


@app.get("/api/drill/state", response_model=DrillStateResponse)
def drill_state_endpoint():
    return session.snapshot()


@app.get("/api/drill/current-step", response_model=CurrentStep)
def current_step_endpoint():
    return session.current_step()


@app.get("/api/drill/score", response_model=DrillScore)
def drill_score_endpoint():
    return session.score()


@app.get("/api/highlight", response_model=HighlightResponse)
def highlight_endpoint():
    notes = session.highlighted_notes()
    return HighlightResponse(notes=notes, note_names=[midi_to_note_name(n) for n in notes])
