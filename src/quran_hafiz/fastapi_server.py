"""
FastAPI backend hosting live recitation sessions for a hifz front end.
"""

import logging
import time
import uuid
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
import uvicorn

from .alignment_engine import AlignmentStateError
from .api_clients import AlQuranAPIClient, QuranAPIError
from .config import AlignmentConfig, ServiceSettings, configure_logging
from .session_controller import RecitationSession, SessionState
from .validation import ValidationResult, find_best_matching_ayah


# Pydantic models for API requests/responses
class CreateSessionRequest(BaseModel):
    """Request model for opening a recitation session."""
    surah_number: int = Field(..., ge=1, le=114, description="Surah number (1-114)")
    start_ayah: int = Field(1, ge=1, description="First ayah to recite")
    end_ayah: Optional[int] = Field(None, ge=1, description="Last ayah to recite (defaults to the end of the surah)")


class TranscriptUpdate(BaseModel):
    """Transcript state pushed by the speech recognizer."""
    final_text: str = Field("", description="Everything finalized so far in this attempt")
    interim_text: str = Field("", description="Unfinalized trailing text")


class SourceErrorRequest(BaseModel):
    code: str = Field(..., description="Recognizer error code, e.g. 'no-speech'")


class WordResponse(BaseModel):
    """Response model for one reference word."""
    surface: str
    status: str
    is_segment_boundary: bool
    segment_index: int


class SessionResponse(BaseModel):
    """Response model for the live state of a session."""
    session_id: str
    surah_number: int
    ayah_numbers: List[int]
    is_listening: bool
    is_complete: bool
    ref_index: int
    consumed_words: int
    final_text: str
    interim_text: str
    error: Optional[str] = None
    words: List[WordResponse]


class SourceEndedResponse(BaseModel):
    restart_after_seconds: Optional[float] = None
    session: SessionResponse


class SourceErrorResponse(BaseModel):
    recoverable: bool
    session: SessionResponse


class WordResultResponse(BaseModel):
    word: str
    expected: str
    is_correct: bool
    position: int


class ValidationResponse(BaseModel):
    """Word-by-word check of a finished recitation."""
    is_valid: bool
    match_percentage: float
    ayah_number: int
    message_category: str
    word_results: List[WordResultResponse]


class SummaryResponse(BaseModel):
    total_words: int
    correct_words: int
    skipped_words: int
    pending_words: int
    match_percentage: float
    is_complete: bool
    is_valid: bool
    message_category: str
    validation: Optional[ValidationResponse] = None


class MatchRequest(BaseModel):
    """Request model for finding which ayah a transcript recites."""
    text: str = Field(..., min_length=1, description="Recognized text")
    start_from_ayah: int = Field(1, ge=1, description="Ignore ayahs before this one")


class SurahResponse(BaseModel):
    number: int
    name: str
    english_name: str
    english_name_translation: str
    number_of_ayahs: int
    revelation_type: str


class AyahResponse(BaseModel):
    number: int
    number_in_surah: int
    text: str


class SurahDetailResponse(SurahResponse):
    ayahs: List[AyahResponse]


class MatchResponse(BaseModel):
    ayah: AyahResponse
    validation: ValidationResponse


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    message: str
    active_sessions: int


class _SessionEntry:
    def __init__(self, session: RecitationSession, surah_number: int, ayah_numbers: List[int]):
        self.session = session
        self.surah_number = surah_number
        self.ayah_numbers = ayah_numbers
        self.last_used = _clock()


# Initialize FastAPI app
app = FastAPI(
    title="Quran Hifz Recitation API",
    description="Live word-by-word tracking of memorized recitation",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

alquran_client: Optional[AlQuranAPIClient] = None
alignment_config = AlignmentConfig()
settings = ServiceSettings()
sessions: Dict[str, _SessionEntry] = {}
logger = logging.getLogger(__name__)
_clock = time.monotonic


@app.on_event("startup")
async def startup_event():
    """Load configuration and the text service client on startup."""
    global alquran_client, alignment_config, settings
    settings = ServiceSettings.from_env()
    alignment_config = AlignmentConfig.from_env()
    alquran_client = AlQuranAPIClient(
        base_url=settings.alquran_base_url,
        edition=settings.alquran_edition,
        timeout=settings.request_timeout
    )
    logger.info(f"Recitation service ready (text source: {settings.alquran_base_url})")


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy" if alquran_client is not None else "unhealthy",
        message="Quran hifz recitation API is running",
        active_sessions=len(sessions)
    )


@app.get("/surahs", response_model=List[SurahResponse])
def list_surahs():
    """List all surahs with their metadata."""
    client = _require_client()
    try:
        surahs = client.get_surah_list()
    except QuranAPIError as e:
        logger.error(f"Error fetching surah list: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to fetch surahs: {e}")

    return [
        SurahResponse(
            number=s.number,
            name=s.name,
            english_name=s.english_name,
            english_name_translation=s.english_name_translation,
            number_of_ayahs=s.number_of_ayahs,
            revelation_type=s.revelation_type
        )
        for s in surahs
    ]


@app.get("/surahs/{surah_number}", response_model=SurahDetailResponse)
def get_surah(surah_number: int):
    """Get one surah with the text of every ayah."""
    client = _require_client()
    try:
        detail = client.get_surah_detail(surah_number)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except QuranAPIError as e:
        logger.error(f"Error fetching surah {surah_number}: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to fetch surah: {e}")

    return SurahDetailResponse(
        number=detail.number,
        name=detail.name,
        english_name=detail.english_name,
        english_name_translation=detail.english_name_translation,
        number_of_ayahs=detail.number_of_ayahs,
        revelation_type=detail.revelation_type,
        ayahs=[
            AyahResponse(number=a.number, number_in_surah=a.number_in_surah, text=a.text)
            for a in detail.ayahs
        ]
    )


@app.post("/surahs/{surah_number}/match", response_model=MatchResponse)
def match_ayah(surah_number: int, request: MatchRequest):
    """Find the ayah of a surah that a transcript recites."""
    client = _require_client()
    try:
        ayahs = client.get_recitation_ayahs(surah_number)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except QuranAPIError as e:
        logger.error(f"Error fetching surah {surah_number}: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to fetch surah: {e}")

    best = find_best_matching_ayah(request.text, ayahs, request.start_from_ayah, settings.pass_percentage)
    if best is None:
        raise HTTPException(status_code=404, detail="No ayah matches the recited text")

    ayah, result = best
    return MatchResponse(
        ayah=AyahResponse(number=ayah.number, number_in_surah=ayah.number_in_surah, text=ayah.text),
        validation=_validation_response(result)
    )


@app.post("/sessions", response_model=SessionResponse, status_code=201)
def create_session(request: CreateSessionRequest):
    """Open a recitation session over a range of ayahs."""
    client = _require_client()
    try:
        passage = client.get_passage(request.surah_number, request.start_ayah, request.end_ayah)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QuranAPIError as e:
        logger.error(f"Error loading passage: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to load passage: {e}")

    session = RecitationSession(
        passage.segments,
        config=alignment_config,
        pass_percentage=settings.pass_percentage
    )
    _evict_sessions()
    session_id = uuid.uuid4().hex
    sessions[session_id] = _SessionEntry(session, passage.surah_number, passage.ayah_numbers)
    logger.info(f"Created session {session_id} for surah {passage.surah_number} ayahs {passage.ayah_numbers}")
    return _session_response(session_id)


@app.get("/sessions/{session_id}", response_model=SessionResponse)
def get_session(session_id: str):
    _get_entry(session_id)
    return _session_response(session_id)


@app.post("/sessions/{session_id}/start", response_model=SessionResponse)
def start_session(session_id: str):
    _get_entry(session_id).session.start()
    return _session_response(session_id)


@app.post("/sessions/{session_id}/stop", response_model=SessionResponse)
def stop_session(session_id: str):
    _get_entry(session_id).session.stop()
    return _session_response(session_id)


@app.post("/sessions/{session_id}/reset", response_model=SessionResponse)
def reset_session(session_id: str):
    _get_entry(session_id).session.reset()
    return _session_response(session_id)


@app.post("/sessions/{session_id}/transcript", response_model=SessionResponse)
def push_transcript(session_id: str, update: TranscriptUpdate):
    """Feed the recognizer's transcript; returns the refreshed word statuses."""
    entry = _get_entry(session_id)
    try:
        entry.session.on_transcript(update.final_text, update.interim_text)
    except AlignmentStateError as e:
        logger.warning(f"Rejected transcript for session {session_id}: {e}")
        raise HTTPException(status_code=409, detail=str(e))
    return _session_response(session_id)


@app.post("/sessions/{session_id}/source-ended", response_model=SourceEndedResponse)
def source_ended(session_id: str):
    """The recognizer ended by itself; tells the client when to restart it."""
    delay = _get_entry(session_id).session.on_source_ended()
    return SourceEndedResponse(restart_after_seconds=delay, session=_session_response(session_id))


@app.post("/sessions/{session_id}/source-error", response_model=SourceErrorResponse)
def source_error(session_id: str, request: SourceErrorRequest):
    recoverable = _get_entry(session_id).session.on_source_error(request.code)
    return SourceErrorResponse(recoverable=recoverable, session=_session_response(session_id))


@app.get("/sessions/{session_id}/summary", response_model=SummaryResponse)
def session_summary(session_id: str):
    """Totals of the attempt, plus the word-by-word check once listening has stopped."""
    entry = _get_entry(session_id)
    summary = entry.session.summary()
    result = entry.session.validate(entry.ayah_numbers[0] if entry.ayah_numbers else 1)
    return SummaryResponse(
        total_words=summary.total_words,
        correct_words=summary.correct_words,
        skipped_words=summary.skipped_words,
        pending_words=summary.pending_words,
        match_percentage=summary.match_percentage,
        is_complete=summary.is_complete,
        is_valid=summary.is_valid,
        message_category=summary.message_category,
        validation=_validation_response(result) if result is not None else None
    )


@app.delete("/sessions/{session_id}", status_code=204)
def delete_session(session_id: str):
    _get_entry(session_id)
    _close_session(session_id)
    logger.info(f"Closed session {session_id}")


def _require_client() -> AlQuranAPIClient:
    if alquran_client is None:
        raise HTTPException(status_code=503, detail="Text service client not initialized")
    return alquran_client


def _get_entry(session_id: str) -> _SessionEntry:
    entry = sessions.get(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    entry.last_used = _clock()
    return entry


def _close_session(session_id: str):
    entry = sessions.pop(session_id, None)
    if entry is not None:
        entry.session.stop()


def _evict_sessions():
    """Close sessions idle for too long, then the least recently used ones above the cap."""
    now = _clock()
    for session_id, entry in list(sessions.items()):
        if now - entry.last_used > settings.session_idle_timeout:
            logger.info(f"Closing idle session {session_id}")
            _close_session(session_id)

    if settings.max_sessions <= 0:
        return
    while len(sessions) >= settings.max_sessions:
        oldest = min(sessions, key=lambda sid: sessions[sid].last_used)
        logger.warning(f"Session limit {settings.max_sessions} reached, closing session {oldest}")
        _close_session(oldest)


def _validation_response(result: ValidationResult) -> ValidationResponse:
    return ValidationResponse(
        is_valid=result.is_valid,
        match_percentage=result.match_percentage,
        ayah_number=result.ayah_number,
        message_category=result.message_category,
        word_results=[
            WordResultResponse(word=w.word, expected=w.expected, is_correct=w.is_correct, position=w.position)
            for w in result.word_results
        ]
    )


def _session_response(session_id: str) -> SessionResponse:
    """Convert session state to API response format."""
    entry = sessions[session_id]
    state: SessionState = entry.session.state()
    return SessionResponse(
        session_id=session_id,
        surah_number=entry.surah_number,
        ayah_numbers=entry.ayah_numbers,
        is_listening=state.is_listening,
        is_complete=state.is_complete,
        ref_index=state.cursor.ref_index,
        consumed_words=state.cursor.consumed_hypothesis_count,
        final_text=state.final_text,
        interim_text=state.interim_text,
        error=state.error,
        words=[
            WordResponse(
                surface=word.surface,
                status=word.status.value,
                is_segment_boundary=word.is_segment_boundary,
                segment_index=word.segment_index
            )
            for word in state.words
        ]
    )


# Development server function
def run_server(host: Optional[str] = None, port: Optional[int] = None, reload: bool = False):
    """Run the FastAPI server."""
    env_settings = ServiceSettings.from_env()
    uvicorn.run(
        "quran_hafiz.fastapi_server:app",
        host=host or env_settings.host,
        port=port or env_settings.port,
        reload=reload,
        log_level=env_settings.log_level.lower()
    )


if __name__ == "__main__":
    configure_logging()
    run_server()
