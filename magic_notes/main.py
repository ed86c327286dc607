"""
FastAPI server for Magic Notes.

Exposes live capture, file and transcript analysis, history, export and
display preferences to the browser front end.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Literal, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from pydantic import BaseModel

from .analysis_service import AnalysisGuard, AnalysisService
from .capture import CaptureSession
from .config import AppConfig, config
from .errors import AnalysisError, NotFound, handle_error
from .export import export_filename, export_title, to_markdown, to_plain_text
from .file_manager import FileManager
from .gemini_client import GeminiClient
from .history import HistoryStore
from .models import HistoryItem, LiveStatus, Preferences
from .preferences import PreferencesStore
from .storage import JsonFileKeyValueStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Global state
gemini_client: Optional[GeminiClient] = None
history_store: Optional[HistoryStore] = None
preferences_store: Optional[PreferencesStore] = None
file_manager: Optional[FileManager] = None
analysis_service: Optional[AnalysisService] = None
capture_session: Optional[CaptureSession] = None


def build_capture_session(app_config: AppConfig, service: AnalysisService, files: FileManager) -> CaptureSession:
    """Create the live capture session on the local microphone."""
    from .audio_recorder import MicrophoneRecorder
    from .speech import WhisperSpeechRecognizer

    return CaptureSession(
        recorder=MicrophoneRecorder(app_config.live),
        recognizer=WhisperSpeechRecognizer(app_config.live),
        analysis_service=service,
        file_manager=files,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    global gemini_client, history_store, preferences_store, file_manager, analysis_service, capture_session

    logger.info("Starting Magic Notes server...")

    try:
        config.ensure_directories()
        store = JsonFileKeyValueStore(config.storage_path)
        history_store = HistoryStore(store, key=config.storage.history_key)
        preferences_store = PreferencesStore(store)
        file_manager = FileManager(base_dir=str(config.storage.data_dir))
        file_manager.auto_cleanup_old_files()

        if not config.gemini.api_key:
            logger.warning("GEMINI_API_KEY is not set; analysis requests will be rejected by the API")
        gemini_client = GeminiClient(config.gemini, config.upload)
        analysis_service = AnalysisService(
            gemini_client, history_store, file_manager, config.upload, AnalysisGuard()
        )
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        raise

    try:
        capture_session = build_capture_session(config, analysis_service, file_manager)
    except Exception as e:
        # Upload analysis still works without a microphone
        logger.warning(f"Live capture unavailable: {e}")
        capture_session = None

    logger.info("All services initialized successfully")

    yield

    logger.info("Shutting down Magic Notes server...")
    if capture_session:
        try:
            capture_session.close()
        except Exception as e:
            logger.error(f"Error closing capture session during shutdown: {e}")


app = FastAPI(
    title="Magic Notes API",
    description="Meeting recording analysis: summary, action items and transcript",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.server.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AnalysisError)
async def analysis_error_handler(request: Request, exc: AnalysisError):
    error = handle_error(exc, component="api", operation=f"{request.method} {request.url.path}")
    return JSONResponse(status_code=error.status_code, content={"error": error.to_dict()})


# Request / response models

class HealthResponse(BaseModel):
    status: str
    services: Dict[str, bool]
    message: str


class TextAnalysisRequest(BaseModel):
    transcript: str
    title: Optional[str] = None
    deep: bool = False


class StopRequest(BaseModel):
    deep: bool = False


class PreferencesUpdate(BaseModel):
    theme: Optional[Literal["light", "dark"]] = None
    font_size: Optional[int] = None


class ClearResponse(BaseModel):
    success: bool
    message: str


def _require(service, name: str):
    if service is None:
        raise HTTPException(status_code=500, detail=f"{name} not initialized")
    return service


def _require_capture() -> CaptureSession:
    if capture_session is None:
        raise HTTPException(status_code=503, detail="Live capture is not available on this server")
    return capture_session


# Health

@app.get("/api/health", response_model=HealthResponse)
def health_check():
    """Report which services are usable."""
    services = {
        "analysis": analysis_service is not None,
        "api_key_configured": bool(gemini_client and gemini_client.config.api_key),
        "online": False,
        "live_capture": capture_session is not None and bool(capture_session.recorder.is_available()),
        "history": history_store is not None,
    }
    if gemini_client:
        try:
            services["online"] = gemini_client.is_online()
        except Exception as e:
            logger.warning(f"Connectivity check failed: {e}")

    if file_manager:
        has_space, _, _ = file_manager.check_disk_space()
        services["disk_space_ok"] = has_space

    healthy = services["analysis"] and services["api_key_configured"] and services["online"]
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        services=services,
        message="All services operational" if healthy else "Some services are unavailable",
    )


# Analysis

@app.post("/api/analyze", response_model=HistoryItem)
def analyze_file(file: UploadFile = File(...), deep: bool = Form(False)):
    """Analyze an uploaded audio or video file."""
    service = _require(analysis_service, "Analysis service")
    files = _require(file_manager, "File manager")

    filename = file.filename or "arquivo"
    path = files.save_upload(file.file, filename)
    try:
        return service.analyze_upload(path, filename, file.content_type or "", deep)
    finally:
        files.remove_temp_file(path)


@app.post("/api/analyze-text", response_model=HistoryItem)
def analyze_text(request: TextAnalysisRequest):
    """Analyze a raw text transcript."""
    service = _require(analysis_service, "Analysis service")
    return service.analyze_text(request.transcript, request.title, request.deep)


# Live capture

@app.post("/api/live/start", response_model=LiveStatus)
def start_live():
    session = _require_capture()
    session.start()
    return session.status()


@app.get("/api/live/status", response_model=LiveStatus)
def live_status():
    return _require_capture().status()


@app.post("/api/live/stop", response_model=HistoryItem)
def stop_live(request: Optional[StopRequest] = None):
    session = _require_capture()
    return session.stop(deep=request.deep if request else False)


@app.get("/api/live/recording")
def live_recording():
    """Download the last live recording for playback."""
    files = _require(file_manager, "File manager")
    path = files.current_recording
    if path is None or not path.exists():
        raise NotFound(
            "No stored recording",
            user_message="Nenhuma gravação disponível.",
        )
    return FileResponse(path, media_type="audio/wav", filename=path.name)


@app.post("/api/live/recording/analyze", response_model=HistoryItem)
def analyze_live_recording(request: Optional[StopRequest] = None):
    """Analyze the last live recording again, e.g. after a failed analysis."""
    session = _require_capture()
    return session.analyze_last_recording(deep=request.deep if request else False)


# History

@app.get("/api/history", response_model=List[HistoryItem])
def list_history():
    return _require(history_store, "History store").load()


def _get_history_item(item_id: int) -> HistoryItem:
    item = _require(history_store, "History store").get(item_id)
    if item is None:
        raise NotFound(f"History item {item_id} not found")
    return item


@app.get("/api/history/{item_id}", response_model=HistoryItem)
def get_history_item(item_id: int):
    return _get_history_item(item_id)


@app.delete("/api/history", response_model=ClearResponse)
def clear_history():
    _require(history_store, "History store").clear()
    return ClearResponse(success=True, message="History cleared")


@app.get("/api/history/{item_id}/export")
def export_history_item(item_id: int, format: Literal["txt", "md"] = "txt"):
    """Download a stored analysis as plain text or Markdown."""
    item = _get_history_item(item_id)
    title = export_title(item)
    slug_source = "live" if item.source == "live" else item.title
    filename = export_filename(slug_source, format, prefix=config.export.filename_prefix)

    if format == "md":
        content = to_markdown(item.analysis, title)
        media_type = "text/markdown; charset=utf-8"
    else:
        content = to_plain_text(item.analysis, title)
        media_type = "text/plain; charset=utf-8"

    return PlainTextResponse(
        content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# Preferences

@app.get("/api/preferences", response_model=Preferences)
def get_preferences():
    return _require(preferences_store, "Preferences store").preferences


@app.put("/api/preferences", response_model=Preferences)
def update_preferences(update: PreferencesUpdate):
    return _require(preferences_store, "Preferences store").update(update.theme, update.font_size)


@app.post("/api/preferences/theme/toggle", response_model=Preferences)
def toggle_theme():
    return _require(preferences_store, "Preferences store").toggle_theme()


@app.post("/api/preferences/font-size/{direction}", response_model=Preferences)
def change_font_size(direction: Literal["increase", "decrease"]):
    store = _require(preferences_store, "Preferences store")
    if direction == "increase":
        return store.increase_font_size()
    return store.decrease_font_size()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "magic_notes.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.debug,
        log_level="info"
    )
