"""Studio API: settings, editing sessions, AI chat and GitHub load/save."""

from __future__ import annotations

import logging
import time
from typing import Any, Literal

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from drawsync import config
from drawsync.agent.provider import ProviderConfig, provider_registry
from drawsync.api.session_manager import Session, SessionManager
from drawsync.errors import (
    ConflictError,
    DrawsyncError,
    InvalidUrlError,
    MalformedGenerationError,
    MissingApiKeyError,
    MissingFieldError,
    RepositoryNotFoundError,
    UnknownProviderError,
)
from drawsync.github_store import GitHubStore, RemoteFileHandle
from drawsync.storage.settings_store import SettingsStore, mask

logger = logging.getLogger(__name__)

router = APIRouter()

# Lazy-initialized singletons
_settings_store: SettingsStore | None = None
_session_manager: SessionManager | None = None


def _get_settings_store() -> SettingsStore:
    global _settings_store
    if _settings_store is None:
        _settings_store = SettingsStore(config.SETTINGS_PATH)
        _settings_store.init_db()
        logger.info("Settings loaded from %s", config.SETTINGS_PATH)
    return _settings_store


def _load_provider_config() -> ProviderConfig:
    return _get_settings_store().load_provider_config()


def _get_session_manager() -> SessionManager:
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager(_load_provider_config)
    return _session_manager


def _get_github_store(token: str | None = None) -> GitHubStore:
    return GitHubStore(token=token or _get_settings_store().get_github_token())


def _require_session(session_id: str) -> Session:
    session = _get_session_manager().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session


def _http_error(e: DrawsyncError) -> HTTPException:
    """Map a domain error to the HTTP status the client sees."""
    if isinstance(e, (InvalidUrlError, MissingFieldError, MissingApiKeyError, UnknownProviderError)):
        status = 400
    elif isinstance(e, RepositoryNotFoundError):
        status = 404
    elif isinstance(e, ConflictError):
        status = 409
    elif isinstance(e, MalformedGenerationError):
        status = 422
    else:
        status = 502
    return HTTPException(status_code=status, detail=str(e))


# ── Settings ──


class ProviderSettingsResponse(BaseModel):
    provider: str
    api_key: str
    model: str
    providers: list[str]


class GitHubTokenRequest(BaseModel):
    token: str


@router.get("/settings/provider", response_model=ProviderSettingsResponse)
def get_provider_settings():
    cfg = _load_provider_config()
    return ProviderSettingsResponse(
        provider=cfg.provider,
        api_key=mask(cfg.api_key),
        model=cfg.model,
        providers=provider_registry.list_providers(),
    )


@router.put("/settings/provider")
def put_provider_settings(req: ProviderConfig):
    _get_settings_store().save_provider_config(req)
    logger.info("Provider settings saved: %s/%s", req.provider, req.model or "default")
    return {"saved": True}


@router.put("/settings/github-token")
def put_github_token(req: GitHubTokenRequest):
    _get_settings_store().set_github_token(req.token)
    return {"saved": True}


# ── Sessions ──


class MessageResponse(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ProvenanceResponse(BaseModel):
    repo_url: str
    path: str
    content_hash: str | None = None


class SessionResponse(BaseModel):
    session_id: str
    text: str
    elements: list[dict[str, Any]]
    view_state: dict[str, Any] | None = None
    provenance: ProvenanceResponse | None = None
    messages: list[MessageResponse]


def _session_response(session: Session) -> SessionResponse:
    core = session.core
    prov = core.provenance
    return SessionResponse(
        session_id=session.id,
        text=core.canonical_text,
        elements=session.surface.elements,
        view_state=core.view_state,
        provenance=ProvenanceResponse(**vars(prov)) if prov else None,
        messages=[MessageResponse(role=m.role, content=m.content) for m in session.chat.messages],
    )


class TextEditRequest(BaseModel):
    text: str


class SurfaceChangeRequest(BaseModel):
    elements: list[dict[str, Any]]
    view_state: dict[str, Any] | None = None


@router.post("/sessions", response_model=SessionResponse)
def create_session():
    return _session_response(_get_session_manager().create())


@router.get("/sessions/{session_id}", response_model=SessionResponse)
def get_session(session_id: str):
    return _session_response(_require_session(session_id))


@router.delete("/sessions/{session_id}")
def delete_session(session_id: str):
    if not _get_session_manager().remove(session_id):
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return {"deleted": True}


@router.put("/sessions/{session_id}/text", response_model=SessionResponse)
def edit_text(session_id: str, req: TextEditRequest):
    session = _require_session(session_id)
    with session.lock:
        session.core.apply_from_text(req.text)
    return _session_response(session)


@router.post("/sessions/{session_id}/surface", response_model=SessionResponse)
def surface_change(session_id: str, req: SurfaceChangeRequest):
    session = _require_session(session_id)
    with session.lock:
        session.surface.edit(req.elements, req.view_state)
    return _session_response(session)


# ── Chat ──


class ChatRequest(BaseModel):
    prompt: str


class ChatResponse(BaseModel):
    reply: MessageResponse
    applied: bool
    error: str | None = None
    session: SessionResponse


@router.post("/sessions/{session_id}/chat", response_model=ChatResponse)
def chat(session_id: str, req: ChatRequest):
    session = _require_session(session_id)
    if not req.prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is empty")

    logger.info("POST chat session=%s prompt=%r", session_id, req.prompt[:120])
    t0 = time.perf_counter()
    try:
        turn = session.chat.send(req.prompt)
    except RuntimeError as e:
        raise HTTPException(status_code=409, detail=str(e))

    applied = False
    if turn.document_text is not None:
        with session.lock:
            applied = session.core.apply_from_external_source(turn.document_text)
    logger.info("Chat turn complete: applied=%s, %.2fs", applied, time.perf_counter() - t0)
    return ChatResponse(
        reply=MessageResponse(role=turn.reply.role, content=turn.reply.content),
        applied=applied,
        error=str(turn.error) if turn.error else None,
        session=_session_response(session),
    )


# ── GitHub ──


class RemoteFileResponse(BaseModel):
    path: str
    fetch_ref: str
    content_hash: str


class LoadRequest(BaseModel):
    repo_url: str
    path: str
    fetch_ref: str
    content_hash: str | None = None


class SaveRequest(BaseModel):
    path: str
    message: str
    repo_url: str | None = None
    token: str | None = None


class SaveResponse(BaseModel):
    commit_sha: str
    content_hash: str
    session: SessionResponse


@router.get("/github/files", response_model=list[RemoteFileResponse])
def list_github_files(repo_url: str):
    try:
        files = _get_github_store().list_candidate_files(repo_url)
    except DrawsyncError as e:
        logger.warning("Listing %s failed: %s", repo_url, e)
        raise _http_error(e)
    return [RemoteFileResponse(**vars(f)) for f in files]


@router.post("/sessions/{session_id}/github/load", response_model=SessionResponse)
def load_github_file(session_id: str, req: LoadRequest):
    session = _require_session(session_id)
    try:
        content = _get_github_store().fetch_file(req.fetch_ref)
    except DrawsyncError as e:
        logger.warning("Loading %s failed: %s", req.path, e)
        raise _http_error(e)

    handle = RemoteFileHandle(repo_url=req.repo_url, path=req.path, content_hash=req.content_hash)
    with session.lock:
        if not session.core.apply_from_external_source(content, provenance=handle):
            raise HTTPException(status_code=422, detail=f"{req.path} is not a diagram")
    return _session_response(session)


@router.post("/sessions/{session_id}/github/save", response_model=SaveResponse)
def save_github_file(session_id: str, req: SaveRequest):
    session = _require_session(session_id)
    prov = session.core.provenance
    repo_url = req.repo_url or (prov.repo_url if prov else "")
    store = _get_settings_store()
    token = req.token or store.get_github_token()
    if req.token:
        store.set_github_token(req.token)

    if not session.save_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="A save is already in progress")
    try:
        result = _get_github_store(token).save_file(
            repo_url,
            req.path,
            session.core.canonical_text,
            req.message,
            token,
            known_content_hash=prov.content_hash if prov else None,
            known_path=prov.path if prov else None,
        )
    except DrawsyncError as e:
        logger.warning("Saving %s failed: %s", req.path, e)
        raise _http_error(e)
    finally:
        session.save_lock.release()

    with session.lock:
        session.core.provenance = RemoteFileHandle(
            repo_url=repo_url, path=req.path, content_hash=result.new_content_hash,
        )
    return SaveResponse(
        commit_sha=result.commit_sha,
        content_hash=result.new_content_hash,
        session=_session_response(session),
    )
