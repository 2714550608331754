"""Error taxonomy shared by the relay, pipeline, store and sync layers."""

from __future__ import annotations


class DrawsyncError(Exception):
    """Base class for every failure raised by drawsync."""


class ParseError(DrawsyncError):
    """Raised when document text is not valid JSON or not a document shape."""


class SurfaceImportError(DrawsyncError):
    """Raised by a drawing surface that cannot import the given elements."""


class MethodNotAllowedError(DrawsyncError):
    """Raised when the relay receives a method outside its permitted set."""

    def __init__(self, method: str) -> None:
        super().__init__(f"Method {method} not allowed")
        self.method = method


# ── Generation ──


class GenerationError(DrawsyncError):
    """Base class for AI generation failures."""


class MissingApiKeyError(GenerationError):
    """Raised when no API key is configured for the selected provider."""


class UnknownProviderError(GenerationError):
    """Raised when the configured provider has no registered implementation."""


class UpstreamError(GenerationError):
    """Raised when the AI provider answers with a non-success status."""

    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"Upstream returned {status}: {body[:500]}")
        self.status = status
        self.body = body


class MalformedGenerationError(GenerationError):
    """Raised when the model output cannot be turned into an element array."""


# ── Remote file store ──


class RemoteStoreError(DrawsyncError):
    """Raised when the remote file store rejects or fails a request."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class InvalidUrlError(RemoteStoreError):
    """Raised when a repository URL does not match the expected host pattern."""


class RepositoryNotFoundError(RemoteStoreError):
    """Raised when neither default branch of a repository can be listed."""


class ConflictError(RemoteStoreError):
    """Raised when a save is rejected because the content hash is stale."""


class MissingFieldError(RemoteStoreError):
    """Raised when a save is attempted without token, path, message or repo."""
