"""Error taxonomy shared by the catalog clients and the watched services."""

from __future__ import annotations


class WatchlogError(Exception):
    """Base class for failures surfaced to API consumers.

    ``message`` is safe to show to users. Diagnostic detail travels on the
    exception chain and in the logs only.
    """

    status_code = 500
    code = "internal_error"
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict[str, str]:
        return {"error": self.code, "description": self.message}


class NotFoundError(WatchlogError):
    """Row absent, or owned by someone else."""

    status_code = 404
    code = "not_found"
    default_message = "No watched entry found."


class ContentNotFoundError(NotFoundError):
    """The catalog does not know the requested title."""

    code = "content_not_found"
    default_message = "Failed to find requested media."


class AlreadyExistsError(WatchlogError):
    status_code = 409
    code = "already_exists"
    default_message = "Content already on watched list."


class UpstreamUnavailableError(WatchlogError):
    """The catalog failed or returned something unusable."""

    status_code = 502
    code = "upstream_unavailable"
    default_message = "The metadata provider could not be reached."


class ContentUnavailableError(WatchlogError):
    """Content could not be resolved while adding a watched entry."""

    status_code = 502
    code = "content_unavailable"
    default_message = "Failed to find requested media."


class PersistError(WatchlogError):
    status_code = 500
    code = "persist_failed"
    default_message = "Failed to save changes."


class MissingConfigError(WatchlogError):
    status_code = 503
    code = "missing_config"
    default_message = "Game search is not configured on this server."


class AuthFailedError(WatchlogError):
    status_code = 502
    code = "auth_failed"
    default_message = "Token request failed, check client id and secret."


class CatalogError(WatchlogError):
    """Base class for failures talking to an external catalog."""

    status_code = 502
    code = "catalog_error"
    default_message = "The metadata provider request failed."


class CatalogUpstreamError(CatalogError):
    """Non-2xx response. The raw body is kept for diagnostics."""

    def __init__(self, status: int, body: str, message: str | None = None):
        self.status = status
        self.body = body
        super().__init__(message)

    def __str__(self) -> str:
        return f"catalog responded with HTTP {self.status}: {self.body}"


class CatalogNotFoundError(CatalogUpstreamError):
    status_code = 404
    code = "content_not_found"
    default_message = "Failed to find requested media."


class CatalogNetworkError(CatalogError):
    default_message = "The metadata provider could not be reached."


class CatalogDecodeError(CatalogError):
    default_message = "Failed to process the metadata provider response."
