from __future__ import annotations


class AuthenticationError(Exception):
    """Credentials or bearer token could not be validated."""


class InactiveAccountError(AuthenticationError):
    """Credentials are valid but the account has not been activated."""


class UpstreamServiceError(Exception):
    """An external collaborator (storage, speech, Notion, email) failed."""

    service = "upstream"


class StorageError(UpstreamServiceError):
    service = "storage"


class MediaProcessingError(UpstreamServiceError):
    service = "media"


class TranscriptionError(UpstreamServiceError):
    service = "transcription"


class NotionSyncError(UpstreamServiceError):
    service = "notion"


class EmailDeliveryError(UpstreamServiceError):
    service = "email"
