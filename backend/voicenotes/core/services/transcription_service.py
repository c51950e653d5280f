from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

import google.auth
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage as gcs
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from voicenotes.core.errors import TranscriptionError
from voicenotes.core.models.note import Segment
from voicenotes.core.schemas.processing import TranscriptionResult
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from voicenotes.config import Settings

logger = get_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]
MODEL_NAME = "google-cloud-speech"


class SpeechTranscriber(ABC):
    @abstractmethod
    async def transcribe(self, path: Path, language: str | None = None) -> TranscriptionResult:
        """Transcribe a mono 16 kHz MP3 file.

        ``language`` pins the recognition language; None enables detection
        across the configured primary and alternative languages.
        """


class GoogleSpeechTranscriber(SpeechTranscriber):
    """Cloud Speech-to-Text via a GCS staging object and a long-running operation."""

    POLL_INTERVAL = 5.0

    def __init__(
        self,
        *,
        bucket_name: str,
        credentials_file: str | None = None,
        default_language: str = "en-US",
        alternative_languages: list[str] | None = None,
        phrases: list[str] | None = None,
        timeout: float = 900,
        max_bytes: int = 480 * 1024 * 1024,
    ) -> None:
        self._bucket_name = bucket_name
        self._credentials_file = credentials_file
        self._default_language = default_language
        self._alternative_languages = list(alternative_languages or [])
        self._phrases = list(phrases or [])
        self._timeout = timeout
        self._max_bytes = max_bytes
        self._speech = None
        self._bucket = None

    @classmethod
    def from_settings(cls, settings: Settings) -> GoogleSpeechTranscriber:
        return cls(
            bucket_name=settings.gcs_bucket_name,
            credentials_file=settings.google_application_credentials,
            default_language=settings.speech_language,
            alternative_languages=settings.speech_alternative_languages,
            phrases=settings.speech_phrases,
            timeout=settings.transcription_timeout,
            max_bytes=settings.max_transcription_bytes,
        )

    def _clients(self):
        if self._speech is None:
            if self._credentials_file:
                credentials = service_account.Credentials.from_service_account_file(
                    self._credentials_file, scopes=SCOPES
                )
                project = credentials.project_id
            else:
                credentials, project = google.auth.default(scopes=SCOPES)
            logger.info("Initializing Google Cloud Speech client", extra={"project": project})
            self._speech = build(
                "speech", "v1p1beta1", credentials=credentials, cache_discovery=False, static_discovery=True
            )
            self._bucket = gcs.Client(project=project, credentials=credentials).bucket(self._bucket_name)
        return self._speech, self._bucket

    def build_config(self, language: str | None) -> dict[str, Any]:
        config: dict[str, Any] = {
            "encoding": "MP3",
            "sampleRateHertz": 16000,
            "audioChannelCount": 1,
            "languageCode": language or self._default_language,
            "enableAutomaticPunctuation": True,
            "model": "default",
        }
        if language is None and self._alternative_languages:
            config["alternativeLanguageCodes"] = self._alternative_languages
        if self._phrases:
            config["speechContexts"] = [{"phrases": self._phrases, "boost": 20}]
        return config

    async def transcribe(self, path: Path, language: str | None = None) -> TranscriptionResult:
        path = Path(path)
        try:
            size = (await asyncio.to_thread(path.stat)).st_size
        except FileNotFoundError as err:
            raise TranscriptionError(f"Audio file not found at path: {path}") from err
        if size > self._max_bytes:
            raise TranscriptionError(f"Audio file too large (max {self._max_bytes // (1024 * 1024)}MB)")

        # Nothing is staged until the clients exist, so setup errors skip the cleanup below
        try:
            await asyncio.to_thread(self._clients)
        except (GoogleAPIError, GoogleAuthError) as err:
            raise TranscriptionError(f"Speech client setup failed: {err}") from err

        blob_name = f"{int(time.time() * 1000)}-{path.name}"
        gcs_uri = f"gs://{self._bucket_name}/{blob_name}"
        try:
            await asyncio.to_thread(self._upload, path, blob_name)
            logger.info("Audio uploaded to GCS", extra={"gcs_uri": gcs_uri, "size": size})
            response = await self._recognize(gcs_uri, self.build_config(language))
        except (HttpError, GoogleAPIError, GoogleAuthError) as err:
            raise TranscriptionError(f"Speech API request failed: {err}") from err
        finally:
            await asyncio.to_thread(self._delete_blob, blob_name)

        return self.parse_response(response, language or self._default_language, gcs_uri)

    def parse_response(self, response: dict[str, Any], language: str, gcs_uri: str | None = None) -> TranscriptionResult:
        segments: list[Segment] = []
        detected: str | None = None
        for result in response.get("results") or []:
            alternatives = result.get("alternatives") or []
            if not alternatives:
                continue
            best = alternatives[0]
            segments.append(Segment(text=best.get("transcript", ""), confidence=best.get("confidence")))
            detected = detected or result.get("languageCode")

        if not segments:
            raise TranscriptionError("No transcription results returned from Google Cloud")

        return TranscriptionResult(
            text="\n".join(s.text for s in segments),
            language=detected or language,
            segments=segments,
            model=MODEL_NAME,
            gcs_uri=gcs_uri,
        )

    def _upload(self, path: Path, blob_name: str) -> None:
        _, bucket = self._clients()
        bucket.blob(blob_name).upload_from_filename(str(path), content_type="audio/mpeg")

    def _delete_blob(self, blob_name: str) -> None:
        try:
            _, bucket = self._clients()
            bucket.blob(blob_name).delete()
        except (GoogleAPIError, GoogleAuthError) as err:
            logger.warning("Failed to delete GCS staging object", extra={"blob": blob_name, "error": str(err)})

    async def _recognize(self, gcs_uri: str, config: dict[str, Any]) -> dict[str, Any]:
        speech, _ = self._clients()
        body = {"config": config, "audio": {"uri": gcs_uri}}
        operation = await asyncio.to_thread(lambda: speech.speech().longrunningrecognize(body=body).execute())
        name = operation["name"]
        logger.info("Waiting for speech operation", extra={"operation": name, "language": config["languageCode"]})

        deadline = time.monotonic() + self._timeout
        while not operation.get("done"):
            if time.monotonic() > deadline:
                raise TranscriptionError(f"Transcription timed out after {self._timeout:.0f}s")
            await asyncio.sleep(self.POLL_INTERVAL)
            operation = await asyncio.to_thread(lambda: speech.operations().get(name=name).execute())

        if "error" in operation:
            raise TranscriptionError(f"Speech operation failed: {operation['error'].get('message', 'unknown error')}")
        return operation.get("response") or {}
