from __future__ import annotations

import base64
import hashlib
import hmac
import re
from html import escape
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from voicenotes.core.errors import EmailDeliveryError
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from voicenotes.core.schemas.processing import ProcessingReport

logger = get_logger(__name__)

POSTMARK_API_URL = "https://api.postmarkapp.com/email"
MESSAGE_STREAM = "outbound"
BUTTON_STYLE = (
    "background: #6366f1; color: white; padding: 12px 24px; text-decoration: none; "
    "border-radius: 6px; display: inline-block;"
)

_HTML_TO_TEXT = (
    (re.compile(r"<h[1-6][^>]*>(.*?)</h[1-6]>", re.IGNORECASE | re.DOTALL), "\n\\1\n"),
    (re.compile(r"<li[^>]*>(.*?)</li>", re.IGNORECASE | re.DOTALL), "• \\1\n"),
    (re.compile(r"<br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"<p[^>]*>(.*?)</p>", re.IGNORECASE | re.DOTALL), "\\1\n"),
    (re.compile(r"<a[^>]*href=\"(.*?)\"[^>]*>(.*?)</a>", re.IGNORECASE | re.DOTALL), "\\2 (\\1)"),
    (re.compile(r"<[^>]+>"), ""),
    (re.compile(r"[ \t]+"), " "),
    (re.compile(r"\n\s*\n+"), "\n\n"),
)


def html_to_text(html: str) -> str:
    text = html
    for pattern, replacement in _HTML_TO_TEXT:
        text = pattern.sub(replacement, text)
    return "\n".join(line.strip() for line in text.strip().splitlines())


def format_duration(seconds: int | float) -> str:
    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def compute_webhook_signature(body: bytes, token: str) -> str:
    digest = hmac.new(token.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_webhook_signature(body: bytes, signature: str | None, token: str | None) -> bool:
    """Check an HMAC-SHA256 (base64) signature of the raw request body."""
    if not token or not signature:
        return False
    return hmac.compare_digest(compute_webhook_signature(body, token), signature.strip())


class EmailService:
    """Transactional email through the Postmark HTTP API."""

    def __init__(
        self,
        *,
        server_token: str | None,
        from_email: str,
        inbound_address: str,
        frontend_url: str,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._server_token = server_token
        self._from_email = from_email
        self._inbound_address = inbound_address
        self._frontend_url = frontend_url.rstrip("/")
        self._http = http_client

    async def send(self, to: str, subject: str, html: str) -> None:
        message = {
            "From": self._from_email,
            "To": to,
            "Subject": subject,
            "HtmlBody": html,
            "TextBody": html_to_text(html),
            "MessageStream": MESSAGE_STREAM,
        }
        if not self._server_token:
            logger.warning("Postmark token not configured, email not sent", extra={"to": to, "subject": subject})
            return
        await self._deliver(message)
        logger.info("Email sent", extra={"to": to, "subject": subject})

    async def _deliver(self, message: dict[str, Any]) -> None:
        headers = {
            "Accept": "application/json",
            "X-Postmark-Server-Token": self._server_token or "",
        }
        try:
            if self._http is not None:
                response = await self._http.post(POSTMARK_API_URL, json=message, headers=headers, timeout=15.0)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(POSTMARK_API_URL, json=message, headers=headers, timeout=15.0)
        except httpx.HTTPError as err:
            raise EmailDeliveryError(f"Postmark request failed: {err}") from err

        if response.status_code != 200:
            detail = response.text[:200] or response.reason_phrase
            raise EmailDeliveryError(f"Postmark rejected message ({response.status_code}): {detail}")

    async def send_registration_prompt(self, to: str) -> None:
        register_url = f"{self._frontend_url}/register?email={quote(to)}"
        html = f"""
        <h2>Welcome to Voice Notes Transcriber!</h2>
        <p>We received a voice note from your email address.</p>
        <p>To start using our service, please complete your registration:</p>
        <ol>
          <li>Click the link below to activate your account</li>
          <li>Set up your preferences</li>
          <li>Start sending voice notes to: <strong>{escape(self._inbound_address)}</strong></li>
        </ol>
        <p><a href="{escape(register_url)}" style="{BUTTON_STYLE}">Complete Registration</a></p>
        <p>Once registered, simply email your voice recordings and we'll transcribe them automatically!</p>
        <p style="color: #666; font-size: 14px;">If you didn't send a voice note, please ignore this email.</p>
        """
        await self.send(to, "Complete your Voice Notes registration", html)

    async def send_no_audio_notice(self, to: str) -> None:
        html = f"""
        <h2>No Audio File Found</h2>
        <p>We received your email but couldn't find any audio attachments.</p>
        <p>Please make sure to:</p>
        <ul>
          <li>Attach an audio file (MP3, WAV, M4A, etc.)</li>
          <li>Check that the file size is under 25MB</li>
          <li>Ensure the attachment uploaded correctly</li>
        </ul>
        <p>Supported audio formats: MP3, WAV, M4A, MP4, OGG, WEBM, FLAC</p>
        <p>Try sending your voice note again to: <strong>{escape(self._inbound_address)}</strong></p>
        """
        await self.send(to, "No audio file found in your email", html)

    async def send_processing_confirmation(self, to: str, report: ProcessingReport) -> None:
        succeeded = len(report.succeeded)
        failed = len(report.failed)
        items = []
        for result in report.results:
            name = escape(result.filename)
            if result.ok:
                link = f"{self._frontend_url}/notes/{result.note_id}"
                items.append(
                    f'<li style="color: #10b981;">✅ <a href="{escape(link)}">{name}</a>: '
                    f"transcribed ({format_duration(result.duration)})</li>"
                )
            else:
                items.append(f'<li style="color: #ef4444;">❌ {name}: {escape(result.error or "unknown error")}</li>')

        failed_line = f"<li>❌ Failed: {failed}</li>" if failed else ""
        html = f"""
        <h2>Voice Notes Processing Complete</h2>
        <p>We've finished processing your voice notes:</p>
        <ul>
          <li>✅ Successful: {succeeded}</li>
          {failed_line}
        </ul>
        <h3>Results:</h3>
        <ul>{"".join(items)}</ul>
        <p><a href="{escape(self._frontend_url)}" style="{BUTTON_STYLE}">View Your Transcriptions</a></p>
        <p style="margin-top: 24px; color: #666;"><strong>Tip:</strong> You can add context to your voice
        notes by including text in the email body or using a descriptive subject line.</p>
        """
        await self.send(to, f"Voice Notes: {succeeded} transcribed successfully", html)

    async def send_verification(self, to: str, token: str) -> None:
        url = f"{self._frontend_url}/verify-email/{quote(token)}"
        html = f"""
        <h2>Verify your email</h2>
        <p>Please verify your email address to activate your account.</p>
        <p><a href="{escape(url)}" style="{BUTTON_STYLE}">Verify Email</a></p>
        <p>Or copy this link: {escape(url)}</p>
        """
        await self.send(to, "Verify your Voice Notes account", html)

    async def send_password_reset(self, to: str, token: str) -> None:
        url = f"{self._frontend_url}/reset-password/{quote(token)}"
        html = f"""
        <h2>Password reset</h2>
        <p>We received a request to reset your password.</p>
        <p><a href="{escape(url)}" style="{BUTTON_STYLE}">Reset Password</a></p>
        <p>Or copy this link: {escape(url)}</p>
        <p style="color: #666;">This link expires in one hour. If you didn't ask for a reset, ignore this email.</p>
        """
        await self.send(to, "Reset your Voice Notes password", html)
