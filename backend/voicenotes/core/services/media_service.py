from __future__ import annotations

import asyncio
import json
import subprocess
import tempfile
from pathlib import Path

from voicenotes.core.errors import MediaProcessingError
from voicenotes.core.schemas.processing import AudioMetadata
from voicenotes.utils.logging import get_logger

logger = get_logger(__name__)


class MediaInspector:
    """Audio metadata and transcoding through the ffprobe/ffmpeg binaries.

    The subprocess calls are blocking; every public coroutine pushes them to a
    worker thread.
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe", scratch_dir: str | None = None) -> None:
        self._ffmpeg = ffmpeg_path
        self._ffprobe = ffprobe_path
        self._scratch_dir = scratch_dir

    async def check_available(self) -> bool:
        return await asyncio.to_thread(self._check_available)

    def _check_available(self) -> bool:
        try:
            subprocess.run([self._ffmpeg, "-version"], capture_output=True, check=True)
            subprocess.run([self._ffprobe, "-version"], capture_output=True, check=True)
            return True
        except (subprocess.CalledProcessError, FileNotFoundError):
            return False

    async def probe(self, path: Path) -> AudioMetadata:
        """Full ffprobe metadata; raises ``MediaProcessingError`` if the file is unreadable."""
        return await asyncio.to_thread(self._probe, Path(path))

    def _probe(self, path: Path) -> AudioMetadata:
        try:
            result = subprocess.run(
                [
                    self._ffprobe, "-v", "quiet",
                    "-print_format", "json",
                    "-show_format", "-show_streams",
                    str(path),
                ],
                capture_output=True,
                text=True,
                check=True,
            )
            data = json.loads(result.stdout or "{}")
        except (subprocess.CalledProcessError, FileNotFoundError, json.JSONDecodeError) as err:
            raise MediaProcessingError(f"ffprobe failed for {path.name}: {err}") from err

        metadata = AudioMetadata()
        fmt = data.get("format") or {}
        if fmt.get("duration"):
            metadata.duration = float(fmt["duration"])
        if fmt.get("bit_rate"):
            metadata.bit_rate = int(fmt["bit_rate"])
        if fmt.get("size"):
            metadata.size = int(fmt["size"])
        metadata.format_name = fmt.get("format_name")

        for stream in data.get("streams") or []:
            if stream.get("codec_type") == "audio":
                if stream.get("sample_rate"):
                    metadata.sample_rate = int(stream["sample_rate"])
                metadata.channels = stream.get("channels")
                metadata.codec = stream.get("codec_name")
                break
        return metadata

    async def duration(self, path: Path) -> float:
        """Duration in seconds, or 0.0 when it cannot be determined."""
        try:
            metadata = await self.probe(path)
        except MediaProcessingError as err:
            logger.warning("Could not determine audio duration", extra={"path": str(path), "error": str(err)})
            return 0.0
        return metadata.duration or 0.0

    async def prepare_for_transcription(self, path: Path) -> Path:
        """Transcode to mono 16 kHz MP3, the format the speech API is configured for."""
        return await self._ffmpeg_to_temp(
            Path(path),
            ["-vn", "-ac", "1", "-ar", "16000", "-b:a", "64k", "-f", "mp3"],
            suffix=".mp3",
        )

    async def normalize(self, path: Path) -> Path:
        """Loudness-normalize speech and band-limit it to the voice range."""
        return await self._ffmpeg_to_temp(
            Path(path),
            ["-vn", "-af", "loudnorm=I=-16:TP=-1.5:LRA=11,highpass=f=80,lowpass=f=8000"],
            suffix=path.suffix or ".mp3",
        )

    async def _ffmpeg_to_temp(self, path: Path, args: list[str], *, suffix: str) -> Path:
        temp_file = tempfile.NamedTemporaryFile(suffix=suffix, delete=False, dir=self._scratch_dir)
        output_path = Path(temp_file.name)
        temp_file.close()

        cmd = [self._ffmpeg, "-y", "-i", str(path), *args, str(output_path)]
        try:
            await asyncio.to_thread(subprocess.run, cmd, capture_output=True, check=True)
        except (subprocess.CalledProcessError, FileNotFoundError) as err:
            output_path.unlink(missing_ok=True)
            stderr = getattr(err, "stderr", b"") or b""
            raise MediaProcessingError(
                f"ffmpeg failed for {path.name}: {stderr.decode(errors='replace')[-300:] or err}"
            ) from err

        logger.debug("Transcoded audio", extra={"source": str(path), "output": str(output_path)})
        return output_path
