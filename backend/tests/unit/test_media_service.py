import asyncio
import json
import subprocess
from pathlib import Path

import pytest

from voicenotes.core.errors import MediaProcessingError
from voicenotes.core.services.media_service import MediaInspector

FFPROBE_OUTPUT = {
    "format": {"duration": "61.48", "bit_rate": "128000", "size": "983680", "format_name": "mp3"},
    "streams": [
        {"codec_type": "video", "codec_name": "mjpeg"},
        {"codec_type": "audio", "codec_name": "mp3", "sample_rate": "44100", "channels": 2},
    ],
}


class FakeRun:
    """Records subprocess invocations; ffmpeg calls write the output file."""

    def __init__(self, stdout="", fail=False):
        self.stdout = stdout
        self.fail = fail
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        if self.fail:
            raise subprocess.CalledProcessError(1, cmd, stderr=b"Invalid data found when processing input")
        if cmd[0] == "ffmpeg" and "-version" not in cmd:
            Path(cmd[-1]).write_bytes(b"transcoded")
        return subprocess.CompletedProcess(cmd, 0, stdout=self.stdout, stderr="")


@pytest.fixture
def inspector(tmp_path):
    return MediaInspector(scratch_dir=str(tmp_path))


class TestProbe:
    def test_metadata_from_ffprobe_json(self, inspector, monkeypatch):
        monkeypatch.setattr(subprocess, "run", FakeRun(stdout=json.dumps(FFPROBE_OUTPUT)))
        metadata = asyncio.run(inspector.probe(Path("memo.mp3")))
        assert metadata.duration == pytest.approx(61.48)
        assert metadata.bit_rate == 128000
        assert metadata.sample_rate == 44100
        assert metadata.channels == 2
        assert metadata.codec == "mp3"
        assert metadata.format_name == "mp3"

    def test_duration_falls_back_to_zero(self, inspector, monkeypatch):
        monkeypatch.setattr(subprocess, "run", FakeRun(fail=True))
        assert asyncio.run(inspector.duration(Path("broken.mp3"))) == 0.0

    def test_probe_failure_raises(self, inspector, monkeypatch):
        monkeypatch.setattr(subprocess, "run", FakeRun(stdout="not json"))
        with pytest.raises(MediaProcessingError):
            asyncio.run(inspector.probe(Path("memo.mp3")))


class TestTranscoding:
    def test_prepare_for_transcription(self, inspector, monkeypatch, tmp_path):
        run = FakeRun()
        monkeypatch.setattr(subprocess, "run", run)
        output = asyncio.run(inspector.prepare_for_transcription(tmp_path / "memo.m4a"))

        assert output.suffix == ".mp3"
        assert output.read_bytes() == b"transcoded"
        [cmd] = run.calls
        assert cmd[cmd.index("-ac") + 1] == "1"
        assert cmd[cmd.index("-ar") + 1] == "16000"

    def test_normalize_filters(self, inspector, monkeypatch, tmp_path):
        run = FakeRun()
        monkeypatch.setattr(subprocess, "run", run)
        output = asyncio.run(inspector.normalize(tmp_path / "memo.wav"))

        assert output.suffix == ".wav"
        filters = run.calls[0][run.calls[0].index("-af") + 1]
        assert "loudnorm" in filters
        assert "highpass=f=80" in filters
        assert "lowpass=f=8000" in filters

    def test_failed_transcode_removes_output(self, inspector, monkeypatch, tmp_path):
        monkeypatch.setattr(subprocess, "run", FakeRun(fail=True))
        with pytest.raises(MediaProcessingError, match="Invalid data"):
            asyncio.run(inspector.prepare_for_transcription(tmp_path / "memo.m4a"))
        assert list(tmp_path.glob("*.mp3")) == []


class TestAvailability:
    def test_missing_binaries(self, monkeypatch):
        def missing(cmd, **kwargs):
            raise FileNotFoundError(cmd[0])

        monkeypatch.setattr(subprocess, "run", missing)
        assert asyncio.run(MediaInspector().check_available()) is False
