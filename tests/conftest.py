"""Shared fixtures for caption voiceover tests."""

import os
import threading
import time

import numpy as np
import pytest
from pydub import AudioSegment

from caption_voiceover.config import Settings
from caption_voiceover.context import RunContext
from caption_voiceover.media import MediaToolkit
from caption_voiceover.models import TimedSegment

RATE = 22050


def tone(seconds: float, rate: int = RATE, amplitude: int = 8000) -> AudioSegment:
    """Mono 16-bit 440Hz tone, audible well above -40 dBFS."""
    frames = int(round(rate * seconds))
    t = np.arange(frames) / rate
    samples = (amplitude * np.sin(2 * np.pi * 440 * t)).astype(np.int16)
    return AudioSegment(data=samples.tobytes(), sample_width=2, frame_rate=rate, channels=1)


def write_tone(path, seconds: float) -> str:
    tone(seconds).export(str(path), format="wav")
    return str(path)


def wav_seconds(path) -> float:
    audio = AudioSegment.from_file(str(path), format="wav")
    return audio.frame_count() / audio.frame_rate


class FakeToolkit(MediaToolkit):
    """MediaToolkit with the ffmpeg/ffprobe calls done in-process on WAV data."""

    def __init__(self, slots, **kwargs):
        super().__init__(slots, **kwargs)
        self.probed = []
        self.manifests = []

    def probe_duration(self, path):
        with self.slots:
            self.probed.append(path)
            return wav_seconds(path)

    def conform(self, source, target, volume_scale=1.0):
        with self.slots:
            audio = self._to_canonical(AudioSegment.from_file(source, format="wav"))
            if volume_scale != 1.0:
                audio = audio.apply_gain(20 * np.log10(volume_scale))
            audio.export(target, format="wav")
        return target

    def concatenate(self, manifest_path, output_path):
        base = os.path.dirname(manifest_path)
        with open(manifest_path) as f:
            lines = [line.strip() for line in f if line.strip()]
        self.manifests.append(lines)
        combined = AudioSegment.empty()
        for line in lines:
            name = line[len("file '"):-1]
            combined += AudioSegment.from_file(os.path.join(base, name), format="wav")
        with self.slots:
            combined.export(output_path, format="wav")
        return output_path


class FakeEngine:
    """Stands in for tts.run_tool: writes a tone whose length depends on the text.

    Records every call and the peak number of simultaneous calls.
    """

    def __init__(self, durations=None, default=1.0, delay=0.0, fail_texts=()):
        self.durations = durations or {}
        self.default = default
        self.delay = delay
        self.fail_texts = set(fail_texts)
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(self, cmd, timeout, error_cls, description, input_text=None, timeout_cls=None):
        text = next((arg[len("--text="):] for arg in cmd if arg.startswith("--text=")), input_text)
        with self._lock:
            self.calls.append(text)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if text in self.fail_texts:
                raise error_cls(f"{description}: exit status 1: boom")
            write_tone(cmd[-1], self.durations.get(text, self.default))
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def fake_engine(monkeypatch):
    """Install a FakeEngine in place of the synthesizer process."""
    def install(**kwargs):
        engine = FakeEngine(**kwargs)
        monkeypatch.setattr("caption_voiceover.tts.run_tool", engine)
        return engine
    return install


@pytest.fixture
def make_context(tmp_path):
    """Build a RunContext under tmp_path with the in-process toolkit."""
    def build(**overrides):
        values = {
            "output_dir": str(tmp_path / "output"),
            "cache_dir": str(tmp_path / "output" / "cache"),
            "retry_base_delay": 0.0,
        }
        values.update(overrides)
        settings = Settings().with_overrides(**values)
        project_dir = tmp_path / "output" / "captions"
        for subdir in ("raw", "units", "final"):
            (project_dir / subdir).mkdir(parents=True, exist_ok=True)
        context = RunContext.create(settings, str(project_dir))
        context.toolkit = FakeToolkit(
            context.media_slots,
            sample_rate=settings.sample_rate,
            channels=settings.channels,
        )
        return context
    return build


@pytest.fixture
def hello_world():
    """Two cues: 0–2s "Hello", 2.5–4s "World"."""
    return [
        TimedSegment(index=0, start=0.0, end=2.0, raw_text="Hello", text="Hello"),
        TimedSegment(index=1, start=2.5, end=4.0, raw_text="World", text="World"),
    ]


@pytest.fixture
def sample_vtt(tmp_path):
    """A small WebVTT file with header, cue indexes and markup."""
    content = (
        "WEBVTT\n"
        "\n"
        "1\n"
        "00:00:00.000 --> 00:00:02.000\n"
        "Hello\n"
        "\n"
        "2\n"
        "00:00:02.500 --> 00:00:04.000\n"
        "<i>World</i>\n"
    )
    path = tmp_path / "hello.vtt"
    path.write_text(content)
    return path
