import hashlib
import io
import logging
import os

import acoustid
import numpy as np
import pytest
import soundfile as sf


def sine(frames, samplerate, channels=1, freq=440.0, amplitude=0.5):
    """Float32 sine tone shaped (frames, channels), each channel a different frequency."""
    t = np.arange(frames, dtype=np.float64) / samplerate
    columns = [amplitude * np.sin(2 * np.pi * freq * (i + 1) * t) for i in range(channels)]
    return np.column_stack(columns).astype(np.float32)


def wav_bytes(data, samplerate):
    buf = io.BytesIO()
    sf.write(buf, data, samplerate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def open_fds():
    """Descriptors currently open in this process (Linux only)."""
    return set(os.listdir("/proc/self/fd"))


@pytest.fixture(autouse=True)
def restore_root_logger():
    """main() reconfigures the root logger; undo that after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def make_wav(tmp_path):
    """Write a 16-bit WAV file and return its path as a string."""
    def _make(name="tone.wav", seconds=1.0, samplerate=8000, channels=1):
        frames = int(seconds * samplerate)
        path = tmp_path / name
        sf.write(str(path), sine(frames, samplerate, channels), samplerate, subtype="PCM_16")
        return str(path)
    return _make


@pytest.fixture
def fake_acoustid(monkeypatch):
    """Replace the chromaprint-backed primitive with a digest of the PCM it receives."""
    calls = []

    def fingerprint(samplerate, channels, pcmiter, maxlength=120):
        data = b"".join(pcmiter)
        calls.append({"samplerate": samplerate, "channels": channels, "data": data, "maxlength": maxlength})
        digest = hashlib.sha1(data)
        digest.update(f"{samplerate}/{channels}".encode())
        return digest.hexdigest().encode("ascii")

    monkeypatch.setattr(acoustid, "have_chromaprint", True, raising=False)
    monkeypatch.setattr(acoustid, "fingerprint", fingerprint)
    return calls
