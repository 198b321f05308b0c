import sys

import acoustid
import numpy as np
import pytest

from afprint.config import ESSENTIAL_SECONDS
from afprint.errors import ConsistencyError, FingerprintError
from afprint.fingerprint import create_print


class TestCreatePrint:
    def test_passes_pcm_and_format_to_primitive(self, fake_acoustid):
        buf = np.arange(8000, dtype="<i2").tobytes()
        token = create_print(buf, "little", 8000, 8000, False)

        assert isinstance(token, str)
        assert len(fake_acoustid) == 1
        call = fake_acoustid[0]
        assert call["samplerate"] == 8000
        assert call["channels"] == 1
        assert call["maxlength"] == ESSENTIAL_SECONDS
        assert np.array_equal(np.frombuffer(call["data"], dtype="=i2"), np.arange(8000))

    def test_stereo_flag_selects_two_channels(self, fake_acoustid):
        buf = bytes(400)
        create_print(buf, "little", 200, 44100, True)
        assert fake_acoustid[0]["channels"] == 2

    def test_foreign_byte_order_is_converted(self, fake_acoustid):
        samples = np.array([1, -2, 300, -32768, 32767], dtype=np.int16)
        foreign = "big" if sys.byteorder == "little" else "little"
        foreign_dtype = ">i2" if foreign == "big" else "<i2"

        create_print(samples.astype(foreign_dtype).tobytes(), foreign, 5, 8000, False)
        assert np.array_equal(np.frombuffer(fake_acoustid[0]["data"], dtype="=i2"), samples)

    def test_same_input_gives_same_token(self, fake_acoustid):
        buf = np.arange(1000, dtype="<i2").tobytes()
        assert create_print(buf, "little", 1000, 8000, False) == create_print(buf, "little", 1000, 8000, False)

    def test_sample_count_must_match_buffer(self, fake_acoustid):
        with pytest.raises(ConsistencyError):
            create_print(bytes(100), "little", 60, 8000, False)
        assert fake_acoustid == []

    def test_invalid_byte_order(self, fake_acoustid):
        with pytest.raises(ValueError):
            create_print(bytes(4), "middle", 2, 8000, False)

    def test_primitive_failure_is_a_fingerprint_error(self, monkeypatch):
        def failing(samplerate, channels, pcmiter, maxlength=120):
            raise acoustid.FingerprintGenerationError("fingerprint calculation failed")

        monkeypatch.setattr(acoustid, "fingerprint", failing)
        with pytest.raises(FingerprintError):
            create_print(bytes(4), "little", 2, 8000, False)

    def test_empty_result_is_a_fingerprint_error(self, monkeypatch):
        monkeypatch.setattr(acoustid, "fingerprint", lambda *args, **kwargs: b"")
        with pytest.raises(FingerprintError, match="no result"):
            create_print(bytes(4), "little", 2, 8000, False)

    def test_string_result_is_returned_as_is(self, monkeypatch):
        monkeypatch.setattr(acoustid, "fingerprint", lambda *args, **kwargs: "AQAAtoken")
        assert create_print(bytes(4), "little", 2, 8000, False) == "AQAAtoken"


def test_real_chromaprint_is_deterministic():
    pytest.importorskip("chromaprint")
    from conftest import sine

    pcm = sine(11025 * 20, 11025, channels=2)
    buf = np.round(pcm * 32767).astype("<i2").tobytes()
    first = create_print(buf, "little", pcm.size, 11025, True)
    second = create_print(buf, "little", pcm.size, 11025, True)

    assert first
    assert first == second
