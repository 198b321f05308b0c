import logging
import sys
from typing import Literal

import acoustid
import numpy as np

from afprint.config import ESSENTIAL_SECONDS
from afprint.errors import ConsistencyError, FingerprintError

logger = logging.getLogger(__name__)

ByteOrder = Literal["little", "big"]


def _to_native(buf: bytes, byte_order: ByteOrder) -> bytes:
    # Chromaprint consumes 16-bit samples in host byte order.
    if byte_order == sys.byteorder:
        return buf
    source_dtype = "<i2" if byte_order == "little" else ">i2"
    return np.frombuffer(buf, dtype=source_dtype).astype("=i2").tobytes()


def create_print(
    buf: bytes,
    byte_order: ByteOrder,
    samples: int,
    samplerate: int,
    stereo: bool,
) -> str:
    """Compute the fingerprint of 16-bit interleaved PCM.

    Args:
        buf: Raw 16-bit samples, interleaved when stereo.
        byte_order: Byte order of the samples in buf.
        samples: Total sample count (frames * channels).
        samplerate: Sample rate in Hz.
        stereo: True for two channels, False for mono.

    Returns:
        The fingerprint token.

    Raises:
        ConsistencyError: If samples does not match the buffer length.
        FingerprintError: If no fingerprint could be computed.
    """
    if byte_order not in ("little", "big"):
        raise ValueError(f"invalid byte order {byte_order!r}")
    if samples * 2 != len(buf):
        raise ConsistencyError(f"buffer holds {len(buf) // 2} samples, caller claims {samples}")

    if not getattr(acoustid, "have_chromaprint", True):
        raise FingerprintError("libchromaprint is not available")

    channels = 2 if stereo else 1
    native = _to_native(buf, byte_order)
    try:
        token = acoustid.fingerprint(samplerate, channels, [native], maxlength=ESSENTIAL_SECONDS)
    except acoustid.FingerprintGenerationError as e:
        raise FingerprintError(f"fingerprint calculation failed: {e}") from e

    if not token:
        raise FingerprintError("fingerprint calculation returned no result")

    if isinstance(token, bytes):
        token = token.decode("ascii")
    logger.debug(f"fingerprint of {samples} samples at {samplerate}Hz is {len(token)} characters")
    return token
