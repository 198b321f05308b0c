import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass

import numpy as np
import soundfile as sf
from numpy.typing import NDArray

from afprint.config import ESSENTIAL_SECONDS
from afprint.errors import DecodeError, ShortReadError

logger = logging.getLogger(__name__)

# File extensions libsndfile reports for its major formats.
_FORMAT_EXTENSIONS = {
    "WAV": "wav",
    "AIFF": "aiff",
    "AU": "au",
    "RAW": "raw",
    "PAF": "paf",
    "SVX": "iff",
    "NIST": "wav",
    "VOC": "voc",
    "IRCAM": "sf",
    "W64": "w64",
    "MAT4": "mat",
    "MAT5": "mat",
    "PVF": "pvf",
    "XI": "xi",
    "HTK": "htk",
    "SDS": "sds",
    "AVR": "avr",
    "WAVEX": "wav",
    "SD2": "sd2",
    "FLAC": "flac",
    "CAF": "caf",
    "WVE": "wve",
    "OGG": "oga",
    "MPC2K": "mpc",
    "RF64": "rf64",
    "MP3": "mp3",
}


@dataclass(frozen=True)
class BoundedRead:
    """Decoded audio capped at the essential duration."""
    pcm: NDArray[np.float32]  # shape (frames, channels)
    frames: int
    samplerate: int
    channels: int
    total_frames: int
    duration_ms: int
    format_name: str
    extension: str


def format_extension(major_format: str) -> str:
    return _FORMAT_EXTENSIONS.get(major_format.upper(), major_format.lower())


def essential_frames(samplerate: int, total_frames: int, seconds: int = ESSENTIAL_SECONDS) -> int:
    """Number of frames to decode: the essential duration, or the whole source if shorter."""
    return min(seconds * samplerate, total_frames)


def duration_ms(total_frames: int, samplerate: int) -> int:
    """Duration in milliseconds.

    The sample rate is divided by 1000 first, so 44100 Hz counts as 44 frames
    per millisecond. Output of existing catalogs depends on this rounding.

    Raises:
        ValueError: If the sample rate is below 1000 Hz.
    """
    frames_per_ms = samplerate // 1000
    if frames_per_ms == 0:
        raise ValueError(f"sample rate {samplerate}Hz is too low to compute a duration")
    return total_frames // frames_per_ms


def _sound_file(fd: int, name: str) -> sf.SoundFile:
    try:
        return sf.SoundFile(fd, closefd=False)
    except (sf.SoundFileError, TypeError, ValueError) as e:
        raise DecodeError(f"Failed to open {name}: {e}") from e


@contextmanager
def _open(source: str | int) -> Generator[sf.SoundFile, None, None]:
    if isinstance(source, int):
        with _sound_file(source, "stdin") as f:
            yield f
        return

    # Paths go through a descriptor so the format comes from the header, not the extension.
    try:
        fd = os.open(source, os.O_RDONLY)
    except OSError as e:
        raise DecodeError(f"Failed to open {source}: {e}") from e
    try:
        with _sound_file(fd, source) as f:
            yield f
    finally:
        os.close(fd)


def read_bounded(source: str | int, seconds: int = ESSENTIAL_SECONDS) -> BoundedRead:
    """Decode at most `seconds` of audio from a path or an open descriptor.

    The source is closed before returning, whatever the outcome. Descriptors
    passed in are not closed; they belong to the caller.

    Raises:
        DecodeError: If the source cannot be opened or has an unusable sample rate.
        ShortReadError: If fewer frames were decoded than requested.
    """
    with _open(source) as f:
        samplerate = f.samplerate
        channels = f.channels
        total_frames = f.frames

        try:
            duration = duration_ms(total_frames, samplerate)
        except ValueError as e:
            raise DecodeError(str(e)) from e

        logger.debug(f"Format: {f.format_info}")
        logger.debug(f"Frames: {total_frames}")
        logger.debug(f"Channels: {channels}")
        logger.debug(f"Samplerate: {samplerate}Hz")
        logger.debug(f"Duration: {duration}ms")

        eframes = essential_frames(samplerate, total_frames, seconds)
        if eframes < seconds * samplerate:
            logger.debug(f"essential frames: {seconds * samplerate} > frames: {total_frames}, adjusting")

        pcm = np.zeros((eframes, channels), dtype=np.float32)
        try:
            decoded = f.read(eframes, dtype="float32", always_2d=True, out=pcm)
        except sf.SoundFileError as e:
            raise DecodeError(f"Failed to decode audio: {e}") from e

        format_name = f.format_info
        extension = format_extension(f.format)

    if len(decoded) != eframes:
        raise ShortReadError(eframes, len(decoded))

    return BoundedRead(
        pcm=pcm,
        frames=eframes,
        samplerate=samplerate,
        channels=channels,
        total_frames=total_frames,
        duration_ms=duration,
        format_name=format_name,
        extension=extension,
    )
