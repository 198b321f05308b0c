import logging
import sys
from dataclasses import dataclass

from afprint.config import Settings, load_settings
from afprint.fingerprint import create_print
from afprint.materialize import materialize_stream
from afprint.normalize import convert_raw
from afprint.reader import BoundedRead, read_bounded

logger = logging.getLogger(__name__)

STDIN_PATH = "-"


@dataclass(frozen=True)
class FingerprintResult:
    source: str
    duration_ms: int
    fingerprint: str


def _read_stdin(stdin_fd: int, settings: Settings) -> BoundedRead:
    with materialize_stream(stdin_fd, settings.stdin_strategy, use_splice=settings.use_splice) as fd:
        return read_bounded(fd)


def fingerprint_source(
    path: str,
    settings: Settings | None = None,
    stdin_fd: int | None = None,
) -> FingerprintResult:
    """Fingerprint one audio file, or standard input when path is "-".

    Raises:
        AfprintError: Any subclass, describing the step that failed.
    """
    if settings is None:
        settings = load_settings()

    if path == STDIN_PATH:
        if stdin_fd is None:
            stdin_fd = sys.stdin.fileno()
        audio = _read_stdin(stdin_fd, settings)
        source = f"/dev/stdin.{audio.extension}"
    else:
        audio = read_bounded(path)
        source = path

    logger.debug(f"{source}: fingerprinting {audio.frames} of {audio.total_frames} frames")

    buf = convert_raw(audio.pcm, audio.samplerate, audio.channels, worker=settings.worker)
    fingerprint = create_print(
        buf,
        "little",
        audio.frames * audio.channels,
        audio.samplerate,
        audio.channels == 2,
    )
    return FingerprintResult(source=source, duration_ms=audio.duration_ms, fingerprint=fingerprint)
