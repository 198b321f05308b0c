"""Convert decoded float samples into 16-bit little-endian interleaved PCM.

The conversion is a round trip through libsndfile: a worker encodes the float
frames as 16-bit AU into one end of a pipe while the caller decodes the other
end. Running encoder and decoder concurrently means the encoded stream never
has to be held in memory as a whole.
"""
import logging
import multiprocessing
import os
import signal
import sys
import threading

import numpy as np
import soundfile as sf
from numpy.typing import NDArray

from afprint.cancellation import TERMINATING_SIGNALS
from afprint.config import ConversionWorker, default_worker
from afprint.errors import ConversionError, ResourceError, WorkerExitError

logger = logging.getLogger(__name__)

SAMPLE_WIDTH = 2


def _encode_to_fd(write_fd: int, pcm: NDArray[np.float32], samplerate: int, channels: int) -> bool:
    """Write all frames of pcm as 16-bit little-endian AU to write_fd, then close it.

    Returns True if exactly len(pcm) frames were written.
    """
    try:
        with sf.SoundFile(
            write_fd,
            mode="w",
            samplerate=samplerate,
            channels=channels,
            format="AU",
            subtype="PCM_16",
            endian="LITTLE",
            closefd=False,
        ) as out:
            out.write(pcm)
            written = out.frames
    except (sf.SoundFileError, AssertionError) as e:
        # soundfile reports short writes, such as EPIPE, with a bare assert.
        logger.error(f"Failed to write to pipe: {e!r}")
        return False
    finally:
        os.close(write_fd)

    if written != len(pcm):
        logger.error(f"wrote {written} frames to pipe, expected {len(pcm)}")
        return False
    return True


def _process_main(
    read_fd: int, write_fd: int, pcm: NDArray[np.float32], samplerate: int, channels: int
) -> None:
    # Signals kill the child outright; the parent owns cleanup.
    for signum in TERMINATING_SIGNALS:
        signal.signal(signum, signal.SIG_DFL)
    # The child must not hold the read end, or the parent never sees EOF.
    os.close(read_fd)
    ok = _encode_to_fd(write_fd, pcm, samplerate, channels)
    sys.exit(0 if ok else 1)


class _ProcessWorker:
    owns_write_end = False

    def __init__(
        self, read_fd: int, write_fd: int, pcm: NDArray[np.float32], samplerate: int, channels: int
    ) -> None:
        ctx = multiprocessing.get_context("fork")
        self._process = ctx.Process(
            target=_process_main,
            args=(read_fd, write_fd, pcm, samplerate, channels),
            name="afprint-convert",
            daemon=True,
        )

    def start(self) -> None:
        self._process.start()

    def kill(self) -> None:
        if self._process.is_alive():
            self._process.kill()

    def join(self) -> int | None:
        self._process.join()
        exitcode = self._process.exitcode
        self._process.close()
        return exitcode


class _ThreadWorker:
    owns_write_end = True

    def __init__(
        self, read_fd: int, write_fd: int, pcm: NDArray[np.float32], samplerate: int, channels: int
    ) -> None:
        self._ok = False
        self._thread = threading.Thread(
            target=self._run,
            args=(write_fd, pcm, samplerate, channels),
            name="afprint-convert",
            daemon=True,
        )

    def _run(self, write_fd: int, pcm: NDArray[np.float32], samplerate: int, channels: int) -> None:
        self._ok = _encode_to_fd(write_fd, pcm, samplerate, channels)

    def start(self) -> None:
        self._thread.start()

    def kill(self) -> None:
        # Threads cannot be killed; closing the read end makes the encoder fail instead.
        pass

    def join(self) -> int | None:
        self._thread.join()
        return 0 if self._ok else 1


def _read_pcm16(read_fd: int, frames: int) -> bytes:
    try:
        with sf.SoundFile(read_fd, closefd=False) as f:
            pcm16 = f.read(frames, dtype="int16", always_2d=True)
    except sf.SoundFileError as e:
        raise ConversionError(f"Failed to read converted audio from pipe: {e}") from e
    return pcm16.astype("<i2", copy=False).tobytes()


def convert_raw(
    pcm: NDArray[np.float32],
    samplerate: int,
    channels: int,
    worker: ConversionWorker | None = None,
) -> bytes:
    """Render float frames as 16-bit little-endian interleaved PCM bytes.

    Args:
        pcm: Float samples shaped (frames, channels).
        samplerate: Sample rate in Hz.
        channels: Channel count, must match pcm.shape[1].
        worker: Run the encoder in a forked process or a thread. Defaults to a
            process where fork is available.

    Returns:
        Exactly frames * channels * 2 bytes.

    Raises:
        ResourceError: If the pipe or the worker cannot be created.
        WorkerExitError: If the encoder did not write every frame.
        ConversionError: If the decoded byte count is not the expected one.
    """
    if worker is None:
        worker = default_worker()
    frames = len(pcm)
    expected = frames * channels * SAMPLE_WIDTH

    try:
        read_fd, write_fd = os.pipe()
    except OSError as e:
        raise ResourceError(f"Failed to create pipe: {e}") from e

    worker_cls = _ProcessWorker if worker is ConversionWorker.PROCESS else _ThreadWorker
    try:
        runner = worker_cls(read_fd, write_fd, pcm, samplerate, channels)
        runner.start()
    except (OSError, RuntimeError, ValueError) as e:
        os.close(read_fd)
        os.close(write_fd)
        raise ResourceError(f"Failed to start conversion worker: {e}") from e

    if not runner.owns_write_end:
        os.close(write_fd)

    try:
        buf = _read_pcm16(read_fd, frames)
    except BaseException:
        os.close(read_fd)
        runner.kill()
        runner.join()
        raise
    os.close(read_fd)

    exitcode = runner.join()
    if exitcode != 0:
        raise WorkerExitError(exitcode)
    if len(buf) != expected:
        raise ConversionError(f"read {len(buf)} bytes of converted audio, expected {expected}")

    logger.debug(f"converted {frames} frames to {len(buf)} bytes of 16-bit PCM ({worker.value} worker)")
    return buf
