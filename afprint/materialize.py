"""Copy standard input into a seekable medium for the decoder.

libsndfile needs random access for most container formats, so stdin is first
copied into an anonymous temporary file or a memory-backed file. Both media
are unlinked as soon as they are created: closing the descriptor releases
them, and the kernel reclaims them even if the process dies abnormally.
"""
import errno
import logging
import os
import tempfile
from collections.abc import Generator
from contextlib import contextmanager

from afprint.config import COPY_CHUNK_SIZE, StdinStrategy, is_shared_memory_available
from afprint.errors import ResourceError, StreamCopyError

logger = logging.getLogger(__name__)


class _SpliceUnsupported(Exception):
    pass


def _create_medium(strategy: StdinStrategy) -> int:
    if strategy is StdinStrategy.SHARED_MEMORY:
        try:
            return os.memfd_create("afprint-stdin", os.MFD_CLOEXEC)
        except OSError as e:
            raise ResourceError(f"Failed to create shared memory file: {e}") from e

    try:
        fd, path = tempfile.mkstemp(prefix="afprint-stdin-")
    except OSError as e:
        raise ResourceError(f"Failed to create temporary file: {e}") from e
    try:
        os.unlink(path)
    except OSError as e:
        os.close(fd)
        raise ResourceError(f"Failed to unlink temporary file {path}: {e}") from e
    logger.debug(f"created anonymous temporary file (was {path})")
    return fd


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        written = os.write(fd, view)
        if written == 0:
            raise StreamCopyError("Writing to temporary medium made no progress")
        view = view[written:]


def read_write_stream(src_fd: int, dst_fd: int, chunk_size: int = COPY_CHUNK_SIZE) -> int:
    """Copy src_fd to dst_fd until EOF using plain read/write calls.

    Short writes are completed; interrupted calls are retried by the
    interpreter itself (PEP 475).

    Returns:
        Number of bytes copied.
    """
    total = 0
    while True:
        try:
            chunk = os.read(src_fd, chunk_size)
        except OSError as e:
            raise StreamCopyError(f"Reading from standard input failed: {e}") from e
        if not chunk:
            return total

        try:
            _write_all(dst_fd, chunk)
        except OSError as e:
            raise StreamCopyError(f"Writing to temporary medium failed: {e}") from e
        total += len(chunk)


def splice_stream(src_fd: int, dst_fd: int, chunk_size: int = COPY_CHUNK_SIZE) -> int:
    """Copy src_fd to dst_fd inside the kernel with splice(2).

    splice needs a pipe on one side, so data travels through an intermediate
    pipe. Raises _SpliceUnsupported if the source refuses the very first
    splice, before any byte has moved.
    """
    try:
        read_end, write_end = os.pipe()
    except OSError as e:
        raise ResourceError(f"Failed to create pipe: {e}") from e

    total = 0
    try:
        while True:
            try:
                pending = os.splice(src_fd, write_end, chunk_size)
            except OSError as e:
                if total == 0 and e.errno in (errno.EINVAL, errno.ENOSYS):
                    raise _SpliceUnsupported() from e
                raise StreamCopyError(f"Splicing data from standard input failed: {e}") from e
            if pending == 0:
                return total

            while pending:
                try:
                    moved = os.splice(read_end, dst_fd, pending)
                except OSError as e:
                    raise StreamCopyError(f"Splicing data to temporary medium failed: {e}") from e
                if moved == 0:
                    raise StreamCopyError("Splicing data to temporary medium made no progress")
                pending -= moved
                total += moved
    finally:
        os.close(read_end)
        os.close(write_end)


def copy_stream(
    src_fd: int,
    dst_fd: int,
    chunk_size: int = COPY_CHUNK_SIZE,
    use_splice: bool = False,
) -> int:
    if use_splice:
        try:
            return splice_stream(src_fd, dst_fd, chunk_size)
        except _SpliceUnsupported:
            logger.debug("input does not support splice, falling back to read/write")
    return read_write_stream(src_fd, dst_fd, chunk_size)


@contextmanager
def materialize_stream(
    source_fd: int,
    strategy: StdinStrategy = StdinStrategy.TEMP_FILE,
    use_splice: bool = False,
) -> Generator[int, None, None]:
    """Yield a seekable descriptor holding a copy of everything in source_fd.

    The descriptor is positioned at offset 0 and stays owned by this context
    manager: it is closed exactly once when the block exits, whether normally,
    with an error, or through cancellation. With StdinStrategy.DIRECT nothing
    is copied and source_fd itself is yielded (and left open).

    Args:
        source_fd: Non-seekable descriptor to read from, usually stdin.
        strategy: Where to put the copy.
        use_splice: Try splice(2) before falling back to read/write.

    Raises:
        ResourceError: If the medium cannot be created.
        StreamCopyError: If copying fails part way through.
    """
    if strategy is StdinStrategy.DIRECT:
        logger.debug("streaming standard input directly to the decoder")
        yield source_fd
        return

    if strategy is StdinStrategy.SHARED_MEMORY and not is_shared_memory_available():
        logger.warning("shared memory files are not supported here, using a temporary file")
        strategy = StdinStrategy.TEMP_FILE

    fd = _create_medium(strategy)
    try:
        size = copy_stream(source_fd, fd, use_splice=use_splice)
        try:
            os.lseek(fd, 0, os.SEEK_SET)
        except OSError as e:
            raise StreamCopyError(f"Seeking in temporary medium failed: {e}") from e
        logger.debug(f"copied {size} bytes of standard input into {strategy.value} medium")
        yield fd
    finally:
        os.close(fd)
