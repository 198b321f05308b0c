import functools
import multiprocessing
import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

# Only the first ESSENTIAL_SECONDS of a track are fingerprinted.
ESSENTIAL_SECONDS = 135

COPY_CHUNK_SIZE = 4096

ENV_NO_TEMP = "AFPRINT_NO_TEMP"
ENV_STDIN_STRATEGY = "AFPRINT_STDIN_STRATEGY"
ENV_WORKER = "AFPRINT_WORKER"
ENV_SPLICE = "AFPRINT_SPLICE"


class StdinStrategy(str, Enum):
    TEMP_FILE = "temp-file"
    SHARED_MEMORY = "shared-memory"
    DIRECT = "direct"


class ConversionWorker(str, Enum):
    PROCESS = "process"
    THREAD = "thread"


@functools.cache
def is_shared_memory_available() -> bool:
    """Check whether memory-backed files (memfd) can be created."""
    return hasattr(os, "memfd_create")


@functools.cache
def is_splice_available() -> bool:
    return hasattr(os, "splice")


@functools.cache
def is_fork_available() -> bool:
    return "fork" in multiprocessing.get_all_start_methods()


def default_worker() -> ConversionWorker:
    if is_fork_available():
        return ConversionWorker.PROCESS
    return ConversionWorker.THREAD


def parse_stdin_strategy(value: str) -> StdinStrategy:
    try:
        return StdinStrategy(value)
    except ValueError:
        choices = ", ".join(s.value for s in StdinStrategy)
        raise ValueError(f"invalid stdin strategy {value!r}, expected one of: {choices}") from None


def parse_worker(value: str) -> ConversionWorker:
    try:
        return ConversionWorker(value)
    except ValueError:
        choices = ", ".join(w.value for w in ConversionWorker)
        raise ValueError(f"invalid conversion worker {value!r}, expected one of: {choices}") from None


@dataclass(frozen=True)
class Settings:
    stdin_strategy: StdinStrategy = StdinStrategy.TEMP_FILE
    worker: ConversionWorker = ConversionWorker.PROCESS
    use_splice: bool = False


def load_settings(
    environ: Mapping[str, str] | None = None,
    stdin_strategy: str | None = None,
    worker: str | None = None,
) -> Settings:
    """Resolve settings from the environment, with explicit arguments taking precedence.

    Args:
        environ: Environment mapping, defaults to os.environ.
        stdin_strategy: Overrides AFPRINT_STDIN_STRATEGY / AFPRINT_NO_TEMP.
        worker: Overrides AFPRINT_WORKER.

    Raises:
        ValueError: If a strategy or worker name is not recognised.
    """
    if environ is None:
        environ = os.environ

    if stdin_strategy is not None:
        strategy = parse_stdin_strategy(stdin_strategy)
    elif ENV_NO_TEMP in environ:
        strategy = StdinStrategy.DIRECT
    elif environ.get(ENV_STDIN_STRATEGY):
        strategy = parse_stdin_strategy(environ[ENV_STDIN_STRATEGY])
    else:
        strategy = StdinStrategy.TEMP_FILE

    if worker is not None:
        conversion_worker = parse_worker(worker)
    elif environ.get(ENV_WORKER):
        conversion_worker = parse_worker(environ[ENV_WORKER])
    else:
        conversion_worker = default_worker()

    use_splice = is_splice_available() and environ.get(ENV_SPLICE, "1") != "0"

    return Settings(stdin_strategy=strategy, worker=conversion_worker, use_splice=use_splice)
