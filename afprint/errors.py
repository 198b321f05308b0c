class AfprintError(Exception):
    """Base class for errors raised while fingerprinting one input."""


class ResourceError(AfprintError):
    """A pipe, temporary medium or worker could not be set up."""


class StreamCopyError(ResourceError):
    """Copying standard input into a seekable medium failed."""


class DecodeError(AfprintError):
    """The audio library could not open or interpret the source."""


class ConsistencyError(AfprintError):
    """Frame or sample counts disagree with what was requested."""


class ShortReadError(ConsistencyError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"read {actual} frames, expected {expected}")
        self.expected = expected
        self.actual = actual


class ConversionError(AfprintError):
    """The 16-bit PCM round trip did not produce the expected output."""


class WorkerExitError(ConversionError):
    def __init__(self, exitcode: int | None) -> None:
        super().__init__(f"conversion worker exited with status {exitcode}")
        self.exitcode = exitcode


class FingerprintError(AfprintError):
    """The fingerprint primitive returned no result."""
