import argparse
import logging
import sys

from afprint import __version__
from afprint.cancellation import SignalReceived, reraise, signals_as_exceptions
from afprint.config import ConversionWorker, StdinStrategy, load_settings
from afprint.errors import AfprintError
from afprint.pipeline import STDIN_PATH, FingerprintResult, fingerprint_source

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(funcName)s.%(lineno)d] %(message)s"


def format_result(result: FingerprintResult, print0: bool = False) -> str:
    """Render one output line: source, duration in ms and fingerprint."""
    sep = "\0" if print0 else " "
    return f"{result.source}{sep}{result.duration_ms}{sep}{result.fingerprint}\n"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='afprint',
        description='Audio fingerprinting tool',
        epilog=f"If FILE is '{STDIN_PATH}', afprint reads from standard input.",
    )
    parser.add_argument('-V', '--version', action='version', version=f'afprint-{__version__}',
                        help='display version and exit')
    parser.add_argument('-v', '--verbose', action='store_true', help='be verbose')
    parser.add_argument('-0', '--print0', action='store_true',
                        help='delimit path and fingerprint by null character instead of space')
    parser.add_argument('--stdin-strategy', choices=[s.value for s in StdinStrategy], default=None,
                        help='how to make standard input seekable (default: temp-file, or direct if AFPRINT_NO_TEMP is set)')
    parser.add_argument('--worker', choices=[w.value for w in ConversionWorker], default=None,
                        help='run the 16-bit conversion in a forked process or a thread')
    parser.add_argument('files', metavar='FILE', nargs='+', help='audio file to fingerprint')
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        force=True,
    )

    try:
        settings = load_settings(stdin_strategy=args.stdin_strategy, worker=args.worker)
    except ValueError as e:
        parser.error(str(e))

    failures = 0
    try:
        with signals_as_exceptions():
            for path in args.files:
                name = "stdin" if path == STDIN_PATH else path
                try:
                    result = fingerprint_source(path, settings=settings)
                except AfprintError as e:
                    logger.error(f"Failed to fingerprint {name}: {e}")
                    failures += 1
                    continue
                sys.stdout.write(format_result(result, print0=args.print0))
                sys.stdout.flush()
    except SignalReceived as e:
        logger.error(str(e))
        reraise(e.signum)

    return 1 if failures else 0


if __name__ == '__main__':
    sys.exit(main())
