import argparse
import logging
import os
import time

from . import __version__
from .client import build_translator, check_connection
from .config import BACKENDS, DEFAULT_CONFIG_PATH, SOURCES, load_settings
from .errors import ConfigError
from .files import remove_markers, repair_directory, translate_directory
from .logs import setup_logging
from .segmenter import translate_text

LOGGER = logging.getLogger(__name__)


def add_backend_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        help="translation backend (sugoi server or local transformers pipeline)",
    )
    parser.add_argument(
        "--url",
        action="append",
        dest="urls",
        help="translation server URL, repeatable; tried in order (default http://localhost:14366/)",
    )
    parser.add_argument("--timeout", type=float, help="per-request timeout in seconds")
    parser.add_argument("--model", help="model id or path for the pipeline backend")
    parser.add_argument("--device", help="device for the pipeline backend: cpu or cuda")
    parser.add_argument(
        "--line-delay",
        type=float,
        help="pause between lines of a multi-line string, in seconds",
    )


def add_file_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("root", help="directory containing localization JSON files")
    parser.add_argument("--include", help="filename glob to process (default *.json)")
    parser.add_argument(
        "--name-contains",
        help="only process files whose name contains this text (e.g. zh_Hans)",
    )
    parser.add_argument(
        "--tracking-file",
        help="tracking file path, relative to ROOT unless absolute",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loctranslate",
        description="Translate Japanese localization JSON files via a local translation server",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help="config file path (TOML, default: pyproject.toml)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    translate = subparsers.add_parser("translate", help="translate every localization file")
    add_file_arguments(translate)
    add_backend_arguments(translate)
    translate.add_argument(
        "--source",
        choices=SOURCES,
        help="translate string values in place, or translate keys into values",
    )
    translate.add_argument(
        "--reset",
        action="store_true",
        help="forget the tracking file and process every file again",
    )
    translate.add_argument(
        "--skip-check",
        action="store_true",
        help="do not run the connection test first",
    )

    fix = subparsers.add_parser(
        "fix-newlines",
        help="restore line breaks lost in earlier key-to-value translations",
    )
    add_file_arguments(fix)
    add_backend_arguments(fix)

    markers = subparsers.add_parser(
        "remove-markers",
        help="strip the legacy __translated__ marker from every file",
    )
    add_file_arguments(markers)

    check = subparsers.add_parser("check", help="test the translation backend")
    add_backend_arguments(check)

    text = subparsers.add_parser("text", help="translate one string and print it")
    text.add_argument("text", help="text to translate")
    add_backend_arguments(text)
    return parser


def collect_overrides(args: argparse.Namespace) -> dict:
    names = (
        "backend",
        "urls",
        "timeout",
        "model",
        "device",
        "line_delay",
        "include",
        "name_contains",
        "tracking_file",
        "source",
    )
    return {name: getattr(args, name, None) for name in names}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config, collect_overrides(args))
    except ConfigError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    if args.command == "remove-markers":
        if not os.path.isdir(args.root):
            LOGGER.error("Translation directory not found: %s", args.root)
            return 1
        summary = remove_markers(args.root, settings)
        LOGGER.info("Removed markers from %d files", summary.processed)
        return 1 if summary.failed else 0

    try:
        translator = build_translator(settings)
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2
    try:
        if args.command == "check":
            return 0 if check_connection(translator) else 1

        if args.command == "text":
            print(translate_text(args.text, translator, delay=settings.line_delay))
            return 0

        if not os.path.isdir(args.root):
            LOGGER.error("Translation directory not found: %s", args.root)
            return 1

        if args.command == "fix-newlines":
            summary = repair_directory(args.root, translator, settings)
            LOGGER.info("Fixed %d files", summary.processed)
            return 1 if summary.failed else 0

        if not args.skip_check and not check_connection(translator):
            LOGGER.error("Cannot reach the translation backend; is the server running at %s?", ", ".join(settings.urls))
            return 1

        started = time.monotonic()
        summary = translate_directory(args.root, translator, settings, reset=args.reset)
        LOGGER.info(
            "All files processed: %d translated, %d skipped, %d failed, %d strings (%.2fs)",
            summary.processed,
            summary.skipped,
            summary.failed,
            summary.strings,
            time.monotonic() - started,
        )
        for rel_path in summary.failures:
            LOGGER.warning("Failed: %s", rel_path)
        return 1 if summary.failed else 0
    finally:
        translator.close()


if __name__ == "__main__":
    raise SystemExit(main())
