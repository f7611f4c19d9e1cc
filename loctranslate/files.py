import fnmatch
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from .config import Settings
from .errors import TranslationError
from .logs import working_on
from .segmenter import repair_newlines, translate_text
from .tracking import TrackingFile

LOGGER = logging.getLogger(__name__)

LEGACY_MARKER = "__translated__"


@dataclass
class RunSummary:
    processed: int = 0
    skipped: int = 0
    strings: int = 0
    failures: list[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


class Throttle:
    """Pause briefly after every ``every`` translated strings."""

    def __init__(self, every: int, delay: float, sleep: Callable[[float], None] = time.sleep) -> None:
        self.every = every
        self.delay = delay
        self.sleep = sleep
        self.count = 0

    def tick(self) -> None:
        self.count += 1
        if self.every > 0 and self.delay > 0 and self.count % self.every == 0:
            self.sleep(self.delay)


def discover_files(
    root: str,
    include: str = "*.json",
    name_contains: str = "",
    exclude: tuple[str, ...] = (),
) -> list[str]:
    excluded = {os.path.abspath(path) for path in exclude}
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            if not fnmatch.fnmatch(filename, include):
                continue
            if name_contains and name_contains not in filename:
                continue
            path = os.path.join(dirpath, filename)
            if os.path.abspath(path) in excluded:
                continue
            found.append(path)
    return found


def relative_key(path: str, root: str) -> str:
    return os.path.relpath(path, root).replace(os.sep, "/")


def resolve_tracking_path(root: str, tracking_file: str) -> str:
    if os.path.isabs(tracking_file):
        return tracking_file
    return os.path.join(root, tracking_file)


def load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8-sig") as f:
        return json.load(f)


def write_json(path: str, data: Any) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=4)
        f.write("\n")


def strip_marker(data: Any) -> tuple[Any, bool]:
    if isinstance(data, dict) and LEGACY_MARKER in data:
        return {k: v for k, v in data.items() if k != LEGACY_MARKER}, True
    return data, False


def is_marked_done(data: Any) -> bool:
    return isinstance(data, dict) and LEGACY_MARKER in data


def translate_structure(obj: Any, translate: Callable[[str], str], source: str = "value") -> Any:
    """Rebuild a JSON value with every string leaf translated.

    With ``source="key"`` a string value is replaced by the translation of
    its own key; list items are always translated from themselves.
    """
    if isinstance(obj, dict):
        result = {}
        for key, value in obj.items():
            if isinstance(value, (dict, list)):
                result[key] = translate_structure(value, translate, source)
            elif isinstance(value, str):
                result[key] = translate(key if source == "key" else value)
            else:
                result[key] = value
        return result
    if isinstance(obj, list):
        return [
            translate(item) if isinstance(item, str) else translate_structure(item, translate, source)
            for item in obj
        ]
    return obj


def translate_file(
    path: str,
    translator,
    settings: Settings,
    throttle: Throttle,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    data = load_json(path)
    if is_marked_done(data):
        data, _ = strip_marker(data)
        write_json(path, data)
        LOGGER.info("Already translated (legacy marker): %s", path)
        return 0

    count = 0
    failures_before = translator.failures

    def translate(text: str) -> str:
        nonlocal count
        translated = translate_text(text, translator, delay=settings.line_delay, sleep=sleep)
        check_backend(translator, failures_before, text)
        count += 1
        throttle.tick()
        return translated

    # A backend failure aborts the file before anything is written.
    write_json(path, translate_structure(data, translate, settings.source))
    return count


def check_backend(translator, failures_before: int, text: str) -> None:
    if translator.failures > failures_before:
        raise TranslationError(f"backend failed on {text[:50]!r}; file left for the next run")


def translate_directory(
    root: str,
    translator,
    settings: Settings,
    reset: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> RunSummary:
    tracking = TrackingFile(resolve_tracking_path(root, settings.tracking_file))
    if reset:
        tracking.reset()
    tracking.load()
    files = discover_files(
        root,
        settings.include,
        settings.name_contains,
        exclude=(tracking.path, f"{tracking.path}.tmp"),
    )
    LOGGER.info("Found %d localization files under %s", len(files), root)

    summary = RunSummary()
    throttle = Throttle(settings.throttle_every, settings.throttle_delay, sleep)
    for path in files:
        rel_path = relative_key(path, root)
        if tracking.is_done(rel_path):
            summary.skipped += 1
            LOGGER.debug("Skipping completed file: %s", rel_path)
            continue
        started = time.monotonic()
        LOGGER.info("Processing %s...", rel_path)
        with working_on(rel_path):
            try:
                count = translate_file(path, translator, settings, throttle, sleep)
            except (OSError, ValueError, TranslationError) as exc:
                LOGGER.error("Error processing %s: %s", rel_path, exc)
                summary.failures.append(rel_path)
                continue
        tracking.mark_done(rel_path)
        summary.processed += 1
        summary.strings += count
        LOGGER.info("Completed %s (%d strings, %.2fs)", rel_path, count, time.monotonic() - started)
    return summary


def repair_file(
    path: str,
    translator,
    settings: Settings,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    data = load_json(path)
    if not isinstance(data, dict):
        return 0
    fixed = 0
    failures_before = translator.failures
    result = {}
    for key, value in data.items():
        if key != LEGACY_MARKER and isinstance(value, str) and "\n" in key:
            value, changed = repair_newlines(key, value, translator, delay=settings.line_delay, sleep=sleep)
            check_backend(translator, failures_before, key)
            if changed:
                fixed += 1
        result[key] = value
    if fixed:
        write_json(path, result)
    return fixed


def repair_directory(
    root: str,
    translator,
    settings: Settings,
    sleep: Callable[[float], None] = time.sleep,
) -> RunSummary:
    summary = RunSummary()
    tracking_path = resolve_tracking_path(root, settings.tracking_file)
    for path in discover_files(root, settings.include, settings.name_contains, exclude=(tracking_path,)):
        rel_path = relative_key(path, root)
        with working_on(rel_path):
            try:
                fixed = repair_file(path, translator, settings, sleep)
            except (OSError, ValueError, TranslationError) as exc:
                LOGGER.error("Error fixing %s: %s", rel_path, exc)
                summary.failures.append(rel_path)
                continue
        if fixed:
            summary.processed += 1
            summary.strings += fixed
            LOGGER.info("Fixed: %s (%d strings)", rel_path, fixed)
        else:
            summary.skipped += 1
    return summary


def remove_markers(root: str, settings: Settings) -> RunSummary:
    summary = RunSummary()
    tracking_path = resolve_tracking_path(root, settings.tracking_file)
    for path in discover_files(root, settings.include, settings.name_contains, exclude=(tracking_path,)):
        rel_path = relative_key(path, root)
        try:
            data, removed = strip_marker(load_json(path))
            if removed:
                write_json(path, data)
        except (OSError, ValueError) as exc:
            LOGGER.error("Error processing %s: %s", rel_path, exc)
            summary.failures.append(rel_path)
            continue
        if removed:
            summary.processed += 1
            if summary.processed % 10 == 0:
                LOGGER.info("Removed markers from %d files...", summary.processed)
        else:
            summary.skipped += 1
    return summary
