import logging
import time

from .errors import TranslationError
from .placeholders import find_leftover_tokens, protect, restore
from .postprocess import markup_to_newlines, normalize

LOGGER = logging.getLogger(__name__)


def translate_unit(text: str, translator) -> str:
    if not text or not text.strip():
        return text
    protected = protect(text)
    try:
        translated = translator.lookup(protected.text)
    except TranslationError as exc:
        LOGGER.warning("Translation failed, keeping original text: %s", exc)
        return text
    restored = restore(translated, protected.placeholders)
    leftovers = find_leftover_tokens(restored)
    if leftovers:
        LOGGER.warning("Unresolved placeholders in %r: %s", restored, ", ".join(leftovers))
    return normalize(restored)


def _single_line(text: str) -> str:
    return " ".join(part.strip() for part in text.splitlines() if part.strip())


def translate_text(text: str, translator, delay: float = 0.1, sleep=time.sleep) -> str:
    """Translate a string line by line, keeping every newline in place."""
    if "\n" not in text:
        translated = translate_unit(text, translator)
        return translated if "\n" not in translated else _single_line(translated)

    out = []
    calls = 0
    for segment in text.split("\n"):
        if not segment.strip():
            out.append(segment)
            continue
        if calls and delay > 0:
            sleep(delay)
        translated = translate_unit(segment.strip(), translator)
        out.append(_single_line(translated) if "\n" in translated else translated)
        calls += 1
    return "\n".join(out)


def repair_newlines(
    source: str,
    translated: str,
    translator,
    delay: float = 0.1,
    sleep=time.sleep,
) -> tuple[str, bool]:
    if "\n" not in source:
        return translated, False
    fixed = markup_to_newlines(translated)
    if "\n" not in fixed:
        LOGGER.info("Re-translating line by line: %r", source[:50])
        fixed = translate_text(source, translator, delay=delay, sleep=sleep)
    return fixed, fixed != translated
