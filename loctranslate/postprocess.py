import re

from .placeholders import CANONICAL_USERNAME, USERNAME_PATTERN

NOISE_TAG_PATTERN = re.compile(r"<br\s*/?>|</?b>", re.IGNORECASE)
LEFTOVER_USERNAME_TOKEN_PATTERN = re.compile(r"_{2,} ?user ?\d+ ?_{2,}", re.IGNORECASE)
HONORIFIC_WORDS = ("senpai", "sensei", "sama", "dono", "chan", "san", "kun")

_MARKER = re.escape(CANONICAL_USERNAME)
HONORIFIC_PATTERN = re.compile(
    rf"({_MARKER})({'|'.join(HONORIFIC_WORDS)})(?![A-Za-z])",
    re.IGNORECASE,
)
GLUED_BEFORE_PATTERN = re.compile(rf"(?<=[A-Za-z0-9])({_MARKER})")
GLUED_AFTER_PATTERN = re.compile(rf"({_MARKER})(?=[A-Za-z0-9])")

QUOTES = str.maketrans({
    "‘": "'",  # LEFT SINGLE QUOTATION MARK
    "’": "'",  # RIGHT SINGLE QUOTATION MARK
    "‚": "'",  # SINGLE LOW-9 QUOTATION MARK
    "‛": "'",  # SINGLE HIGH-REVERSED-9 QUOTATION MARK
    "′": "'",  # PRIME
    "＇": "'",  # FULLWIDTH APOSTROPHE
    "“": '"',  # LEFT DOUBLE QUOTATION MARK
    "”": '"',  # RIGHT DOUBLE QUOTATION MARK
    "„": '"',  # DOUBLE LOW-9 QUOTATION MARK
    "‟": '"',  # DOUBLE HIGH-REVERSED-9 QUOTATION MARK
    "″": '"',  # DOUBLE PRIME
    "＂": '"',  # FULLWIDTH QUOTATION MARK
})


def strip_noise_tags(text: str) -> str:
    return NOISE_TAG_PATTERN.sub("", text)


def canonicalize_username(text: str) -> str:
    text = USERNAME_PATTERN.sub(CANONICAL_USERNAME, text)
    return LEFTOVER_USERNAME_TOKEN_PATTERN.sub(CANONICAL_USERNAME, text)


def attach_honorifics(text: str) -> str:
    return HONORIFIC_PATTERN.sub(lambda m: f"{m.group(1)}-{m.group(2).lower()}", text)


def space_username(text: str) -> str:
    text = GLUED_BEFORE_PATTERN.sub(r" \1", text)
    return GLUED_AFTER_PATTERN.sub(r"\1 ", text)


def normalize_quotes(text: str) -> str:
    return text.translate(QUOTES)


def normalize(text: str) -> str:
    """Clean up a restored translation.

    Noise tags go first, then username variants are collapsed, honorifics
    attached, the marker spaced from neighbouring words, and curly quotes
    flattened to ASCII.
    """
    text = strip_noise_tags(text)
    text = canonicalize_username(text)
    text = attach_honorifics(text)
    text = space_username(text)
    return normalize_quotes(text)


def markup_to_newlines(text: str) -> str:
    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<b>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</b>", "", text, flags=re.IGNORECASE)
    return re.sub(r"\n\s*\n", "\n", text)
