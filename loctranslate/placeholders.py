import enum
import logging
import re
from dataclasses import dataclass, field

LOGGER = logging.getLogger(__name__)

CANONICAL_USERNAME = "%usernameusernameuserna%"

BRACKET_PATTERN = re.compile(r"〈[^〈〉]*〉")
USERNAME_PATTERN = re.compile(r"[%％]\s*user[^%％\n]*?na\s*[%％]", re.IGNORECASE)

# Japanese honorific -> romanized suffix attached as "marker-suffix".
HONORIFICS = {
    "さん": "san",
    "くん": "kun",
    "君": "kun",
    "ちゃん": "chan",
    "さま": "sama",
    "様": "sama",
    "殿": "dono",
    "先輩": "senpai",
    "先生": "sensei",
}
_HONORIFIC_ALTERNATION = "|".join(
    re.escape(word) for word in sorted(HONORIFICS, key=len, reverse=True)
)
USERNAME_WITH_HONORIFIC_PATTERN = re.compile(
    rf"(?P<marker>{USERNAME_PATTERN.pattern})(?P<honorific>{_HONORIFIC_ALTERNATION})?",
    re.IGNORECASE,
)

MARKUP_PATTERN = re.compile(r"<[^<>\n]*>")
PERCENT_RUN_PATTERN = re.compile(r"[%％][^%％\s]*[%％]")
# What a backend tends to write in place of a username token: "User",
# "username", "user 0".
NAME_LIKE_PATTERN = re.compile(
    r"(?<![A-Za-z0-9_%％])_*user(?: ?name)?(?: ?(\d+))?_*(?![A-Za-z0-9_%％])",
    re.IGNORECASE,
)


class PlaceholderKind(enum.Enum):
    BRACKET = "TAG"
    USERNAME = "USER"

    def token(self, index: int) -> str:
        return f"___{self.value}{index}___"

    def fuzzy_pattern(self) -> re.Pattern:
        return re.compile(
            rf"(?:(?<=[A-Za-z0-9])_+ ?|(?<![A-Za-z0-9])(?:_+ ?)?)"
            rf"{self.value}( ?)(\d+)(?![0-9])(?: ?_+)?",
            re.IGNORECASE,
        )


_FUZZY_PATTERNS = {kind: kind.fuzzy_pattern() for kind in PlaceholderKind}


@dataclass(frozen=True)
class Placeholder:
    kind: PlaceholderKind
    index: int
    original: str
    honorific: str = ""

    @property
    def token(self) -> str:
        return self.kind.token(self.index)

    def replacement(self) -> str:
        if self.kind is PlaceholderKind.USERNAME:
            if self.honorific:
                return f"{CANONICAL_USERNAME}-{self.honorific}"
            return CANONICAL_USERNAME
        return self.original


@dataclass
class ProtectedText:
    text: str
    placeholders: dict[str, Placeholder] = field(default_factory=dict)


def protect(text: str) -> ProtectedText:
    """Shield username markers and bracket tags behind ASCII tokens.

    Usernames are replaced first (with any directly following honorific),
    then every 〈...〉 span, left to right. Token indexes follow scan order
    within each kind.
    """
    placeholders: dict[str, Placeholder] = {}
    counters = {kind: 0 for kind in PlaceholderKind}

    def add(kind: PlaceholderKind, original: str, honorific: str = "") -> str:
        placeholder = Placeholder(kind, counters[kind], original, honorific)
        counters[kind] += 1
        placeholders[placeholder.token] = placeholder
        return placeholder.token

    def username_replacer(match: re.Match) -> str:
        honorific = HONORIFICS.get(match.group("honorific") or "", "")
        return add(PlaceholderKind.USERNAME, match.group(0), honorific)

    def bracket_replacer(match: re.Match) -> str:
        return add(PlaceholderKind.BRACKET, match.group(0))

    text = USERNAME_WITH_HONORIFIC_PATTERN.sub(username_replacer, text)
    text = BRACKET_PATTERN.sub(bracket_replacer, text)
    return ProtectedText(text, placeholders)


def _enclosing_spans(pattern: re.Pattern, text: str) -> list[tuple[int, int]]:
    return [match.span() for match in pattern.finditer(text)]


def _inside(start: int, end: int, spans: list[tuple[int, int]]) -> bool:
    return any(span_start <= start and end <= span_end for span_start, span_end in spans)


def _overlaps(start: int, end: int, claimed: list[tuple[int, int, Placeholder]]) -> bool:
    return any(start < c_end and c_start < end for c_start, c_end, _ in claimed)


def _exact_matches(text: str, token: str) -> list[tuple[int, int]]:
    return [(m.start(), m.end()) for m in re.finditer(re.escape(token), text)]


def _fuzzy_matches(
    text: str,
    placeholder: Placeholder,
    markup_spans: list[tuple[int, int]],
    percent_spans: list[tuple[int, int]],
) -> list[tuple[int, int]]:
    found = []
    for match in _FUZZY_PATTERNS[placeholder.kind].finditer(text):
        if int(match.group(2)) != placeholder.index:
            continue
        candidate = match.group(0)
        # "tag 3" in plain prose is not a token; "User 0" stands for the player.
        if "_" not in candidate and match.group(1) and placeholder.kind is PlaceholderKind.BRACKET:
            continue
        start, end = match.span()
        if _inside(start, end, markup_spans) or _inside(start, end, percent_spans):
            continue
        found.append((start, end))
    return found


def _name_like_match(
    text: str,
    placeholder: Placeholder,
    guarded_spans: list[tuple[int, int]],
    claimed: list[tuple[int, int, Placeholder]],
) -> tuple[int, int] | None:
    for match in NAME_LIKE_PATTERN.finditer(text):
        if match.group(1) is not None and int(match.group(1)) != placeholder.index:
            continue
        start, end = match.span()
        if _inside(start, end, guarded_spans) or _overlaps(start, end, claimed):
            continue
        return start, end
    return None


def _is_word_char(char: str) -> bool:
    return char.isascii() and char.isalnum()


def restore(text: str, placeholders: dict[str, Placeholder]) -> str:
    """Put protected spans back into a translated string.

    Tokens are claimed from the highest index down, exact matches first and
    fuzzy matches only for tokens the translator mangled. Unmatched tokens
    and orphaned entries are left alone.
    """
    if not placeholders:
        return text

    markup_spans = _enclosing_spans(MARKUP_PATTERN, text)
    percent_spans = _enclosing_spans(PERCENT_RUN_PATTERN, text)
    claimed: list[tuple[int, int, Placeholder]] = []

    ordered = sorted(
        placeholders.values(),
        key=lambda p: (p.index, p.kind is PlaceholderKind.BRACKET),
        reverse=True,
    )
    orphans = []
    for placeholder in ordered:
        spans = _exact_matches(text, placeholder.token)
        if not spans:
            spans = _fuzzy_matches(text, placeholder, markup_spans, percent_spans)
        spans = [span for span in spans if not _overlaps(*span, claimed)]
        if not spans:
            orphans.append(placeholder)
            continue
        claimed.extend((start, end, placeholder) for start, end in spans)

    missing = []
    for placeholder in sorted(orphans, key=lambda p: p.index):
        span = None
        if placeholder.kind is PlaceholderKind.USERNAME:
            span = _name_like_match(text, placeholder, markup_spans + percent_spans, claimed)
        if span is None:
            missing.append(placeholder.token)
            continue
        claimed.append((*span, placeholder))

    if missing:
        LOGGER.warning("Placeholders lost in translation: %s", ", ".join(missing))

    parts: list[str] = []
    cursor = 0
    for start, end, placeholder in sorted(claimed, key=lambda item: item[0]):
        parts.append(text[cursor:start])
        before = text[start - 1:start]
        if before and _is_word_char(before):
            parts.append(" ")
        parts.append(placeholder.replacement())
        after = text[end:end + 1]
        if after and _is_word_char(after):
            parts.append(" ")
        cursor = end
    parts.append(text[cursor:])
    return "".join(parts)


def find_leftover_tokens(text: str) -> list[str]:
    return re.findall(r"___(?:TAG|USER)\d+___", text)
