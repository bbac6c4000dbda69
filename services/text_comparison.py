"""
Text comparison service.

Grades a recall attempt against the reference text of a chunk:
  - normalize:  trim, collapse whitespace, fold full-width ASCII, lower-case
  - distance:   Levenshtein distance over normalized text
  - accuracy:   0-100 similarity derived from the distance
  - diff:       greedy four-way character diff (correct / incorrect / missing / extra)

Also hosts the small text helpers used when building materials: line hints,
automatic chunk splitting and default chunk names.

Distance is quadratic in the input lengths; callers cap input size at the HTTP layer.
"""

import logging
import math
import re

from models.schemas import ComparisonResult, TextDiff

logger = logging.getLogger(__name__)

PASS_THRESHOLD = 95.0
LOOKAHEAD = 3
HINT_LENGTH = 8

# U+FF01..U+FF5E mirror ASCII "!".."~" at a fixed offset
FULLWIDTH_OFFSET = 0xFEE0
_FULLWIDTH_RE = re.compile("[！-～]")

# Whitespace as ECMAScript defines it for \s and trim(): includes U+FEFF,
# excludes U+0085 and U+001C..U+001F, which Python's str.isspace accepts
WHITESPACE = (
    "\t\n\v\f\r \u00a0\u1680"
    + "".join(map(chr, range(0x2000, 0x200B)))
    + "\u2028\u2029\u202f\u205f\u3000\ufeff"
)
_WS = "[" + re.escape(WHITESPACE) + "]"
_WHITESPACE_RE = re.compile(_WS + "+")

# Delimiters tried in order when splitting pasted text: "1-2", "(3)", "（3）", blank line
_CHUNK_DELIMITERS = [
    re.compile(r"[0-9]+[-－][0-9]+"),
    re.compile(r"\([0-9]+\)"),
    re.compile(r"（[0-9]+）"),
    re.compile("\n" + _WS + "*\n"),
]
_BLANK_LINE_RE = _CHUNK_DELIMITERS[-1]
_NUMBERING_RE = re.compile(r"^([0-9]+[-－][0-9]+|\([0-9]+\)|（[0-9]+）)")

CHUNK_NAME_PREFIX = "チャンク"


def round2(value: float) -> float:
    """Round half-up to two decimals (non-negative values)."""
    return math.floor(value * 100 + 0.5) / 100


def normalize(text: str) -> str:
    text = text.strip(WHITESPACE)
    text = _WHITESPACE_RE.sub(" ", text)
    text = _FULLWIDTH_RE.sub(lambda m: chr(ord(m.group()) - FULLWIDTH_OFFSET), text)
    return text.lower()


def distance(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(a) + 1))
    for j, cb in enumerate(b, start=1):
        curr = [j]
        for i, ca in enumerate(a, start=1):
            cost = 0 if ca == cb else 1
            curr.append(min(curr[i - 1] + 1, prev[i] + 1, prev[i - 1] + cost))
        prev = curr
    return prev[-1]


def accuracy(original: str, attempt: str) -> float:
    a = normalize(original)
    b = normalize(attempt)

    if a == b:
        return 100.0

    longer = max(len(a), len(b))
    if longer == 0:
        return 100.0

    dist = distance(a, b)
    return round2(max(0.0, (longer - dist) / longer * 100))


def diff(original: str, attempt: str) -> TextDiff:
    """
    Classify characters of the normalized texts in one left-to-right pass.

    On a mismatch, look up to LOOKAHEAD characters ahead: first in the input
    (extra characters typed), then in the original (characters skipped).
    Without a repair the original character counts as incorrect. This is a
    display heuristic; its error count need not equal the edit distance.
    """
    orig = normalize(original)
    typed = normalize(attempt)

    correct: list[str] = []
    incorrect: list[str] = []
    missing: list[str] = []
    extra: list[str] = []

    i = j = 0
    while i < len(orig) or j < len(typed):
        if i < len(orig) and j < len(typed):
            if orig[i] == typed[j]:
                correct.append(orig[i])
                i += 1
                j += 1
                continue

            k = _find_ahead(typed, j, orig[i])
            if k:
                extra.append(typed[j:j + k])
                j += k
                continue

            k = _find_ahead(orig, i, typed[j])
            if k:
                missing.append(orig[i:i + k])
                i += k
                continue

            incorrect.append(orig[i])
            i += 1
            j += 1
        elif i < len(orig):
            missing.append(orig[i:])
            i = len(orig)
        else:
            extra.append(typed[j:])
            j = len(typed)

    return TextDiff(
        correct="".join(correct),
        incorrect="".join(incorrect),
        missing="".join(missing),
        extra="".join(extra),
    )


def _find_ahead(text: str, start: int, ch: str) -> int:
    """Smallest offset k in 1..LOOKAHEAD with text[start + k] == ch, else 0."""
    for k in range(1, LOOKAHEAD + 1):
        if start + k >= len(text):
            break
        if text[start + k] == ch:
            return k
    return 0


def compare(original: str, attempt: str) -> ComparisonResult:
    score = accuracy(original, attempt)
    result = ComparisonResult(
        accuracy=score,
        diff=diff(original, attempt),
        is_match=score >= PASS_THRESHOLD,
    )
    logger.debug(
        "Compared %d chars against %d chars: accuracy=%.2f match=%s",
        len(original), len(attempt), score, result.is_match,
    )
    return result


def line_hints(text: str) -> str:
    """First HINT_LENGTH characters of every trimmed line; blank lines stay blank."""
    return "\n".join(line.strip(WHITESPACE)[:HINT_LENGTH] for line in text.split("\n"))


def split_into_chunks(text: str) -> list[str]:
    chunks: list[str] = []
    for pattern in _CHUNK_DELIMITERS:
        if len(pattern.findall(text)) > 1:
            chunks = pattern.split(text)
            break

    if not chunks:
        chunks = [c for c in _BLANK_LINE_RE.split(text) if c.strip(WHITESPACE)]

    if not chunks:
        chunks = [text]

    return [c.strip(WHITESPACE) for c in chunks if c.strip(WHITESPACE)]


def chunk_name(index: int, content: str) -> str:
    first_line = content.split("\n")[0].strip(WHITESPACE)
    numbering = _NUMBERING_RE.match(first_line)
    if numbering:
        return f"{CHUNK_NAME_PREFIX}{index + 1}: {numbering.group(1)}"

    label = first_line[:HINT_LENGTH]
    if len(first_line) > HINT_LENGTH:
        label += "..."
    return f"{CHUNK_NAME_PREFIX}{index + 1}: {label}"
