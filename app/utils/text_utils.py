"""Text canonicalisation, term extraction, hashing and segmentation.

Pure functions only.  Every searchable field in the system is produced
here, so the same input always yields the same normalized form, terms,
hash and chunk boundaries.
"""

import hashlib
import html
import re
import unicodedata
from collections import Counter

# Combining marks left behind by NFD decomposition (accents, tones).
_DIACRITICS_RE = re.compile("[\u0300-\u036f]")

# A token is a decimal number ("3.14") or a run of word characters.
_TOKEN_RE = re.compile(r"\d+(?:\.\d+)+|\w+")

# Regex: sentence-ending punctuation followed by whitespace.
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")

# Regex: one or more blank lines separate paragraphs.
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")

# Regex: control characters except newline and tab.
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# Letters that do not decompose under NFD.
_SPECIAL_LETTERS: dict[str, str] = {
    "đ": "d",
    "ø": "o",
    "ł": "l",
    "ß": "ss",
}


# ------------------------------------------------------------------
# Normalization
# ------------------------------------------------------------------


def normalize(text: str | None) -> str:
    """Canonicalise *text* for substring and prefix matching.

    1. Lowercase.
    2. Strip diacritics (``Học máy`` → ``hoc may``).
    3. Replace punctuation with whitespace, keeping decimals intact.
    4. Collapse whitespace.
    """
    if not text:
        return ""

    lowered = text.lower()
    for letter, replacement in _SPECIAL_LETTERS.items():
        lowered = lowered.replace(letter, replacement)

    decomposed = unicodedata.normalize("NFD", lowered)
    stripped = unicodedata.normalize("NFC", _DIACRITICS_RE.sub("", decomposed))

    return " ".join(_TOKEN_RE.findall(stripped))


def extract_terms(text: str | None, min_length: int = 2) -> list[str]:
    """Return the distinct normalized terms of *text*.

    Terms shorter than *min_length* are discarded.  The result has set
    semantics; the list order (first occurrence) is incidental.
    """
    tokens = normalize(text).split()
    return list(dict.fromkeys(t for t in tokens if len(t) >= min_length))


def query_terms(query: str | None, min_length: int = 2) -> list[str]:
    """Terms to look for when matching *query*.

    A query made only of short tokens ("c", "ai") would extract nothing,
    so it falls back to its normalized tokens as-is.
    """
    terms = extract_terms(query, min_length)
    if terms:
        return terms
    return list(dict.fromkeys(normalize(query).split()))


def term_frequency(text: str | None, min_length: int = 2) -> dict[str, int]:
    """Count occurrences of every normalized term in *text*."""
    tokens = normalize(text).split()
    return dict(Counter(t for t in tokens if len(t) >= min_length))


def content_hash(text: str | None) -> str:
    """Stable, cheap digest of *text* used for change detection."""
    return hashlib.md5((text or "").encode("utf-8"), usedforsecurity=False).hexdigest()


def has_content_changed(text: str | None, previous_hash: str | None) -> bool:
    """True when *text* no longer matches *previous_hash* (or none exists)."""
    if not previous_hash:
        return True
    return content_hash(text) != previous_hash


def clean_text(text: str | None) -> str:
    """Remove control characters and trailing whitespace on each line.

    Paragraph breaks are preserved so segmentation can still see them.
    """
    if not text:
        return ""
    text = _CONTROL_CHARS_RE.sub("", text).replace("\r\n", "\n")
    lines = [line.rstrip() for line in text.split("\n")]
    return "\n".join(lines).strip()


def count_words(text: str | None) -> int:
    """Whitespace word count."""
    if not text or not text.strip():
        return 0
    return len(text.split())


# ------------------------------------------------------------------
# Segmentation
# ------------------------------------------------------------------


def split_into_chunks(text: str | None, chunk_size: int) -> list[str]:
    """Split *text* into ordered, non-overlapping chunks of ~*chunk_size* words.

    Sentences are never split unless a single sentence exceeds
    *chunk_size*, in which case it is force-split on whitespace.  A
    paragraph break closes the current chunk once it is at least half
    full.

    Returns an empty list if *text* is empty.
    """
    if not text or not text.strip():
        return []
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")

    chunks: list[str] = []
    current: list[str] = []
    current_count = 0

    def flush() -> None:
        nonlocal current, current_count
        if current:
            chunks.append(" ".join(current))
        current = []
        current_count = 0

    for paragraph in _PARAGRAPH_SPLIT_RE.split(text):
        sentences = [
            " ".join(s.split())
            for s in _SENTENCE_SPLIT_RE.split(paragraph)
            if s.strip()
        ]
        for sentence in sentences:
            words = sentence.split()

            if len(words) > chunk_size:
                flush()
                for i in range(0, len(words), chunk_size):
                    chunks.append(" ".join(words[i : i + chunk_size]))
                continue

            if current_count + len(words) > chunk_size:
                flush()

            current.append(sentence)
            current_count += len(words)

        if current_count >= chunk_size // 2:
            flush()

    flush()
    return chunks


# ------------------------------------------------------------------
# Fuzzy matching
# ------------------------------------------------------------------


def bounded_edit_distance(a: str, b: str, max_distance: int) -> int:
    """Levenshtein distance between *a* and *b*, capped at ``max_distance + 1``.

    Bails out as soon as every cell of a DP row exceeds the bound, so the
    cost for clearly different terms is a handful of row operations.
    """
    if a == b:
        return 0
    if abs(len(a) - len(b)) > max_distance:
        return max_distance + 1
    if len(a) > len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        row_min = i
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current[j] = min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            )
            row_min = min(row_min, current[j])
        if row_min > max_distance:
            return max_distance + 1
        previous = current

    return min(previous[-1], max_distance + 1)


def similarity(a: str, b: str, max_distance: int = 2) -> float:
    """Edit-distance similarity in [0, 1]; 0.0 when beyond *max_distance*."""
    if not a or not b:
        return 0.0
    distance = bounded_edit_distance(a, b, max_distance)
    if distance > max_distance:
        return 0.0
    return 1.0 - distance / max(len(a), len(b))


# ------------------------------------------------------------------
# Highlighting
# ------------------------------------------------------------------


def _terms_pattern(terms: list[str]) -> re.Pattern | None:
    cleaned = sorted({t for t in terms if t}, key=len, reverse=True)
    if not cleaned:
        return None
    alternation = "|".join(re.escape(t) for t in cleaned)
    return re.compile(rf"\b({alternation})", re.IGNORECASE)


def highlight_terms(text: str, terms: list[str], tag: str = "mark") -> str:
    """HTML-escape *text* and wrap every word-initial match of *terms* in *tag*."""
    escaped = html.escape(text or "")
    pattern = _terms_pattern(terms)
    if pattern is None:
        return escaped
    return pattern.sub(rf"<{tag}>\1</{tag}>", escaped)


def create_snippet(text: str, terms: list[str], length: int = 200) -> str:
    """Return a ~*length* character excerpt around the first term match, highlighted."""
    if not text:
        return ""

    flat = " ".join(text.split())
    pattern = _terms_pattern(terms)
    match = pattern.search(flat) if pattern else None

    if match is None or len(flat) <= length:
        start = 0
    else:
        start = max(0, match.start() - length // 4)
    end = min(len(flat), start + length)
    if end - start < length:
        start = max(0, end - length)

    excerpt = flat[start:end]
    snippet = highlight_terms(excerpt, terms)
    if start > 0:
        snippet = "..." + snippet
    if end < len(flat):
        snippet += "..."
    return snippet
