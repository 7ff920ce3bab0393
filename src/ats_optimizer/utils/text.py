"""Text cleanup shared by the parser stage and the matcher."""

from __future__ import annotations

import re

_SMART_QUOTES = str.maketrans({
    "\u2018": "'",
    "\u2019": "'",
    "\u201c": '"',
    "\u201d": '"',
    "\u2013": "-",
    "\u2014": "-",
    "\u2026": "...",
})

# Keep characters that carry meaning in technology names (c++, c#, node.js, ci/cd)
_NON_KEY_CHARS = re.compile(r"[^\w\s\-+#./]")


def prepare_for_parsing(text: str) -> str:
    """Clean raw document text before extraction.

    Handles: BOM and zero-width characters, smart punctuation, control
    characters, inconsistent bullets, and runs of blank lines.
    """
    if not text:
        return ""
    text = text.lstrip("\ufeff")
    text = re.sub(r"[\u200b\u200c\u200d\u00ad\u2060\ufeff]", "", text)
    text = text.translate(_SMART_QUOTES)
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\t", " ")
    text = re.sub(r"[\x00-\x09\x0b-\x1f\x7f-\x9f]", "", text)
    text = re.sub(r"^(\s*)[●•◦◆■▪★○]\s*", r"\1- ", text, flags=re.MULTILINE)
    lines = [re.sub(r" {2,}", " ", line).rstrip() for line in text.split("\n")]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def normalize_text(text: str) -> str:
    """Lowercased, punctuation-light key used to compare elements."""
    if not text:
        return ""
    text = text.translate(_SMART_QUOTES).lower().strip()
    text = _NON_KEY_CHARS.sub("", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip().rstrip(".")


def tokenize(text: str) -> list[str]:
    """Word tokens longer than two characters."""
    return [t for t in re.split(r"[^a-z0-9+#]+", text.lower()) if len(t) > 2]


def count_mentions(haystack: str, needle: str) -> int:
    """Case-insensitive whole-phrase occurrences of ``needle`` in ``haystack``."""
    if not needle or not haystack:
        return 0
    pattern = r"(?<!\w)" + re.escape(needle.lower()) + r"(?!\w)"
    return len(re.findall(pattern, haystack.lower()))
