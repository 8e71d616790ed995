"""
Email body cleanup ahead of candidate extraction.

`preprocess_email` turns a plain/HTML body pair into compact text with quoted replies,
signatures and legal footers cut off. Running it on its own output returns the same text.
"""

from __future__ import annotations

import re
from html import unescape

_SHORT_PLAIN_CHARS = 200
_HTML_PREFERENCE_RATIO = 1.5

_LOOKS_LIKE_HTML_RE = re.compile(
    r"(?is)</?(html|body|head|div|p|br|table|tr|td|th|span|a|img|font|center|ul|li|h[1-6])"
    r"(\s[^>]*)?/?>"
)

_BLOCK_TAG_RE = re.compile(r"(?i)</?(p|div|h[1-6]|li|tr|br|hr|table|tbody|thead|ul|ol)\b[^>]*>")
_CELL_CLOSE_RE = re.compile(r"(?i)</t[dh]\s*>")

# A line matching any of these starts the part of the message we drop.
_CUTOFF_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, re.I)
    for p in (
        # reply chains
        r"^on .{3,200} wrote:$",
        r"^-{2,}\s*original message\s*-{2,}$",
        r"^-{2,}\s*forwarded message\s*-{2,}$",
        r"^begin forwarded message:?$",
        r"^sent from my (iphone|ipad|android|mobile device|phone)",
        # legal and list boilerplate
        r"^this (email|message|communication) (is|was) (intended|sent|confidential)",
        r"^if you (have )?received this (email|message) in error",
        r"^please do not reply to this (email|message)",
        r"^this is an automated (message|email|notification)",
        r"^(unsubscribe|manage (your )?preferences|email preferences)",
        r"^to stop receiving these emails",
        r"^you are receiving this (email|message) because",
        r"^(copyright \d{4}|\u00a9\s*\d{4})",
        r"^all rights reserved",
        r"^(privacy policy|terms (of|and) (use|service))",
        # signatures
        r"^(regards|sincerely|thanks|best|cheers),?$",
        r"^(thank you|many thanks),?$",
        r"^--\s*$",
        r"^_{3,}$",
        r"^-{3,}$",
        # contact and social blocks
        r"^\d{1,5} [a-z]+ (street|st|avenue|ave|road|rd|drive|dr|lane|ln)\b",
        r"^(phone|tel|fax|mobile|cell): ?[\d\-\(\)\+]",
        r"^(follow us|connect with us|find us on)",
        r"^(facebook|twitter|instagram|linkedin|youtube)\b",
    )
]


def html_to_text(html: str) -> str:
    if not html:
        return ""
    text = re.sub(r"(?is)<(script|style|head)\b.*?>.*?</\1\s*>", "", html)
    text = re.sub(r"(?s)<!--.*?-->", "", text)
    text = _BLOCK_TAG_RE.sub("\n", text)
    text = _CELL_CLOSE_RE.sub("  ", text)
    text = re.sub(r"(?s)<[^>]+>", "", text)
    text = unescape(text).replace("\xa0", " ").replace("\u202f", " ")
    lines = [re.sub(r"[ \t]+", " ", ln).strip() for ln in text.splitlines()]
    return "\n".join(lines).strip()


def _looks_like_html(text: str) -> bool:
    return bool(_LOOKS_LIKE_HTML_RE.search(text))


def _choose_source(body_plain: str | None, body_html: str | None) -> tuple[str, bool]:
    """Return the body to use and whether it was already converted from HTML."""
    plain = (body_plain or "").strip()
    if not body_html:
        return plain, False
    if not plain:
        return html_to_text(body_html), True
    if len(plain) < _SHORT_PLAIN_CHARS:
        html_text = html_to_text(body_html)
        if len(html_text) > len(plain) * _HTML_PREFERENCE_RATIO:
            return html_text, True
    return plain, False


def _is_cutoff_line(line: str) -> bool:
    return any(p.search(line) for p in _CUTOFF_PATTERNS)


def clean_text(text: str) -> str:
    if not text:
        return ""
    if _looks_like_html(text):
        text = html_to_text(text)
    return _strip_noise(text)


def _strip_noise(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = text.replace("\xa0", " ").replace("\u202f", " ").replace("\u200b", "")

    kept: list[str] = []
    seen_content = False
    for raw in text.split("\n"):
        line = re.sub(r"[ \t\f\v]+", " ", raw).strip()
        if line.startswith(">"):
            continue
        if seen_content and _is_cutoff_line(line):
            break
        if line:
            seen_content = True
        if not line and (not kept or not kept[-1]):
            continue
        kept.append(line)

    return "\n".join(kept).strip()


def preprocess_email(body_plain: str | None, body_html: str | None) -> str:
    """Pick the richer body, then strip markup, quoted replies and footers."""
    text, from_html = _choose_source(body_plain, body_html)
    # Already decoded: escaped markup in the HTML stays literal.
    return _strip_noise(text) if from_html else clean_text(text)


def extract_context(text: str, position: int, window: int = 80) -> str:
    half = window // 2
    start = max(0, position - half)
    end = min(len(text), position + half)
    snippet = re.sub(r"\s+", " ", text[start:end]).strip()
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet
