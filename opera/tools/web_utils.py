from __future__ import annotations

import re
from urllib.parse import urlparse

NON_HTML_EXTENSIONS = (
    ".pdf",
    ".doc",
    ".docx",
    ".xls",
    ".xlsx",
    ".zip",
    ".rar",
    ".mp4",
    ".avi",
    ".mov",
)


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except ValueError:
        return False


def is_scrapeable(url: str) -> bool:
    """True when the URL looks like a fetchable HTML page."""
    if not isinstance(url, str) or not is_valid_url(url.strip()):
        return False
    path = urlparse(url.strip()).path.lower()
    return not path.endswith(NON_HTML_EXTENSIONS)


def normalize_text(text: str) -> str:
    text = text.replace("\xa0", " ")
    text = re.sub(r"\r\n?", "\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def context_snippet(text: str, term: str, length: int = 150) -> str:
    """Return the text around the first match of ``term``.

    Half of ``length`` is taken on each side of the match; cut ends get "...".
    """
    if not text or not term:
        return ""
    index = text.lower().find(term.lower())
    if index == -1:
        return ""
    half = length // 2
    start = max(0, index - half)
    end = min(len(text), index + len(term) + half)
    snippet = text[start:end]
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet
