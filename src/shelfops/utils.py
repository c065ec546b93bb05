from __future__ import annotations

import html as html_lib
import re
import unicodedata
from html.parser import HTMLParser
from typing import Optional

from markupsafe import Markup, escape

_TAG_RE = re.compile(r"<[^>]*>")
_SCRIPT_RE = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_QUOTED_RE = re.compile(r'"(.*?)"')

# Markup rules for saved page HTML
_NAME_RE = re.compile(r"^[a-z][a-z0-9:_.-]*$")
_DROP_CONTENT = frozenset({"script", "style"})
_DROP_TAGS = frozenset({"base", "embed", "frame", "frameset", "link", "meta", "object"})
_DROP_ATTRS = frozenset({"srcdoc"})
_URL_ATTRS = frozenset({"action", "background", "data", "formaction", "href", "poster", "src", "xlink:href"})
_UNSAFE_URL_RE = re.compile(r"^(javascript:|vbscript:|data:text/html)", re.IGNORECASE)
_CONTROL_RE = re.compile(r"[\x00-\x20]+")


class _HtmlCleaner(HTMLParser):
    """Re-emits parsed markup without scripts, event handlers or script URLs."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._skip_depth = 0

    def _attrs(self, attrs: list[tuple[str, Optional[str]]]) -> str:
        out = []
        for name, value in attrs:
            if not _NAME_RE.match(name) or name.startswith("on") or name in _DROP_ATTRS:
                continue
            if value is None:
                out.append(f" {name}")
                continue
            if name in _URL_ATTRS and _UNSAFE_URL_RE.match(_CONTROL_RE.sub("", value)):
                continue
            out.append(f' {name}="{escape(value)}"')
        return "".join(out)

    def _keeps(self, tag: str) -> bool:
        return not self._skip_depth and bool(_NAME_RE.match(tag)) and tag not in _DROP_TAGS

    def handle_starttag(self, tag, attrs):
        if tag in _DROP_CONTENT:
            self._skip_depth += 1
        elif self._keeps(tag):
            self.parts.append(f"<{tag}{self._attrs(attrs)}>")

    def handle_startendtag(self, tag, attrs):
        if tag not in _DROP_CONTENT and self._keeps(tag):
            self.parts.append(f"<{tag}{self._attrs(attrs)} />")

    def handle_endtag(self, tag):
        if tag in _DROP_CONTENT:
            self._skip_depth = max(self._skip_depth - 1, 0)
        elif self._keeps(tag):
            self.parts.append(f"</{tag}>")

    def handle_data(self, data):
        if not self._skip_depth:
            self.parts.append(str(escape(data)))


def slugify_title(title: str) -> str:
    """
    Convert a title to a URL-safe slug.

    - Normalize Unicode to NFKD form
    - Convert to lowercase
    - Replace spaces and special characters with hyphens
    - Allow only alphanumeric and hyphen
    - Remove consecutive hyphens
    - Strip leading/trailing hyphens
    """
    # Normalize Unicode characters
    normalized = unicodedata.normalize("NFKD", title or "")

    # Encode to ASCII, ignoring non-ASCII characters
    ascii_str = normalized.encode("ascii", "ignore").decode("ascii")

    # Convert to lowercase
    lower = ascii_str.lower()

    # Replace any non-alphanumeric characters with hyphen
    slug = re.sub(r"[^a-z0-9]+", "-", lower)

    # Remove consecutive hyphens
    slug = re.sub(r"-+", "-", slug)

    # Strip leading/trailing hyphens
    slug = slug.strip("-")

    return slug


def strip_tags(content: str) -> str:
    """
    Extract plain text from page HTML.

    Tags become spaces so adjacent block elements do not run together,
    entities are decoded and whitespace is collapsed.
    """
    text = _SCRIPT_RE.sub(" ", content or "")
    text = _TAG_RE.sub(" ", text)
    text = html_lib.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


def clean_html(content: str) -> str:
    """
    Rebuild page HTML from its parsed tokens.

    <script> and <style> elements are dropped with their content, as are
    on* attributes and javascript: URLs. Text and attribute values are
    re-escaped, so anything the parser does not read as a tag stays text.
    """
    cleaner = _HtmlCleaner()
    cleaner.feed(content or "")
    cleaner.close()
    return "".join(cleaner.parts)


def excerpt(text: str, length: int = 100) -> str:
    """Cut `text` to `length` characters, ending in '...' when shortened."""
    text = text or ""
    if len(text) > length:
        return text[: length - 3] + "..."
    return text


def prepare_search_terms(term: str) -> list[str]:
    """
    Split a search string into terms.

    Double-quoted phrases are kept together as one exact term; the rest is
    split on whitespace.

    >>> prepare_search_terms('cats "big dogs" birds')
    ['big dogs', 'cats', 'birds']
    """
    term = (term or "").strip()
    if not term:
        return []

    phrases = [p.strip() for p in _QUOTED_RE.findall(term) if p.strip()]
    remainder = _QUOTED_RE.sub(" ", term).replace('"', " ")
    words = [w for w in remainder.split() if w]

    terms: list[str] = []
    for t in phrases + words:
        if t not in terms:
            terms.append(t)
    return terms


def highlight(text: str, term: str) -> Markup:
    """
    Escape `text` and wrap each case-insensitive match of any word in `term`
    with <span class="highlight">.
    """
    text = text or ""
    words = [w for w in (term or "").strip().split(" ") if w.strip('"')]
    if not words:
        return escape(text)

    alternatives = sorted({re.escape(w.strip('"')) for w in words}, key=len, reverse=True)
    pattern = re.compile("|".join(alternatives), re.IGNORECASE | re.UNICODE)

    # Match on the raw text; each piece is escaped on its own
    parts = []
    last = 0
    for match in pattern.finditer(text):
        parts.append(escape(text[last : match.start()]))
        parts.append(Markup('<span class="highlight">{}</span>').format(match.group(0)))
        last = match.end()
    parts.append(escape(text[last:]))
    return Markup("").join(parts)
