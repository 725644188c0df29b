import html
import re

_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def strip_tags(text: str) -> str:
    """Remove every markup tag and decode entities, leaving inline text only."""
    if not text:
        return ""
    return html.unescape(_TAG_RE.sub("", text)).strip()


def html_to_text(text: str) -> str:
    """Convert presentational markup to plain text with line breaks kept."""
    if not text:
        return ""
    cleaned = re.sub(r"</?div[^>]*>", "\n", text, flags=re.IGNORECASE)
    cleaned = re.sub(r"<p[^>]*>", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"</p>", "\n", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"<br\s*/?>", "\n", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"<hr\s*/?>", "\n---\n", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"</?li[^>]*>", "\n", cleaned, flags=re.IGNORECASE)
    cleaned = _TAG_RE.sub("", cleaned)
    cleaned = html.unescape(cleaned)
    cleaned = "\n".join(line.rstrip() for line in cleaned.splitlines())
    return _BLANK_LINES_RE.sub("\n\n", cleaned).strip()
