import re
from typing import Optional

INLINE_CITATION_PATTERNS = (
    re.compile(r"\[\^\d+\^\]"),
    re.compile(r"\[\d+\]"),
    re.compile(r"【\d+(?::\d+)?(?:†[^】]*)?】"),
    re.compile(r"\(Source:[^)]+\)", re.IGNORECASE),
)
CITATION_LINE_PATTERNS = (
    re.compile(r"^\s*\[\^\d+\^\]:.*$", re.MULTILINE),
    re.compile(r"^\s*【\d+(?::\d+)?(?:†[^】]*)?】.*$", re.MULTILINE),
)

MARKDOWN_PATTERNS = (
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"\*(.*?)\*"), r"\1"),
    (re.compile(r"__(.*?)__"), r"\1"),
    (re.compile(r"_(.*?)_"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
)
HEADING_PATTERN = re.compile(r"^#+\s*(.*)$", re.MULTILINE)
BULLET_PATTERN = re.compile(r"^[•▪◦]\s*", re.MULTILINE)


def strip_citations(text: Optional[str]) -> Optional[str]:
    """Remove file-search citation annotations the assistant leaves in replies."""
    if not text:
        return text

    cleaned = text
    for pattern in CITATION_LINE_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    for pattern in INLINE_CITATION_PATTERNS:
        cleaned = pattern.sub("", cleaned)

    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
    cleaned = re.sub(r"\s+\n", "\n", cleaned)
    return cleaned.strip()


def format_for_chat(text: Optional[str]) -> Optional[str]:
    """Flatten markdown into plain text that renders on WhatsApp-like channels."""
    if not text:
        return text

    formatted = text.strip()
    for pattern, replacement in MARKDOWN_PATTERNS:
        formatted = pattern.sub(replacement, formatted)
    formatted = HEADING_PATTERN.sub(lambda match: match.group(1).upper(), formatted)
    formatted = BULLET_PATTERN.sub("- ", formatted)
    formatted = re.sub(r"\n{3,}", "\n\n", formatted)

    return "\n".join(line.rstrip() for line in formatted.split("\n")).strip()


def clean_reply(text: Optional[str]) -> str:
    return format_for_chat(strip_citations(text)) or ""
