"""Escalation and resolution signals in message text.

The explicit marker line emitted by the assistant is the primary channel.
Keyword matching is a best-effort fallback and is kept separate so it can be
tuned and tested on its own.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

SOURCE_MARKER = "marker"
SOURCE_KEYWORD = "keyword"


@dataclass
class EscalationSignal:
    text: str
    escalate: bool = False
    reason: Optional[str] = None
    source: Optional[str] = None


def match_keyword(text: Optional[str], keywords: Iterable[str]) -> Optional[str]:
    """Return the first keyword contained in text (case-insensitive), if any."""
    if not text:
        return None
    lowered = text.lower()
    for keyword in keywords:
        keyword = (keyword or "").strip()
        if keyword and keyword.lower() in lowered:
            return keyword
    return None


def extract_marker(text: str, marker: str) -> Optional[EscalationSignal]:
    """Strip marker lines from text.

    A marker line is any line whose stripped content starts with the marker
    (case-insensitive). The text after the first marker becomes the reason.
    Returns None when no marker line is present.
    """
    if not marker:
        return None
    prefix = marker.upper()
    kept = []
    found = False
    reason = None
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.upper().startswith(prefix):
            found = True
            if reason is None:
                reason = stripped[len(marker):].strip() or None
            continue
        kept.append(line)

    if not found:
        return None
    return EscalationSignal(
        text="\n".join(kept).strip(),
        escalate=True,
        reason=reason,
        source=SOURCE_MARKER,
    )


def detect_escalation(reply: str, marker: str, keywords: Iterable[str]) -> EscalationSignal:
    signal = extract_marker(reply, marker)
    if signal:
        return signal

    keyword = match_keyword(reply, keywords)
    if keyword:
        return EscalationSignal(text=reply, escalate=True, reason=keyword, source=SOURCE_KEYWORD)

    return EscalationSignal(text=reply)


def match_resolution(text: Optional[str], keywords: Iterable[str]) -> Optional[str]:
    """Keyword an operator used to hand the conversation back, if any."""
    return match_keyword(text, keywords)
