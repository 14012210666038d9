"""Ticket number and display id helpers."""
import re
from typing import Optional

_NUMBER_RUN_RE = re.compile(r"\d{1,4}")
_WORD_RE = re.compile(r"[A-Za-z]+")


def repo_hint_prefix(repo_full_name: str) -> str:
    """Display id prefix derived from the repository name.

    ``acme/hal-tool`` -> ``HAL``; falls back to the first four letters of
    the name, then to ``PRJ``.
    """
    name = (repo_full_name or "").split("/")[-1]
    for token in _WORD_RE.findall(name):
        if 2 <= len(token) <= 6:
            return token.upper()
    letters = "".join(_WORD_RE.findall(name))
    if letters:
        return letters[:4].upper()
    return "PRJ"


def format_display_id(prefix: str, number: int) -> str:
    return f"{prefix}-{number:04d}"


def parse_ticket_number(ref: str) -> Optional[int]:
    """Last 1-4 digit run in a ticket reference (``HAL-0042`` -> 42)."""
    runs = _NUMBER_RUN_RE.findall(str(ref or ""))
    if not runs:
        return None
    return int(runs[-1])


def slug_from_title(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (title or "").lower()).strip("-")
    return slug[:60].rstrip("-") or "ticket"
