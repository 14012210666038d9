"""Readiness evaluator (Definition of Ready).

Pure and deterministic: same body text, same result. Sections are matched
on the exact canonical heading only; run the normalizer first (or call
``evaluate_readiness``, which does).
"""
import re
from typing import Optional

from ticketflow.readiness.normalizer import (
    ACCEPTANCE_CRITERIA,
    CONSTRAINTS,
    DELIVERABLE,
    GOAL,
    NON_GOALS,
    REQUIRED_SECTIONS,
    SECTION_NAMES,
    normalize_body,
)
from ticketflow.schemas.ticket import ChecklistResults, ReadinessResult

PLACEHOLDER_RE = re.compile(r"<[A-Za-z0-9\s\-_]+>")
CHECKBOX_RE = re.compile(r"^\s*[-*+]\s*\[(?:\s*|[xX])\]", re.MULTILINE)
PLAIN_BULLET_RE = re.compile(r"^([ \t]*)[-*+][ \t]+(?!\[)", re.MULTILINE)

CHECKBOX_GAP = "Acceptance criteria must include at least one checkbox item (- [ ])"


def _section_re(title: str) -> re.Pattern:
    return re.compile(
        r"^##[ \t]+" + re.escape(title) + r"[ \t]*(?:\n|\Z)([\s\S]*?)(?=^##\s|\Z)",
        re.MULTILINE,
    )


_SECTION_PATTERNS = {title: _section_re(title) for title in REQUIRED_SECTIONS}


def section_content(body_md: str, title: str) -> Optional[str]:
    """Content under ``## <title>`` up to the next level-2 heading.

    Returns None when the heading is absent, otherwise the trimmed content
    (possibly empty).
    """
    pattern = _SECTION_PATTERNS.get(title) or _section_re(title)
    match = pattern.search(body_md or "")
    if match is None:
        return None
    return match.group(1).strip()


def find_placeholders(text: str) -> list[str]:
    """Unresolved template tokens such as ``<AC 1>``, first-seen order."""
    seen: list[str] = []
    for token in PLACEHOLDER_RE.findall(text or ""):
        if token not in seen:
            seen.append(token)
    return seen


def has_checkbox(text: str) -> bool:
    return bool(CHECKBOX_RE.search(text or ""))


def _is_empty(content: str) -> bool:
    return not PLACEHOLDER_RE.sub("", content).strip()


def evaluate_normalized(body_md: str) -> ReadinessResult:
    """Evaluate a body that is already in canonical heading form."""
    body = body_md or ""
    missing: list[str] = []
    passed: dict[str, bool] = {}

    for title in REQUIRED_SECTIONS:
        name = SECTION_NAMES[title]
        content = section_content(body, title)
        if content is None:
            missing.append(f"{name} section missing")
            passed[title] = False
            continue
        if _is_empty(content):
            missing.append(f"{name} section is empty")
            passed[title] = False
            continue
        if title == ACCEPTANCE_CRITERIA and not has_checkbox(content):
            missing.append(CHECKBOX_GAP)
            passed[title] = False
            continue
        passed[title] = True

    placeholders = find_placeholders(body)
    if placeholders:
        missing.append(f"Unresolved placeholders: {', '.join(placeholders)}")

    checklist = ChecklistResults(
        goal=passed[GOAL],
        deliverable=passed[DELIVERABLE],
        acceptance_criteria=passed[ACCEPTANCE_CRITERIA],
        constraints_non_goals=passed[CONSTRAINTS] and passed[NON_GOALS],
        no_placeholders=not placeholders,
    )
    return ReadinessResult(
        ready=not missing,
        missing_items=missing,
        checklist_results=checklist,
    )


def evaluate_readiness(body_md: str) -> ReadinessResult:
    """Normalize then evaluate a raw ticket body."""
    return evaluate_normalized(normalize_body(body_md))


def autofix_acceptance_criteria(body_md: str) -> Optional[str]:
    """Turn plain bullets in Acceptance criteria into checkbox items.

    Returns the fixed body, or None when there is nothing to fix (section
    missing, already has a checkbox, or has no plain bullets). Text outside
    the section is untouched.
    """
    match = _SECTION_PATTERNS[ACCEPTANCE_CRITERIA].search(body_md or "")
    if match is None:
        return None
    content = match.group(1)
    if has_checkbox(content) or not PLAIN_BULLET_RE.search(content):
        return None
    fixed = PLAIN_BULLET_RE.sub(lambda m: f"{m.group(1)}- [ ] ", content)
    start, end = match.span(1)
    return body_md[:start] + fixed + body_md[end:]
