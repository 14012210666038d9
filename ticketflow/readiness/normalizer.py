"""Body normalizer.

Rewrites near-miss section headings (wrong level, missing qualifier,
alternate casing) into the canonical headings the evaluator matches.
Only heading lines change; section content is left byte-identical and
missing sections are never invented.
"""
import re

GOAL = "Goal (one sentence)"
DELIVERABLE = "Human-verifiable deliverable (UI-only)"
ACCEPTANCE_CRITERIA = "Acceptance criteria (UI-only)"
CONSTRAINTS = "Constraints"
NON_GOALS = "Non-goals"

# Canonical order is the order missing items are reported in.
REQUIRED_SECTIONS: tuple[str, ...] = (
    GOAL,
    DELIVERABLE,
    ACCEPTANCE_CRITERIA,
    CONSTRAINTS,
    NON_GOALS,
)

# Short names used in human-readable gap descriptions.
SECTION_NAMES: dict[str, str] = {
    GOAL: "Goal",
    DELIVERABLE: "Human-verifiable deliverable",
    ACCEPTANCE_CRITERIA: "Acceptance criteria",
    CONSTRAINTS: "Constraints",
    NON_GOALS: "Non-goals",
}

_HEADING_ALIASES: dict[str, str] = {
    "goal": GOAL,
    "goals": GOAL,
    "goal one sentence": GOAL,
    "human verifiable deliverable": DELIVERABLE,
    "human verifiable deliverables": DELIVERABLE,
    "deliverable": DELIVERABLE,
    "deliverables": DELIVERABLE,
    "acceptance criteria": ACCEPTANCE_CRITERIA,
    "acceptance criterion": ACCEPTANCE_CRITERIA,
    "constraints": CONSTRAINTS,
    "constraint": CONSTRAINTS,
    "non goals": NON_GOALS,
    "non goal": NON_GOALS,
    "nongoals": NON_GOALS,
    "out of scope": NON_GOALS,
}

_HEADING_RE = re.compile(r"^\s{0,3}(#{1,6})\s*(.*?)\s*#*\s*$")
_PAREN_RE = re.compile(r"\([^)]*\)")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_TITLE_LINE_RE = re.compile(r"^(\s*-\s*\*\*Title\*\*:\s*)(.*)$", re.MULTILINE)
_OLD_ID_PREFIX_RE = re.compile(r"^(?:[A-Z]{2,6}-)?\d{4}\s*[—–-]\s*")


def _heading_key(text: str) -> str:
    key = _PAREN_RE.sub(" ", text)
    key = key.strip().rstrip(":").strip()
    key = key.replace("*", "").replace("_", " ").replace("-", " ")
    return " ".join(key.casefold().split())


def canonical_heading(text: str) -> str | None:
    """Return the canonical heading a heading text maps to, if any."""
    return _HEADING_ALIASES.get(_heading_key(text))


def normalize_body(body_md: str) -> str:
    """Rewrite near-miss required-section headings to canonical form.

    Idempotent: normalizing twice gives the same text as normalizing once.
    """
    # Strip before scanning: an indented first line only reads as a
    # heading once its indentation is gone.
    lines = (body_md or "").strip().split("\n")
    in_fence = False
    out = []
    for line in lines:
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            out.append(line)
            continue
        if not in_fence:
            match = _HEADING_RE.match(line)
            if match:
                canonical = canonical_heading(match.group(2))
                if canonical is not None:
                    out.append(f"## {canonical}")
                    continue
        out.append(line)
    return "\n".join(out)


def normalize_title_line(body_md: str, display_id: str, title: str) -> str:
    """Point the ``- **Title**:`` line at the ticket's display id.

    Any older ``NNNN —`` prefix is dropped so repeated calls do not stack
    ids. Bodies without a title line are returned unchanged.
    """
    clean_title = _OLD_ID_PREFIX_RE.sub("", (title or "").strip())

    def _replace(match: re.Match) -> str:
        current = _OLD_ID_PREFIX_RE.sub("", match.group(2).strip())
        return f"{match.group(1)}{display_id} — {clean_title or current}"

    return _TITLE_LINE_RE.sub(_replace, body_md, count=1)
