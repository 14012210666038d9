"""Definition of Ready: body normalization and readiness evaluation."""
from ticketflow.readiness.evaluator import (
    autofix_acceptance_criteria,
    evaluate_normalized,
    evaluate_readiness,
    find_placeholders,
    has_checkbox,
    section_content,
)
from ticketflow.readiness.normalizer import (
    REQUIRED_SECTIONS,
    SECTION_NAMES,
    normalize_body,
    normalize_title_line,
)
from ticketflow.readiness.ticket_ids import (
    format_display_id,
    parse_ticket_number,
    repo_hint_prefix,
    slug_from_title,
)

__all__ = [
    "REQUIRED_SECTIONS",
    "SECTION_NAMES",
    "normalize_body",
    "normalize_title_line",
    "evaluate_readiness",
    "evaluate_normalized",
    "autofix_acceptance_criteria",
    "find_placeholders",
    "has_checkbox",
    "section_content",
    "repo_hint_prefix",
    "format_display_id",
    "parse_ticket_number",
    "slug_from_title",
]
