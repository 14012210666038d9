"""Tests for the body normalizer."""
import pytest

from ticketflow.readiness.normalizer import (
    ACCEPTANCE_CRITERIA,
    DELIVERABLE,
    GOAL,
    NON_GOALS,
    canonical_heading,
    normalize_body,
    normalize_title_line,
)


class TestCanonicalHeading:
    """Tests for heading alias resolution."""

    def test_bare_goal(self):
        assert canonical_heading("Goal") == GOAL

    def test_qualifier_and_casing_ignored(self):
        assert canonical_heading("ACCEPTANCE CRITERIA (ui only)") == ACCEPTANCE_CRITERIA

    def test_hyphen_and_colon(self):
        assert canonical_heading("Human-verifiable deliverable:") == DELIVERABLE
        assert canonical_heading("Non-Goals") == NON_GOALS

    def test_unknown_heading(self):
        assert canonical_heading("Background") is None


class TestNormalizeBody:
    """Tests for heading rewriting."""

    def test_wrong_level_rewritten(self):
        """A level-3 Goal heading becomes the canonical level-2 heading."""
        body = "### Goal\nShip X"
        assert normalize_body(body) == "## Goal (one sentence)\nShip X"

    def test_content_untouched(self):
        """Only heading lines change."""
        body = "# acceptance criteria\n- [ ] Goal: keep this line\n  indented text"
        result = normalize_body(body)
        assert result.split("\n")[1:] == ["- [ ] Goal: keep this line", "  indented text"]

    def test_missing_sections_not_invented(self):
        result = normalize_body("## Goal\nShip X")
        assert "Constraints" not in result
        assert "Non-goals" not in result

    def test_unknown_headings_left_alone(self):
        body = "## Background\nSome context"
        assert normalize_body(body) == body

    def test_fenced_code_skipped(self):
        """Headings inside code fences are not rewritten."""
        body = "```\n# goal\n```"
        assert normalize_body(body) == body

    @pytest.mark.parametrize("body", [
        "# goal\nShip X\n\n### constraints:\n- none\n\n## Out of scope\nPDF export",
        "    # Goal\nShip X",
        "\n\n   \n        ## constraints\n- none\n   ",
        "# Goal\r\nShip X\r\n\r\n## Non goals\r\nNone\r\n",
        "```\n# goal\n```\n# goal\nShip X",
        "```\n# goal\nunterminated fence",
        "",
        "   \n\t\n",
        "## Goal (one sentence)\nShip X",
    ])
    def test_idempotent(self, body):
        once = normalize_body(body)
        assert normalize_body(once) == once

    def test_idempotent_on_ticket_body(self, plain_bullet_body):
        once = normalize_body(plain_bullet_body)
        assert normalize_body(once) == once

    def test_indented_first_heading(self):
        assert normalize_body("    # Goal\nShip X") == "## Goal (one sentence)\nShip X"

    def test_crlf_heading(self):
        assert normalize_body("# Goal\r\nShip X").startswith("## Goal (one sentence)\n")

    def test_empty_body(self):
        assert normalize_body("") == ""
        assert normalize_body(None) == ""


class TestNormalizeTitleLine:
    """Tests for display id injection into the title line."""

    def test_adds_display_id(self):
        body = "- **Title**: Dark mode\n\n## Goal (one sentence)\nShip"
        result = normalize_title_line(body, "HAL-0042", "Dark mode")
        assert result.startswith("- **Title**: HAL-0042 — Dark mode\n")

    def test_replaces_older_prefix(self):
        """Repeated calls do not stack ids."""
        body = "- **Title**: 0007 — Dark mode"
        once = normalize_title_line(body, "HAL-0042", "Dark mode")
        twice = normalize_title_line(once, "HAL-0042", "Dark mode")
        assert once == twice == "- **Title**: HAL-0042 — Dark mode"

    def test_no_title_line(self):
        body = "## Goal (one sentence)\nShip"
        assert normalize_title_line(body, "HAL-0042", "Dark mode") == body
