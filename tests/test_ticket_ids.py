"""Tests for ticket number and display id helpers."""
from ticketflow.readiness.ticket_ids import (
    format_display_id,
    parse_ticket_number,
    repo_hint_prefix,
    slug_from_title,
)


class TestRepoHintPrefix:
    """Tests for display id prefixes."""

    def test_first_short_word(self):
        assert repo_hint_prefix("acme/hal-tool") == "HAL"

    def test_long_name_truncated(self):
        assert repo_hint_prefix("acme/orchestrator") == "ORCH"

    def test_fallback(self):
        assert repo_hint_prefix("acme/1234") == "PRJ"
        assert repo_hint_prefix("") == "PRJ"


class TestDisplayIds:
    """Tests for formatting and parsing ticket references."""

    def test_zero_padded(self):
        assert format_display_id("HAL", 42) == "HAL-0042"

    def test_parse_display_id(self):
        assert parse_ticket_number("HAL-0042") == 42

    def test_parse_bare_number(self):
        assert parse_ticket_number("7") == 7

    def test_parse_takes_last_run(self):
        assert parse_ticket_number("v2 ticket 0013") == 13

    def test_parse_none(self):
        assert parse_ticket_number("no digits") is None
        assert parse_ticket_number("") is None


class TestSlug:
    """Tests for title slugs."""

    def test_slug(self):
        assert slug_from_title("Dark mode: toggle!") == "dark-mode-toggle"

    def test_empty_title(self):
        assert slug_from_title("!!!") == "ticket"
