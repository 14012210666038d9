"""Pluggable extractors for ticket ids and QA verdicts in agent free text.

Each strategy returns a match or None; callers try an ordered list and take
the first hit, so strategies can be added or reordered without touching
the detector.
"""
import re
from dataclasses import dataclass
from typing import Generic, Optional, Protocol, Sequence, TypeVar

from ticketflow.schemas.agent_run import AgentType, Verdict

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

_FLAGS = re.IGNORECASE | re.DOTALL


class Extractor(Protocol[T_co]):
    name: str

    def extract(self, text: str) -> Optional[T_co]:
        ...


@dataclass(frozen=True)
class RegexTicketId:
    """Captures a 4-digit ticket number with group 1 of ``pattern``."""

    name: str
    pattern: re.Pattern

    def extract(self, text: str) -> Optional[str]:
        match = self.pattern.search(text or "")
        return match.group(1) if match else None


RUN_START_STRATEGIES: dict[AgentType, RegexTicketId] = {
    AgentType.IMPLEMENTATION: RegexTicketId(
        "implement-ticket",
        re.compile(r"implement\s+ticket\s+(\d{4})(?:\D|$)", re.IGNORECASE),
    ),
    AgentType.QA: RegexTicketId(
        "qa-ticket",
        re.compile(r"qa\s+ticket\s+(\d{4})(?:\D|$)", re.IGNORECASE),
    ),
}

GENERIC_TICKET_STRATEGY = RegexTicketId(
    "ticket-number", re.compile(r"\bticket\s*#?\s*(\d{4})(?!\d)", re.IGNORECASE)
)


def display_id_strategy(prefix: str) -> RegexTicketId:
    """Display ids carrying one repo's prefix (``HAL-0042``).

    Bound to the prefix so codes such as ``CVE-2024`` or ``ISO-8601`` in a
    run summary are not read as ticket ids.
    """
    return RegexTicketId(
        "display-id", re.compile(rf"\b{re.escape(prefix)}-(\d{{4}})(?!\d)")
    )


def run_start_strategies(agent_type: AgentType) -> list[RegexTicketId]:
    """Strategies for the message that started a run."""
    return [RUN_START_STRATEGIES[agent_type]]


def completion_strategies(
    agent_type: AgentType, prefix: Optional[str] = None
) -> list[RegexTicketId]:
    """Strategies for a run's own progress or completion message.

    Without a repo prefix the display-id strategy is left out.
    """
    strategies = [RUN_START_STRATEGIES[agent_type]]
    if prefix:
        strategies.append(display_id_strategy(prefix))
    strategies.append(GENERIC_TICKET_STRATEGY)
    return strategies


@dataclass(frozen=True)
class Match(Generic[T]):
    value: T
    strategy: str


def first_match(strategies: Sequence[Extractor[T]], text: str) -> Optional[Match[T]]:
    for strategy in strategies:
        value = strategy.extract(text)
        if value is not None:
            return Match(value=value, strategy=strategy.name)
    return None


# --- Verdicts ---

_PASS_RE = re.compile(r"pass|ok.*merge|verified.*main|verdict.*pass", _FLAGS)
_PASS_BLOCKER_RE = re.compile(r"fail|verdict.*fail", _FLAGS)
_FAIL_RE = re.compile(r"fail|verdict.*fail|qa.*fail", _FLAGS)
_FAIL_BLOCKER_RE = re.compile(r"pass|verdict.*pass", _FLAGS)
_QA_COMPLETION_RE = re.compile(
    r"qa.*complete|qa.*report|qa.*pass|qa.*fail|verdict.*pass|verdict.*fail"
    r"|move.*human.*loop|verified.*main|pass.*ok.*merge",
    _FLAGS,
)


@dataclass(frozen=True)
class ExplicitVerdict:
    """Reads a ``Verdict: PASS`` / ``Verdict: FAIL`` line."""

    name: str = "verdict-line"

    def extract(self, text: str) -> Optional[Verdict]:
        match = re.search(r"verdict\s*[:=*\s]+\s*(pass|fail)\b", text or "", re.IGNORECASE)
        if match is None:
            return None
        return Verdict(match.group(1).upper())


@dataclass(frozen=True)
class TextVerdict:
    """Loose pass/fail wording; ambiguous text yields None."""

    name: str = "verdict-text"

    def extract(self, text: str) -> Optional[Verdict]:
        text = text or ""
        if _PASS_RE.search(text) and not _PASS_BLOCKER_RE.search(text):
            return Verdict.PASS
        if _FAIL_RE.search(text) and not _FAIL_BLOCKER_RE.search(text):
            return Verdict.FAIL
        return None


VERDICT_STRATEGIES: list[Extractor[Verdict]] = [ExplicitVerdict(), TextVerdict()]


def is_qa_completion(text: str) -> bool:
    """Whether a message reads like a finished QA report."""
    return bool(_QA_COMPLETION_RE.search(text or ""))


def strategy_names(strategies: Sequence[Extractor]) -> list[str]:
    return [s.name for s in strategies]
