# -*- coding: utf-8 -*-
"""
Price alert creation dialog: steps, accumulated fields and the prompt codec.

The bot keeps no session. Every prompt echoes the fields collected so far
as labeled lines, and the next turn rebuilds the dialog state by parsing
the prompt the user is replying to:

    Price alert 3/4
    Pair: BTC/EUR
    Price: 30000
    When goes above or below that price?
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

TOTAL_STEPS = 4

_HEADER_RE = re.compile(r"^Price alert ([1-4])/4\b", re.MULTILINE)
_FIELD_RE = {
    "pair": re.compile(r"^Pair: (.+)$", re.MULTILINE),
    "price": re.compile(r"^Price: (.+)$", re.MULTILINE),
    "direction": re.compile(r"^Direction: (.+)$", re.MULTILINE),
}


class Step(Enum):
    """What the prompt is waiting for. Value is the 1-based step number."""
    AWAIT_PAIR = 1
    AWAIT_PRICE = 2
    AWAIT_DIRECTION = 3
    AWAIT_EXCHANGE = 4

    @property
    def required_fields(self) -> Tuple[str, ...]:
        """Fields that must already be known when this step is prompted."""
        return ("pair", "price", "direction")[:self.value - 1]


QUESTIONS = {
    Step.AWAIT_PAIR: "Which pair?",
    Step.AWAIT_PRICE: "Which price?",
    Step.AWAIT_DIRECTION: "When goes above or below that price?",
    Step.AWAIT_EXCHANGE: "Which exchange?",
}


@dataclass
class AlertDraft:
    """Fields collected so far; price is kept as the user typed it."""
    pair: Optional[str] = None
    price: Optional[str] = None
    direction: Optional[str] = None


def render_prompt(step: Step, draft: AlertDraft, error: Optional[str] = None) -> str:
    """
    Render the prompt for a step, echoing every field the step depends on.

    Args:
        step: Step being prompted
        draft: Fields collected so far
        error: Optional line shown above the prompt (e.g. invalid input)
    """
    header = f"Price alert {step.value}/{TOTAL_STEPS}"
    question = QUESTIONS[step]

    if step is Step.AWAIT_PAIR:
        lines = [f"{header}: {question}"]
    else:
        lines = [header]
        for field in step.required_fields:
            lines.append(f"{field.capitalize()}: {getattr(draft, field)}")
        lines.append(question)

    if error:
        lines.insert(0, f"⚠️ {error}")
    return "\n".join(lines)


def parse_prompt(text: str) -> Optional[Tuple[Step, AlertDraft]]:
    """
    Rebuild dialog state from a prompt previously rendered by render_prompt.

    Returns:
        (step, draft), or None if the text is not a complete price alert prompt
    """
    if not text:
        return None

    header = _HEADER_RE.search(text)
    if header is None:
        return None

    step = Step(int(header.group(1)))
    values = {}
    for field in step.required_fields:
        match = _FIELD_RE[field].search(text)
        if match is None:
            return None
        values[field] = match.group(1).strip()

    return step, AlertDraft(**values)
