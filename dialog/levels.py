from __future__ import annotations

from typing import Sequence

from core.enums import Flow
from core.models import DialogState, MenuState

LEVEL_ENTRY = "entry"
LEVEL_MENU = "menu"
LEVEL_LOOKUP = "lookup"
LEVEL_LOAN_AMOUNT = "loan_amount"
LEVEL_LOAN_CONFIRM = "loan_confirm"

NAV_HOME = "0"
NAV_BACK = "9"

ENTRY_SIGN_UP = "1"
ENTRY_LOOKUP = "2"
ENTRY_CANCEL = "3"

MENU_STATUS = "1"
MENU_LOAN = "2"
MENU_LOOKUP = "3"
MENU_SUPPORT = "4"

LOAN_CONFIRM = "1"
LOAN_CANCEL = "2"


def can_transition(current: Flow, target: Flow) -> bool:
    """Whether a state of flow `target` may be pushed on top of `current`."""
    if current == target:
        return current in {Flow.REGISTRATION, Flow.LOAN}

    allowed: dict[Flow, set[Flow]] = {
        Flow.ENTRY: {Flow.REGISTRATION, Flow.LOOKUP},
        Flow.REGISTRATION: set(),
        Flow.MENU: {Flow.LOOKUP, Flow.LOAN},
        Flow.LOOKUP: set(),
        Flow.LOAN: set(),
    }
    return target in allowed.get(current, set())


def is_authenticated_stack(stack: Sequence[DialogState]) -> bool:
    return bool(stack) and isinstance(stack[0], MenuState)
