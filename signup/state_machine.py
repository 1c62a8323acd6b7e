from __future__ import annotations

from core.enums import Command, DialogStep

FLOW_ENTRY_STEPS: dict[str, DialogStep] = {
    Command.START: DialogStep.AWAIT_LOCATION,
    Command.SORT_TEAMS: DialogStep.AWAIT_TEAM_PARAMS,
    Command.CHANGE_RATING: DialogStep.AWAIT_RATING_UPDATE,
}

_ALLOWED: dict[DialogStep, set[DialogStep]] = {
    DialogStep.IDLE: set(),
    DialogStep.AWAIT_LOCATION: {DialogStep.AWAIT_DATE},
    DialogStep.AWAIT_DATE: {DialogStep.AWAIT_TIME},
    DialogStep.AWAIT_TIME: {DialogStep.IDLE},
    DialogStep.AWAIT_FRIEND_DATA: {DialogStep.IDLE},
    DialogStep.AWAIT_TEAM_PARAMS: {DialogStep.IDLE},
    DialogStep.AWAIT_RATING_UPDATE: {DialogStep.IDLE},
}

# Any step may be abandoned by entering a new flow.
ENTRY_STEPS = set(FLOW_ENTRY_STEPS.values()) | {DialogStep.AWAIT_FRIEND_DATA}


def entry_step_for(command: str) -> DialogStep | None:
    return FLOW_ENTRY_STEPS.get(command)


def can_transition(current: DialogStep, target: DialogStep) -> bool:
    if current == target:
        return True
    if target in ENTRY_STEPS:
        return True
    return target in _ALLOWED.get(current, set())
