"""
Step Workflow

Pure transition functions for the SETUP -> INSTRUCTIONS -> TEST -> RESULTS wizard.
Nothing here holds state: callers pass a WorkflowSnapshot and keep the current step themselves.
"""

from dataclasses import dataclass
from enum import IntEnum

from instruct_lab_core.domain.constants import INSTRUCTIONS_MIN_LENGTH


class Step(IntEnum):
    SETUP = 0
    INSTRUCTIONS = 1
    TEST = 2
    RESULTS = 3


@dataclass(frozen=True)
class WorkflowSnapshot:
    """The facts the step predicates are evaluated against"""
    credential_valid: bool = False
    model_selected: bool = False
    instructions: str = ""
    has_response: bool = False
    has_metrics: bool = False


@dataclass(frozen=True)
class StepTransition:
    """Result of a navigation request; step is where the workflow ends up"""
    accepted: bool
    step: Step
    reason: str | None = None


def is_complete(step: Step, snapshot: WorkflowSnapshot) -> bool:
    if step == Step.SETUP:
        return snapshot.credential_valid and snapshot.model_selected
    if step == Step.INSTRUCTIONS:
        return len(snapshot.instructions.strip()) >= INSTRUCTIONS_MIN_LENGTH
    if step == Step.TEST:
        return snapshot.has_response and snapshot.has_metrics
    return True


def is_accessible(step: Step, snapshot: WorkflowSnapshot) -> bool:
    """
    SETUP is always reachable; INSTRUCTIONS and TEST unlock in order.
    RESULTS only needs a finished test, so it stays reachable after instructions are cleared.
    """
    if step == Step.SETUP:
        return True
    if step == Step.RESULTS:
        return is_complete(Step.TEST, snapshot)
    previous = Step(step - 1)
    return is_accessible(previous, snapshot) and is_complete(previous, snapshot)


def accessible_steps(snapshot: WorkflowSnapshot) -> list[Step]:
    return [step for step in Step if is_accessible(step, snapshot)]


def refusal_reason(step: Step, snapshot: WorkflowSnapshot) -> str | None:
    """Why step is not reachable, or None if it is"""
    if is_accessible(step, snapshot):
        return None
    if step == Step.RESULTS:
        return "Run an evaluation first"
    if not snapshot.credential_valid:
        return "A valid API key is required"
    if not snapshot.model_selected:
        return "Select a model first"
    if step == Step.TEST:
        return f"Instructions must be at least {INSTRUCTIONS_MIN_LENGTH} characters"
    return "Complete the previous step first"


def request_step(current: Step, target: Step, snapshot: WorkflowSnapshot) -> StepTransition:
    """
    Ask to move to target

    Never raises; a refusal keeps the current step and carries the reason for the caller to surface.
    """
    reason = refusal_reason(target, snapshot)
    if reason is not None:
        return StepTransition(accepted=False, step=current, reason=reason)
    return StepTransition(accepted=True, step=target)


def advance_after_evaluation(current: Step, snapshot: WorkflowSnapshot) -> Step:
    """The only automatic forward move: TEST -> RESULTS once the test is complete"""
    if current == Step.TEST and is_complete(Step.TEST, snapshot):
        return Step.RESULTS
    return current
