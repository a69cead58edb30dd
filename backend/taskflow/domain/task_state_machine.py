"""Task status state machine.

Legal statuses, the transition table, and the authorization predicate
attached to each transition. Everything here is pure: callers load the
task, project and actor role and pass them in as an ``AuthContext``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable
from uuid import UUID

from taskflow.domain.permissions import ADMIN_ROLES, Role, has_sufficient_role
from taskflow.errors import ForbiddenError, InvalidTransitionError, ValidationError


class TaskStatus(str, Enum):
    """Persisted task status."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Transition(str, Enum):
    """Named status-to-status edge."""

    START = "start"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    COMPLETE = "complete"
    REOPEN = "reopen"


@dataclass(frozen=True)
class AuthContext:
    """Who is acting on which task."""

    actor_id: UUID
    role: Role | None
    creator_id: UUID | None
    assignee_id: UUID | None
    leader_id: UUID | None

    @property
    def is_assignee(self) -> bool:
        return self.assignee_id is not None and self.assignee_id == self.actor_id

    @property
    def is_creator(self) -> bool:
        return self.creator_id is not None and self.creator_id == self.actor_id

    @property
    def is_project_leader(self) -> bool:
        return self.leader_id is not None and self.leader_id == self.actor_id

    @property
    def is_manager(self) -> bool:
        return self.role is not None and has_sufficient_role(self.role, Role.LEADER)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def can_work_on(ctx: AuthContext) -> bool:
    """Assignee, creator, or a workspace management role."""
    return ctx.is_assignee or ctx.is_creator or ctx.is_manager


def can_review(ctx: AuthContext) -> bool:
    """Project leader or workspace owner/director."""
    return ctx.is_project_leader or ctx.is_admin


def can_reopen(ctx: AuthContext) -> bool:
    """Assignee, project leader or workspace owner/director."""
    return ctx.is_assignee or ctx.is_project_leader or ctx.is_admin


def can_delete(ctx: AuthContext) -> bool:
    """Creator, project leader or workspace owner/director."""
    return ctx.is_creator or ctx.is_project_leader or ctx.is_admin


@dataclass(frozen=True)
class TransitionRule:
    name: Transition
    source: TaskStatus
    target: TaskStatus
    predicate: Callable[[AuthContext], bool]
    denial: str


TRANSITION_RULES: dict[Transition, TransitionRule] = {
    Transition.START: TransitionRule(
        Transition.START,
        TaskStatus.TODO,
        TaskStatus.IN_PROGRESS,
        can_work_on,
        "Only the assignee, the creator or a workspace manager can start this task",
    ),
    Transition.SUBMIT: TransitionRule(
        Transition.SUBMIT,
        TaskStatus.IN_PROGRESS,
        TaskStatus.REVIEW,
        can_work_on,
        "Only the assignee, the creator or a workspace manager can submit this task for review",
    ),
    Transition.COMPLETE: TransitionRule(
        Transition.COMPLETE,
        TaskStatus.IN_PROGRESS,
        TaskStatus.DONE,
        can_work_on,
        "Only the assignee, the creator or a workspace manager can complete this task",
    ),
    Transition.APPROVE: TransitionRule(
        Transition.APPROVE,
        TaskStatus.REVIEW,
        TaskStatus.DONE,
        can_review,
        "Only the project leader or a workspace admin can approve this task",
    ),
    Transition.REJECT: TransitionRule(
        Transition.REJECT,
        TaskStatus.REVIEW,
        TaskStatus.IN_PROGRESS,
        can_review,
        "Only the project leader or a workspace admin can reject this task",
    ),
    Transition.REOPEN: TransitionRule(
        Transition.REOPEN,
        TaskStatus.DONE,
        TaskStatus.IN_PROGRESS,
        can_reopen,
        "Only the assignee, the project leader or a workspace admin can reopen this task",
    ),
}

_RULES_BY_EDGE: dict[tuple[TaskStatus, TaskStatus], TransitionRule] = {
    (rule.source, rule.target): rule for rule in TRANSITION_RULES.values()
}

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    status: frozenset(
        rule.target for rule in TRANSITION_RULES.values() if rule.source is status
    )
    for status in TaskStatus
}


def parse_status(value: str) -> TaskStatus:
    """Normalize a status string (case-insensitive)."""
    try:
        return TaskStatus(value.strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid status: {value}") from None


def parse_priority(value: str | None) -> TaskPriority:
    if value is None:
        return TaskPriority.MEDIUM
    try:
        return TaskPriority(value.strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid priority: {value}") from None


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def available_transitions(status: TaskStatus) -> list[TaskStatus]:
    """Statuses reachable from ``status``, in enum order."""
    return [s for s in TaskStatus if s in ALLOWED_TRANSITIONS[status]]


def rule_for(current: TaskStatus, target: TaskStatus) -> TransitionRule:
    """Look up the named transition for a status pair.

    Raises:
        InvalidTransitionError: if the pair is not in the table
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)
    return _RULES_BY_EDGE[(current, target)]


def check_transition(
    transition: Transition,
    current: TaskStatus,
    ctx: AuthContext,
) -> TransitionRule:
    """Validate structure first, then authorization, for one transition.

    Raises:
        InvalidTransitionError: task is not in the transition's source status
        ForbiddenError: the transition's predicate rejects the actor
    """
    rule = TRANSITION_RULES[transition]
    if current is not rule.source:
        raise InvalidTransitionError(current.value, rule.target.value)
    if not rule.predicate(ctx):
        raise ForbiddenError(rule.denial)
    return rule
