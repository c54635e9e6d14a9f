"""
Stage Gate
==========

Declarative policy deciding whether an actor may perform an operation on a
case entity given the case's current stage.

Evaluation order for `can_act`:
1. Participant check (non-participants are always denied)
2. Mutations on a closed case are denied
3. Table lookup: role -> case types -> operation -> allowed stages

Ownership (only the submitter may update/delete a record) is a separate
check, `ensure_owner`, layered on top by the entity services.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional

from .auth import coerce_role
from .db.models import CaseStage, CaseType, Role
from .errors import Forbidden, NOT_OWNER, NOT_PARTICIPANT, WRONG_ROLE, WRONG_STAGE
from .participants import is_participant

logger = logging.getLogger(__name__)


class EntityType(str, Enum):
    CASE = "case"
    EVIDENCE = "evidence"
    CORRECTION = "correction"
    DEFENSE_MATERIAL = "defense_material"
    OBJECTION = "objection"


class Operation(str, Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    HANDLE = "handle"  # verify / review / rule on


INV = CaseStage.INVESTIGATION
PROS = CaseStage.PROSECUTORATE
COURT = CaseStage.COURT_TRIAL
CLOSED = CaseStage.CLOSED

OPEN_STAGES = frozenset({INV, PROS, COURT})
ALL_STAGES = frozenset({INV, PROS, COURT, CLOSED})


@dataclass(frozen=True)
class RolePolicy:
    """Stages in which one role may perform each operation"""
    stages: Dict[Operation, FrozenSet[CaseStage]]
    case_types: Optional[FrozenSet[CaseType]] = None  # None = any case type


@dataclass(frozen=True)
class EntityPolicy:
    roles: Dict[Role, RolePolicy]
    # Roles whose non-members are reported as "not the assigned <role>"
    assigned_roles: FrozenSet[Role] = field(default_factory=frozenset)


def _writes(stages, view=None, handle=None) -> Dict[Operation, FrozenSet[CaseStage]]:
    stages = frozenset(stages)
    table = {
        Operation.CREATE: stages,
        Operation.UPDATE: stages,
        Operation.DELETE: stages,
    }
    if view is not None:
        table[Operation.VIEW] = frozenset(view)
    if handle is not None:
        table[Operation.HANDLE] = frozenset(handle)
    return table


def _view_only(view) -> Dict[Operation, FrozenSet[CaseStage]]:
    return {Operation.VIEW: frozenset(view)}


# Lawyers do not see defense materials while the prosecutorate reviews the case
MATERIAL_VIEW_STAGES = frozenset({INV, COURT, CLOSED})

POLICIES: Dict[EntityType, EntityPolicy] = {
    EntityType.CASE: EntityPolicy(
        roles={
            Role.POLICE: RolePolicy({
                Operation.VIEW: ALL_STAGES,
                Operation.UPDATE: OPEN_STAGES,
                Operation.DELETE: OPEN_STAGES,
            }),
            Role.PROSECUTOR: RolePolicy({
                Operation.VIEW: ALL_STAGES,
                Operation.UPDATE: OPEN_STAGES,
            }),
            Role.JUDGE: RolePolicy({
                Operation.VIEW: ALL_STAGES,
                Operation.UPDATE: OPEN_STAGES,
                Operation.DELETE: OPEN_STAGES,
            }),
            Role.LAWYER: RolePolicy(_view_only(ALL_STAGES)),
        },
    ),
    EntityType.EVIDENCE: EntityPolicy(
        roles={
            Role.POLICE: RolePolicy(_writes({INV}, view={INV}, handle={INV})),
            Role.PROSECUTOR: RolePolicy(_writes({PROS, COURT}, view={PROS, COURT, CLOSED})),
            Role.JUDGE: RolePolicy(_writes({COURT}, view={COURT, CLOSED})),
            Role.LAWYER: RolePolicy(_writes(OPEN_STAGES, view=OPEN_STAGES)),
        },
        assigned_roles=frozenset({Role.POLICE}),
    ),
    EntityType.CORRECTION: EntityPolicy(
        roles={
            Role.PROSECUTOR: RolePolicy(_writes({PROS}, view=ALL_STAGES)),
            Role.JUDGE: RolePolicy({Operation.VIEW: ALL_STAGES, Operation.HANDLE: frozenset({PROS, COURT})}),
            Role.POLICE: RolePolicy(_view_only(ALL_STAGES)),
            Role.LAWYER: RolePolicy(_view_only(ALL_STAGES)),
        },
        assigned_roles=frozenset({Role.PROSECUTOR, Role.JUDGE}),
    ),
    EntityType.DEFENSE_MATERIAL: EntityPolicy(
        roles={
            Role.LAWYER: RolePolicy(_writes({COURT}, view=MATERIAL_VIEW_STAGES)),
            Role.POLICE: RolePolicy(_view_only(ALL_STAGES)),
            Role.PROSECUTOR: RolePolicy(_view_only(ALL_STAGES)),
            Role.JUDGE: RolePolicy(_view_only(ALL_STAGES)),
        },
        assigned_roles=frozenset({Role.LAWYER}),
    ),
    EntityType.OBJECTION: EntityPolicy(
        roles={
            Role.LAWYER: RolePolicy(_writes({PROS}, view=ALL_STAGES)),
            Role.PROSECUTOR: RolePolicy(
                _writes({PROS}, view=ALL_STAGES),
                case_types=frozenset({CaseType.PUBLIC_PROSECUTION}),
            ),
            Role.JUDGE: RolePolicy({Operation.VIEW: ALL_STAGES, Operation.HANDLE: OPEN_STAGES}),
            Role.POLICE: RolePolicy(_view_only(ALL_STAGES)),
        },
        assigned_roles=frozenset({Role.JUDGE}),
    ),
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None
    message: Optional[str] = None


ALLOW = Decision(True)


def _deny(reason: str, message: Optional[str] = None) -> Decision:
    return Decision(False, reason, message or reason)


def _value(item) -> str:
    return getattr(item, "value", str(item))


def can_act(case, actor, entity_type: EntityType, operation: Operation) -> Decision:
    """Decide whether `actor` may perform `operation` on an `entity_type` of `case`."""
    policy = POLICIES[entity_type]
    role = coerce_role(getattr(actor, "role", None))

    if not is_participant(case, actor):
        if role in policy.assigned_roles:
            return _deny(NOT_PARTICIPANT, f"not the assigned {role.value}")
        return _deny(NOT_PARTICIPANT)

    stage = case.stage
    if operation != Operation.VIEW and stage == CaseStage.CLOSED:
        return _deny(WRONG_STAGE, "case is closed")

    role_policy = policy.roles.get(role)
    if role_policy is None:
        return _deny(WRONG_ROLE, f"{_value(role)} may not {operation.value} {entity_type.value}")

    if role_policy.case_types is not None and case.case_type not in role_policy.case_types:
        return _deny(
            WRONG_ROLE,
            f"{_value(role)} may not {operation.value} {entity_type.value} in a {_value(case.case_type)} case",
        )

    stages = role_policy.stages.get(operation)
    if not stages:
        return _deny(WRONG_ROLE, f"{_value(role)} may not {operation.value} {entity_type.value}")

    if stage not in stages:
        return _deny(
            WRONG_STAGE,
            f"{_value(role)} may not {operation.value} {entity_type.value} during {_value(stage)}",
        )

    return ALLOW


def ensure_can_act(case, actor, entity_type: EntityType, operation: Operation) -> None:
    """Raise Forbidden unless `can_act` allows."""
    decision = can_act(case, actor, entity_type, operation)
    if not decision.allowed:
        logger.warning(
            f"Denied {operation.value} {entity_type.value} on case {getattr(case, 'id', None)} "
            f"for user {getattr(actor, 'user_id', None)}: {decision.message}"
        )
        raise Forbidden(decision.message, reason=decision.reason)


def ensure_owner(owner_id: Optional[str], actor, what: str = "record") -> None:
    """Only the submitter of a record may change it."""
    if not owner_id or owner_id != getattr(actor, "user_id", None):
        logger.warning(f"Denied change of {what} for non-owner {getattr(actor, 'user_id', None)}")
        raise Forbidden(NOT_OWNER, reason=NOT_OWNER, details={"reason": NOT_OWNER, "target": what})
