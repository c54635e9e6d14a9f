"""
Participant Resolver
====================

Decides whether an actor belongs to a case, given the case's
role-partitioned participant sets:

- police:     the case's owning police officer
- prosecutor: member of the prosecutor set
- judge:      the assigned judge
- lawyer:     member of the plaintiff- or defendant-lawyer set

Works on anything exposing `police_id`, `judge_id`, `prosecutor_ids`,
`plaintiff_lawyer_ids` and `defendant_lawyer_ids`. Never raises.
"""

from typing import List

from .auth import coerce_role
from .db.models import Role


def _ids(case, attr: str) -> List[str]:
    value = getattr(case, attr, None)
    if not value or isinstance(value, str):
        return []
    try:
        return list(value)
    except TypeError:
        return []


def _is_police(case, user_id: str) -> bool:
    return getattr(case, "police_id", None) == user_id


def _is_prosecutor(case, user_id: str) -> bool:
    return user_id in _ids(case, "prosecutor_ids")


def _is_judge(case, user_id: str) -> bool:
    return getattr(case, "judge_id", None) == user_id


def _is_lawyer(case, user_id: str) -> bool:
    return user_id in _ids(case, "plaintiff_lawyer_ids") or user_id in _ids(case, "defendant_lawyer_ids")


_RESOLVERS = {
    Role.POLICE: _is_police,
    Role.PROSECUTOR: _is_prosecutor,
    Role.JUDGE: _is_judge,
    Role.LAWYER: _is_lawyer,
}


def is_participant(case, actor) -> bool:
    """True iff the actor holds a seat on the case matching its role."""
    if case is None or actor is None:
        return False
    user_id = getattr(actor, "user_id", None)
    if not user_id:
        return False
    resolver = _RESOLVERS.get(coerce_role(getattr(actor, "role", None)))
    if resolver is None:
        return False
    return resolver(case, user_id)


def is_assigned(case, actor, role: Role) -> bool:
    """Participant check restricted to one role (e.g. the assigned judge)."""
    return coerce_role(getattr(actor, "role", None)) == role and is_participant(case, actor)


def participant_ids(case) -> List[str]:
    """Every participant of the case, de-duplicated in seat order."""
    seen = set()
    result = []
    candidates = (
        [getattr(case, "police_id", None)]
        + _ids(case, "prosecutor_ids")
        + [getattr(case, "judge_id", None)]
        + _ids(case, "plaintiff_lawyer_ids")
        + _ids(case, "defendant_lawyer_ids")
    )
    for user_id in candidates:
        if user_id and user_id not in seen:
            seen.add(user_id)
            result.append(user_id)
    return result
