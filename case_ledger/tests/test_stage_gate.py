"""
Stage Gate Tests
================

Exercises the declarative policy table without a database.
"""

from types import SimpleNamespace

import pytest

from case_ledger.auth import Identity
from case_ledger.db.models import CaseStage, CaseType, Role
from case_ledger.errors import Forbidden, NOT_OWNER, NOT_PARTICIPANT, WRONG_ROLE, WRONG_STAGE
from case_ledger.stage_gate import (
    EntityType, Operation, POLICIES, can_act, ensure_can_act, ensure_owner,
)

POLICE = Identity("P", Role.POLICE)
PROSECUTOR = Identity("A", Role.PROSECUTOR)
JUDGE = Identity("J", Role.JUDGE)
LAWYER = Identity("C", Role.LAWYER)

ACTORS = {
    Role.POLICE: POLICE,
    Role.PROSECUTOR: PROSECUTOR,
    Role.JUDGE: JUDGE,
    Role.LAWYER: LAWYER,
}


def _case(stage, case_type=CaseType.PUBLIC_PROSECUTION):
    return SimpleNamespace(
        id="case-1",
        stage=stage,
        case_type=case_type,
        police_id="P",
        judge_id="J",
        prosecutor_ids=["A"],
        plaintiff_lawyer_ids=[],
        defendant_lawyer_ids=["C"],
    )


class TestEvidenceCreation:

    def test_police_only_during_investigation(self):
        assert can_act(_case(CaseStage.INVESTIGATION), POLICE, EntityType.EVIDENCE, Operation.CREATE).allowed
        decision = can_act(_case(CaseStage.PROSECUTORATE), POLICE, EntityType.EVIDENCE, Operation.CREATE)
        assert not decision.allowed
        assert decision.reason == WRONG_STAGE

    def test_prosecutor_during_prosecutorate_and_trial(self):
        for stage, allowed in [
            (CaseStage.INVESTIGATION, False),
            (CaseStage.PROSECUTORATE, True),
            (CaseStage.COURT_TRIAL, True),
        ]:
            assert can_act(_case(stage), PROSECUTOR, EntityType.EVIDENCE, Operation.CREATE).allowed is allowed

    def test_judge_only_during_trial(self):
        assert can_act(_case(CaseStage.COURT_TRIAL), JUDGE, EntityType.EVIDENCE, Operation.CREATE).allowed
        assert not can_act(_case(CaseStage.PROSECUTORATE), JUDGE, EntityType.EVIDENCE, Operation.CREATE).allowed

    def test_lawyer_in_every_open_stage(self):
        for stage in (CaseStage.INVESTIGATION, CaseStage.PROSECUTORATE, CaseStage.COURT_TRIAL):
            assert can_act(_case(stage), LAWYER, EntityType.EVIDENCE, Operation.CREATE).allowed


class TestClosedCase:

    @pytest.mark.parametrize("entity", list(EntityType))
    @pytest.mark.parametrize("operation", [Operation.CREATE, Operation.UPDATE, Operation.DELETE, Operation.HANDLE])
    def test_no_mutation_once_closed(self, entity, operation):
        for actor in ACTORS.values():
            decision = can_act(_case(CaseStage.CLOSED), actor, entity, operation)
            assert not decision.allowed
            assert decision.reason == WRONG_STAGE

    def test_judge_can_still_view_evidence(self):
        assert can_act(_case(CaseStage.CLOSED), JUDGE, EntityType.EVIDENCE, Operation.VIEW).allowed


class TestParticipantCheckComesFirst:

    def test_outsider_denied_even_in_allowed_stage(self):
        outsider = Identity("X", Role.POLICE)
        decision = can_act(_case(CaseStage.INVESTIGATION), outsider, EntityType.EVIDENCE, Operation.CREATE)
        assert decision.reason == NOT_PARTICIPANT

    def test_unassigned_prosecutor_correction_message(self):
        outsider = Identity("X", Role.PROSECUTOR)
        decision = can_act(_case(CaseStage.PROSECUTORATE), outsider, EntityType.CORRECTION, Operation.CREATE)
        assert not decision.allowed
        assert decision.reason == NOT_PARTICIPANT
        assert decision.message == "not the assigned prosecutor"

    def test_unknown_role_is_not_a_participant(self):
        decision = can_act(_case(CaseStage.INVESTIGATION), Identity("P", "janitor"), EntityType.CASE, Operation.VIEW)
        assert decision.reason == NOT_PARTICIPANT
        assert decision.message == NOT_PARTICIPANT


class TestTableShape:

    def test_correction_only_by_prosecutor_in_prosecutorate(self):
        stages = list(CaseStage)
        for role, actor in ACTORS.items():
            for stage in stages:
                allowed = can_act(_case(stage), actor, EntityType.CORRECTION, Operation.CREATE).allowed
                assert allowed is (role == Role.PROSECUTOR and stage == CaseStage.PROSECUTORATE)

    def test_defense_material_only_by_lawyer_in_trial(self):
        for role, actor in ACTORS.items():
            for stage in CaseStage:
                allowed = can_act(_case(stage), actor, EntityType.DEFENSE_MATERIAL, Operation.CREATE).allowed
                assert allowed is (role == Role.LAWYER and stage == CaseStage.COURT_TRIAL)

    def test_defense_material_hidden_from_lawyers_during_prosecutorate(self):
        decision = can_act(_case(CaseStage.PROSECUTORATE), LAWYER, EntityType.DEFENSE_MATERIAL, Operation.VIEW)
        assert decision.reason == WRONG_STAGE

    def test_defense_material_visible_to_other_roles_in_every_stage(self):
        for actor in (POLICE, PROSECUTOR, JUDGE):
            for stage in CaseStage:
                assert can_act(_case(stage), actor, EntityType.DEFENSE_MATERIAL, Operation.VIEW).allowed

    def test_objection_by_prosecutor_only_in_public_prosecution(self):
        public = _case(CaseStage.PROSECUTORATE)
        civil = _case(CaseStage.PROSECUTORATE, CaseType.CIVIL_LITIGATION)
        assert can_act(public, PROSECUTOR, EntityType.OBJECTION, Operation.CREATE).allowed
        decision = can_act(civil, PROSECUTOR, EntityType.OBJECTION, Operation.CREATE)
        assert decision.reason == WRONG_ROLE

    def test_objection_handling_is_judge_only(self):
        case = _case(CaseStage.COURT_TRIAL)
        assert can_act(case, JUDGE, EntityType.OBJECTION, Operation.HANDLE).allowed
        for actor in (POLICE, PROSECUTOR, LAWYER):
            assert can_act(case, actor, EntityType.OBJECTION, Operation.HANDLE).reason == WRONG_ROLE

    def test_police_cannot_write_objections(self):
        decision = can_act(_case(CaseStage.PROSECUTORATE), POLICE, EntityType.OBJECTION, Operation.CREATE)
        assert decision.reason == WRONG_ROLE

    def test_every_entity_has_a_policy(self):
        assert set(POLICIES) == set(EntityType)


def test_ensure_can_act_raises_forbidden_with_reason():
    with pytest.raises(Forbidden) as exc_info:
        ensure_can_act(_case(CaseStage.PROSECUTORATE), POLICE, EntityType.EVIDENCE, Operation.CREATE)
    assert exc_info.value.reason == WRONG_STAGE
    assert exc_info.value.status_code == 403


def test_ensure_owner():
    ensure_owner("A", PROSECUTOR)
    with pytest.raises(Forbidden) as exc_info:
        ensure_owner("B", PROSECUTOR, "correction")
    assert exc_info.value.reason == NOT_OWNER
    with pytest.raises(Forbidden):
        ensure_owner(None, PROSECUTOR)
