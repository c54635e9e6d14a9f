"""
Case Management Tests
=====================
"""

import pytest

from case_ledger.cases import (
    create_case, delete_case, get_case, get_case_timeline, list_cases, update_case,
)
from case_ledger.db.models import (
    Case, CaseStage, CaseTimeline, CaseType, Evidence, Notification, NotificationType,
)
from case_ledger.errors import BadRequest, Conflict, Forbidden, NotFound, NOT_PARTICIPANT, WRONG_ROLE
from case_ledger.evidence import create_evidence


def _civil(db, actors, **overrides):
    fields = dict(
        case_number="CV-9",
        title="Civil dispute",
        case_type=CaseType.CIVIL_LITIGATION,
        plaintiff_lawyer_ids=[actors["plaintiff_lawyer"].user_id],
        defendant_lawyer_ids=[actors["civil_defense_lawyer"].user_id],
    )
    fields.update(overrides)
    return create_case(db, actors["police"], **fields)


class TestCreateCase:

    def test_public_prosecution(self, db, actors, public_case):
        assert public_case.stage == CaseStage.INVESTIGATION
        assert public_case.police_id == actors["police"].user_id
        assert public_case.prosecutor_ids == [actors["prosecutor_a"].user_id, actors["prosecutor_b"].user_id]
        assert public_case.defendant_lawyer_ids == [actors["defense_lawyer"].user_id]

    def test_initial_timeline_entry(self, db, actors, public_case):
        entries = db.query(CaseTimeline).filter(CaseTimeline.case_id == public_case.id).all()
        assert len(entries) == 1
        assert entries[0].stage == CaseStage.INVESTIGATION
        assert entries[0].operator_id == actors["police"].user_id

    def test_civil_litigation_with_both_lawyer_sets(self, db, actors):
        case = _civil(db, actors)
        assert case.case_type == CaseType.CIVIL_LITIGATION
        assert case.prosecutor_ids == []

    def test_civil_litigation_rejects_prosecutors(self, db, actors):
        with pytest.raises(BadRequest):
            _civil(db, actors, prosecutor_ids=[actors["prosecutor_a"].user_id])
        assert db.query(Case).count() == 0

    @pytest.mark.parametrize("missing", ["plaintiff_lawyer_ids", "defendant_lawyer_ids"])
    def test_civil_litigation_requires_both_sides(self, db, actors, missing):
        with pytest.raises(BadRequest):
            _civil(db, actors, **{missing: []})

    def test_public_prosecution_requires_prosecutor_and_defense(self, db, actors):
        with pytest.raises(BadRequest):
            create_case(
                db, actors["police"], "PP-9", "t", CaseType.PUBLIC_PROSECUTION,
                defendant_lawyer_ids=[actors["defense_lawyer"].user_id],
            )
        with pytest.raises(BadRequest):
            create_case(
                db, actors["police"], "PP-9", "t", CaseType.PUBLIC_PROSECUTION,
                prosecutor_ids=[actors["prosecutor_a"].user_id],
            )

    def test_only_police_may_file(self, db, actors):
        with pytest.raises(Forbidden) as exc_info:
            create_case(
                db, actors["prosecutor_a"], "PP-9", "t", CaseType.PUBLIC_PROSECUTION,
                prosecutor_ids=[actors["prosecutor_a"].user_id],
                defendant_lawyer_ids=[actors["defense_lawyer"].user_id],
            )
        assert exc_info.value.reason == WRONG_ROLE

    def test_required_fields(self, db, actors):
        with pytest.raises(BadRequest):
            _civil(db, actors, case_number="  ")
        with pytest.raises(BadRequest):
            _civil(db, actors, title="")
        with pytest.raises(BadRequest):
            _civil(db, actors, case_type="appeal")

    def test_participants_must_hold_matching_role(self, db, actors):
        with pytest.raises(BadRequest):
            _civil(db, actors, plaintiff_lawyer_ids=[actors["judge"].user_id])
        with pytest.raises(BadRequest):
            _civil(db, actors, plaintiff_lawyer_ids=["ghost"])
        with pytest.raises(BadRequest):
            _civil(db, actors, judge_id=actors["police"].user_id)

    def test_duplicate_case_number(self, db, actors, public_case):
        with pytest.raises(Conflict):
            _civil(db, actors, case_number=public_case.case_number)

    def test_participants_are_notified(self, db, actors, public_case):
        notes = db.query(Notification).filter(Notification.type == NotificationType.CASE_CREATED).all()
        assert {n.recipient_id for n in notes} == {
            actors["prosecutor_a"].user_id,
            actors["prosecutor_b"].user_id,
            actors["judge"].user_id,
            actors["defense_lawyer"].user_id,
        }


class TestReadCase:

    def test_participant_can_read(self, db, actors, public_case):
        assert get_case(db, actors["defense_lawyer"], public_case.id).id == public_case.id

    def test_outsider_cannot_read(self, db, actors, public_case):
        with pytest.raises(Forbidden) as exc_info:
            get_case(db, actors["outside_lawyer"], public_case.id)
        assert exc_info.value.reason == NOT_PARTICIPANT

    def test_admin_can_read(self, db, actors, public_case):
        assert get_case(db, actors["admin"], public_case.id).id == public_case.id

    def test_missing(self, db, actors):
        with pytest.raises(NotFound):
            get_case(db, actors["police"], "missing")

    def test_list_is_scoped_to_participation(self, db, actors, public_case, civil_case):
        assert list_cases(db, actors["police"]).total == 2
        assert [c.id for c in list_cases(db, actors["prosecutor_b"]).items] == [public_case.id]
        assert [c.id for c in list_cases(db, actors["plaintiff_lawyer"]).items] == [civil_case.id]
        assert list_cases(db, actors["outside_prosecutor"]).total == 0
        assert list_cases(db, actors["admin"]).total == 2

    def test_list_filters(self, db, actors, public_case, civil_case):
        assert list_cases(db, actors["judge"], case_type=CaseType.CIVIL_LITIGATION).total == 1
        assert list_cases(db, actors["judge"], keyword="State").total == 1
        assert list_cases(db, actors["judge"], stage=CaseStage.CLOSED).total == 0

    def test_timeline_is_ordered(self, db, actors, public_case, advance):
        advance(public_case, CaseStage.CLOSED)
        stages = [e.stage for e in get_case_timeline(db, actors["defense_lawyer"], public_case.id)]
        assert stages == [
            CaseStage.INVESTIGATION,
            CaseStage.PROSECUTORATE,
            CaseStage.COURT_TRIAL,
            CaseStage.CLOSED,
        ]


class TestUpdateAndDelete:

    def test_update_descriptive_fields(self, db, actors, public_case):
        case = update_case(db, actors["prosecutor_a"], public_case.id, description="Updated")
        assert case.description == "Updated"

    def test_stage_is_not_updatable(self, db, actors, public_case):
        with pytest.raises(BadRequest):
            update_case(db, actors["police"], public_case.id, stage=CaseStage.CLOSED)

    def test_lawyer_cannot_update(self, db, actors, public_case):
        with pytest.raises(Forbidden):
            update_case(db, actors["defense_lawyer"], public_case.id, title="Mine now")

    def test_closed_case_is_read_only(self, db, actors, public_case, advance):
        advance(public_case, CaseStage.CLOSED)
        with pytest.raises(Forbidden):
            update_case(db, actors["judge"], public_case.id, description="late")

    def test_prosecutor_cannot_delete(self, db, actors, public_case):
        with pytest.raises(Forbidden):
            delete_case(db, actors["prosecutor_a"], public_case.id)

    def test_delete_cascades(self, db, actors, public_case, ledger):
        create_evidence(
            db, ledger, actors["police"], public_case.id,
            title="Photo", file_hash="h1", file_name="photo.jpg",
        )
        delete_case(db, actors["police"], public_case.id)

        assert db.query(Case).count() == 0
        assert db.query(CaseTimeline).count() == 0
        assert db.query(Evidence).count() == 0
