"""
Evidence Service Tests
======================
"""

import pytest

from case_ledger.db.models import (
    CaseStage, Correction, Evidence, EvidenceStatus, EvidenceType, Notification, NotificationType,
    Objection,
)
from case_ledger.errors import (
    BadRequest, ExternalFailure, Forbidden, InvalidState, NotFound, NOT_OWNER, WRONG_STAGE,
)
from case_ledger.evidence import (
    create_evidence, delete_evidence, get_evidence, list_evidence, update_evidence, verify_evidence,
)


def _upload(db, ledger, actor, case, **overrides):
    fields = dict(title="Photo", file_hash="sha256:aa", file_name="photo.jpg", evidence_type=EvidenceType.IMAGE)
    fields.update(overrides)
    return create_evidence(db, ledger, actor, case.id, **fields)


class TestCreateEvidence:

    def test_police_upload_is_anchored_and_verified(self, db, actors, public_case, ledger):
        item = _upload(db, ledger, actors["police"], public_case)

        assert item.status == EvidenceStatus.VERIFIED
        assert item.ledger_anchor_id == "1"
        assert item.ledger_tx_ref.startswith("0x")
        assert ledger.anchors["1"]["case_number"] == public_case.case_number
        assert ledger.anchors["1"]["fingerprint"] == "sha256:aa"

    def test_lawyer_upload_starts_pending(self, db, actors, public_case, ledger):
        item = _upload(db, ledger, actors["defense_lawyer"], public_case)
        assert item.status == EvidenceStatus.PENDING

    def test_police_only_during_investigation(self, db, actors, public_case, ledger, advance):
        _upload(db, ledger, actors["police"], public_case)
        advance(public_case, CaseStage.PROSECUTORATE)

        with pytest.raises(Forbidden) as exc_info:
            _upload(db, ledger, actors["police"], public_case, file_hash="sha256:bb")
        assert exc_info.value.reason == WRONG_STAGE

    def test_anchor_failure_leaves_no_rows(self, db, actors, public_case, failing_ledger):
        with pytest.raises(ExternalFailure):
            _upload(db, failing_ledger, actors["police"], public_case)

        assert failing_ledger.calls == 1
        assert db.query(Evidence).count() == 0

    def test_denied_upload_never_reaches_ledger(self, db, actors, public_case, failing_ledger):
        with pytest.raises(Forbidden):
            _upload(db, failing_ledger, actors["outside_lawyer"], public_case)
        assert failing_ledger.calls == 0

    def test_required_fields(self, db, actors, public_case, ledger):
        for missing in ("title", "file_hash", "file_name"):
            with pytest.raises(BadRequest):
                _upload(db, ledger, actors["police"], public_case, **{missing: ""})
        with pytest.raises(BadRequest):
            _upload(db, ledger, actors["police"], public_case, evidence_type="hologram")
        assert ledger.anchors == {}

    def test_original_evidence_must_be_in_same_case(self, db, actors, public_case, civil_case, ledger):
        other = _upload(db, ledger, actors["police"], civil_case)
        with pytest.raises(BadRequest):
            _upload(db, ledger, actors["police"], public_case, original_evidence_id=other.id)
        with pytest.raises(NotFound):
            _upload(db, ledger, actors["police"], public_case, original_evidence_id="missing")

    def test_participants_are_notified(self, db, actors, public_case, ledger):
        item = _upload(db, ledger, actors["defense_lawyer"], public_case)
        notes = db.query(Notification).filter(Notification.related_evidence_id == item.id).all()
        recipients = {n.recipient_id for n in notes}
        assert actors["defense_lawyer"].user_id not in recipients
        assert actors["police"].user_id in recipients
        assert all(n.type == NotificationType.EVIDENCE_UPLOADED for n in notes)


class TestReadEvidence:

    def test_visibility_follows_stage(self, db, actors, public_case, ledger, advance):
        item = _upload(db, ledger, actors["police"], public_case)
        assert get_evidence(db, actors["police"], item.id).id == item.id
        with pytest.raises(Forbidden):
            get_evidence(db, actors["judge"], item.id)

        advance(public_case, CaseStage.COURT_TRIAL)
        assert get_evidence(db, actors["judge"], item.id).id == item.id
        with pytest.raises(Forbidden):
            get_evidence(db, actors["police"], item.id)

    def test_list_filters(self, db, actors, public_case, ledger):
        _upload(db, ledger, actors["police"], public_case, title="Knife photo")
        _upload(db, ledger, actors["defense_lawyer"], public_case, title="Alibi letter",
                file_name="alibi.pdf", evidence_type=EvidenceType.PDF)

        lawyer = actors["defense_lawyer"]
        assert list_evidence(db, lawyer, public_case.id).total == 2
        assert list_evidence(db, lawyer, public_case.id, keyword="alibi").total == 1
        assert list_evidence(db, lawyer, public_case.id, status=EvidenceStatus.PENDING).total == 1
        assert list_evidence(db, lawyer, public_case.id, evidence_type=EvidenceType.IMAGE).total == 1
        page = list_evidence(db, lawyer, public_case.id, page=2, page_size=1)
        assert page.total == 2 and len(page.items) == 1

    def test_invalid_page(self, db, actors, public_case):
        with pytest.raises(BadRequest):
            list_evidence(db, actors["police"], public_case.id, page=0)


class TestUpdateDeleteEvidence:

    def test_uploader_updates_description(self, db, actors, public_case, ledger):
        item = _upload(db, ledger, actors["defense_lawyer"], public_case)
        updated = update_evidence(db, actors["defense_lawyer"], item.id, description="Taken at noon")
        assert updated.description == "Taken at noon"

    def test_fingerprint_is_immutable(self, db, actors, public_case, ledger):
        item = _upload(db, ledger, actors["police"], public_case)
        with pytest.raises(BadRequest):
            update_evidence(db, actors["police"], item.id, file_hash="sha256:zz")

    def test_only_uploader_may_change(self, db, actors, public_case, ledger):
        item = _upload(db, ledger, actors["police"], public_case)
        with pytest.raises(Forbidden) as exc_info:
            update_evidence(db, actors["defense_lawyer"], item.id, title="Mine")
        assert exc_info.value.reason == NOT_OWNER
        with pytest.raises(Forbidden):
            delete_evidence(db, actors["defense_lawyer"], item.id)

    def test_delete_takes_references_with_it(self, db, actors, public_case, ledger, advance):
        from case_ledger.corrections import create_correction
        from case_ledger.objections import create_objection

        advance(public_case, CaseStage.PROSECUTORATE)
        item = _upload(db, ledger, actors["prosecutor_a"], public_case)
        create_correction(db, ledger, actors["prosecutor_a"], public_case.id, item.id, "typo", "sha256:fix")
        create_objection(db, actors["defense_lawyer"], public_case.id, item.id, "chain of custody")

        delete_evidence(db, actors["prosecutor_a"], item.id)

        assert db.query(Evidence).count() == 0
        assert db.query(Correction).count() == 0
        assert db.query(Objection).count() == 0


class TestVerifyEvidence:

    def test_police_verifies_lawyer_submission(self, db, actors, public_case, ledger):
        item = _upload(db, ledger, actors["defense_lawyer"], public_case)
        verified = verify_evidence(db, actors["police"], item.id, approve=True, note="checked")

        assert verified.status == EvidenceStatus.VERIFIED
        assert verified.verified_by == actors["police"].user_id
        assert verified.verification_note == "checked"
        note = db.query(Notification).filter(
            Notification.type == NotificationType.EVIDENCE_VERIFIED,
        ).one()
        assert note.recipient_id == actors["defense_lawyer"].user_id

    def test_reject(self, db, actors, public_case, ledger):
        item = _upload(db, ledger, actors["defense_lawyer"], public_case)
        assert verify_evidence(db, actors["police"], item.id, approve=False).status == EvidenceStatus.REJECTED

    def test_cannot_verify_twice(self, db, actors, public_case, ledger):
        item = _upload(db, ledger, actors["defense_lawyer"], public_case)
        verify_evidence(db, actors["police"], item.id, approve=True)
        with pytest.raises(InvalidState):
            verify_evidence(db, actors["police"], item.id, approve=False)

    def test_police_evidence_needs_no_verification(self, db, actors, public_case, ledger):
        item = _upload(db, ledger, actors["police"], public_case)
        with pytest.raises(BadRequest):
            verify_evidence(db, actors["police"], item.id, approve=True)

    def test_only_police_during_investigation(self, db, actors, public_case, ledger, advance):
        item = _upload(db, ledger, actors["defense_lawyer"], public_case)
        with pytest.raises(Forbidden):
            verify_evidence(db, actors["judge"], item.id, approve=True)
        advance(public_case, CaseStage.PROSECUTORATE)
        with pytest.raises(Forbidden):
            verify_evidence(db, actors["police"], item.id, approve=True)
