"""
Shared fixtures: a fresh SQLite database per test, seeded actors and
case builders.
"""

import os
from pathlib import Path

import pytest

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from case_ledger.auth import identity_from_user
from case_ledger.db.models import CaseStage, CaseType, Role, User
from case_ledger.errors import ExternalFailure
from case_ledger.ledger import InMemoryLedgerClient, LedgerClient


@pytest.fixture
def sqlalchemy_db(tmp_path):
    """Configure a fresh SQLAlchemy SQLite DB for tests."""
    from case_ledger.db.session import reset_engine, init_db

    old_db_url = os.environ.get("DATABASE_URL")
    db_path = tmp_path / "case_ledger.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    reset_engine()
    init_db()

    yield

    if old_db_url is not None:
        os.environ["DATABASE_URL"] = old_db_url
    else:
        os.environ.pop("DATABASE_URL", None)
    reset_engine()


@pytest.fixture
def db(sqlalchemy_db):
    from case_ledger.db.session import SessionLocal, get_engine

    get_engine()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# nickname -> role
ACTORS = {
    "police": Role.POLICE,
    "other_police": Role.POLICE,
    "prosecutor_a": Role.PROSECUTOR,
    "prosecutor_b": Role.PROSECUTOR,
    "outside_prosecutor": Role.PROSECUTOR,
    "judge": Role.JUDGE,
    "other_judge": Role.JUDGE,
    "defense_lawyer": Role.LAWYER,
    "plaintiff_lawyer": Role.LAWYER,
    "civil_defense_lawyer": Role.LAWYER,
    "outside_lawyer": Role.LAWYER,
    "admin": Role.ADMIN,
}


@pytest.fixture
def actors(db):
    """Identity per seeded user, keyed by nickname"""
    users = {}
    for index, (nickname, role) in enumerate(ACTORS.items(), start=1):
        user = User(
            name=nickname.replace("_", " ").title(),
            email=f"{nickname}@cases.local",
            role=role,
            wallet_address="0x" + f"{index:040x}",
            is_active=True,
        )
        db.add(user)
        users[nickname] = user
    db.commit()
    identities = {nickname: identity_from_user(user) for nickname, user in users.items()}
    # end the read transaction so API sessions can write to the same file
    db.commit()
    return identities


@pytest.fixture
def ledger():
    return InMemoryLedgerClient()


class FailingLedgerClient(LedgerClient):
    """Ledger that rejects every call"""

    def __init__(self):
        self.calls = 0

    def anchor(self, case_number, fingerprint, context=None):
        self.calls += 1
        raise ExternalFailure("ledger unavailable")

    def grant_role(self, wallet_address, role):
        self.calls += 1
        raise ExternalFailure("ledger unavailable")

    def revoke_role(self, wallet_address, role):
        self.calls += 1
        raise ExternalFailure("ledger unavailable")


@pytest.fixture
def failing_ledger():
    return FailingLedgerClient()


@pytest.fixture
def public_case(db, actors):
    """Public prosecution: police, prosecutors A+B, judge, one defense lawyer"""
    from case_ledger.cases import create_case

    return create_case(
        db,
        actors["police"],
        case_number="PP-2024-001",
        title="State v. Example",
        case_type=CaseType.PUBLIC_PROSECUTION,
        judge_id=actors["judge"].user_id,
        prosecutor_ids=[actors["prosecutor_a"].user_id, actors["prosecutor_b"].user_id],
        defendant_lawyer_ids=[actors["defense_lawyer"].user_id],
    )


@pytest.fixture
def civil_case(db, actors):
    from case_ledger.cases import create_case

    return create_case(
        db,
        actors["police"],
        case_number="CV-2024-001",
        title="Example v. Example",
        case_type=CaseType.CIVIL_LITIGATION,
        judge_id=actors["judge"].user_id,
        plaintiff_lawyer_ids=[actors["plaintiff_lawyer"].user_id],
        defendant_lawyer_ids=[actors["civil_defense_lawyer"].user_id],
    )


STAGE_DRIVERS = {
    CaseStage.PROSECUTORATE: "police",
    CaseStage.COURT_TRIAL: "prosecutor_a",
    CaseStage.CLOSED: "judge",
}


@pytest.fixture
def advance(db, actors):
    """advance(case, stage): drive a case forward to `stage` with the right actors"""
    from case_ledger.workflow import STAGE_ORDER, request_transition

    def _advance(case, target: CaseStage):
        db.refresh(case)
        start = STAGE_ORDER.index(case.stage)
        for stage in STAGE_ORDER[start + 1:STAGE_ORDER.index(target) + 1]:
            request_transition(db, case.id, actors[STAGE_DRIVERS[stage]], stage)
        db.refresh(case)
        return case

    return _advance
