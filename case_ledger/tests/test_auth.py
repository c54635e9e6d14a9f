"""
Identity Context Tests
======================
"""

import jwt

from case_ledger.auth import AuthService, Identity, coerce_role, decode_token
from case_ledger.config import get_settings
from case_ledger.db.models import Role, User


def _token(claims, secret=None):
    settings = get_settings()
    return jwt.encode(claims, secret or settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def test_coerce_role():
    assert coerce_role(Role.JUDGE) is Role.JUDGE
    assert coerce_role("lawyer") is Role.LAWYER
    assert coerce_role("janitor") is None
    assert coerce_role(None) is None


def test_identity_properties():
    assert Identity(user_id="u1", role=Role.ADMIN).is_admin
    assert Identity(user_id="u1", role=Role.POLICE).role_value == "police"
    assert Identity(user_id="u1", role="bogus").role_value == "bogus"


def test_decode_token_rejects_bad_signature():
    assert decode_token(_token({"sub": "u1"}, secret="a-different-secret-that-is-long-enough-for-hs256")) is None
    assert decode_token("garbage") is None
    assert decode_token(_token({"sub": "u1"}))["sub"] == "u1"


class TestAuthenticate:

    def test_user_id_header(self, db, actors):
        identity = AuthService(db).authenticate(user_id=actors["judge"].user_id)
        assert identity.user_id == actors["judge"].user_id
        assert identity.role == Role.JUDGE

    def test_bearer_token(self, db, actors):
        token = _token({"sub": actors["police"].user_id})
        identity = AuthService(db).authenticate(authorization=f"Bearer {token}")
        assert identity.user_id == actors["police"].user_id

    def test_user_id_claim(self, db, actors):
        token = _token({"user_id": actors["police"].user_id})
        assert AuthService(db).authenticate(authorization=f"bearer {token}") is not None

    def test_bearer_wins_over_header(self, db, actors):
        token = _token({"sub": actors["police"].user_id})
        identity = AuthService(db).authenticate(
            authorization=f"Bearer {token}",
            user_id=actors["judge"].user_id,
        )
        assert identity.user_id == actors["police"].user_id

    def test_invalid_token_does_not_fall_back(self, db, actors):
        identity = AuthService(db).authenticate(
            authorization="Bearer garbage",
            user_id=actors["judge"].user_id,
        )
        assert identity is None

    def test_inactive_or_unknown_user(self, db, actors):
        user = db.query(User).filter(User.id == actors["judge"].user_id).one()
        user.is_active = False
        db.commit()

        service = AuthService(db)
        assert service.authenticate(user_id=user.id) is None
        assert service.authenticate(user_id="nobody") is None
        assert service.authenticate() is None
