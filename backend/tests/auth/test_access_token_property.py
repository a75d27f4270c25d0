"""Property-based tests for JWT access tokens."""

import uuid
from datetime import datetime, timedelta, timezone

from hypothesis import given, settings, strategies as st
from jose import jwt

from homecare.core.config import settings as app_settings
from homecare.modules.auth.jwt import (
    ADMIN_ROLE,
    CUSTOMER_ROLE,
    create_access_token,
    decode_token,
    validate_token,
)

uuid_strategy = st.uuids()
role_strategy = st.sampled_from([CUSTOMER_ROLE, ADMIN_ROLE])


class TestAccessTokenValidity:

    @given(user_id=uuid_strategy, role=role_strategy)
    @settings(max_examples=100)
    def test_token_round_trips_user_and_role(self, user_id: uuid.UUID, role: str) -> None:
        payload = validate_token(create_access_token(user_id, role=role))

        assert payload is not None, "Token should validate"
        assert payload.sub == str(user_id)
        assert payload.role == role
        assert payload.exp > datetime.now(timezone.utc)

    @given(user_id=uuid_strategy)
    @settings(max_examples=50)
    def test_expired_token_rejected(self, user_id: uuid.UUID) -> None:
        token = create_access_token(user_id, expires_delta=timedelta(seconds=-1))

        assert decode_token(token) is None

    @given(user_id=uuid_strategy)
    @settings(max_examples=50)
    def test_token_signed_with_other_key_rejected(self, user_id: uuid.UUID) -> None:
        now = datetime.now(timezone.utc)
        forged = jwt.encode(
            {"sub": str(user_id), "exp": now + timedelta(minutes=5), "iat": now, "type": "access"},
            "not-the-secret",
            algorithm=app_settings.JWT_ALGORITHM,
        )

        assert decode_token(forged) is None

    def test_non_uuid_subject_rejected(self) -> None:
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "alice", "exp": now + timedelta(minutes=5), "iat": now, "type": "access"},
            app_settings.SECRET_KEY,
            algorithm=app_settings.JWT_ALGORITHM,
        )

        assert decode_token(token) is not None
        assert validate_token(token) is None

    def test_missing_role_defaults_to_customer(self) -> None:
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": str(uuid.uuid4()), "exp": now + timedelta(minutes=5), "iat": now, "type": "access"},
            app_settings.SECRET_KEY,
            algorithm=app_settings.JWT_ALGORITHM,
        )

        assert validate_token(token).role == CUSTOMER_ROLE
