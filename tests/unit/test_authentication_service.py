"""Tests for AuthenticationService and session token helpers.

Covers credential checks, the dummy-hash comparison for unknown emails,
last sign-in stamping, session JWT issuance and resolution, session
revocation through logout and password reset, and the register/reset/sign-in
round trip across two accounts.
"""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import jwt
import pytest

from tests.conftest import FrozenClock, RecordingEventBus
from turnstile.core.auth import create_jwt, decode_jwt, decode_session_claims
from turnstile.core.errors import InvalidCredentialsError, InvalidOrExpiredTokenError
from turnstile.core.passwords import DUMMY_HASH, BcryptPasswordHasher
from turnstile.events import AccountAuthenticated, PasswordResetRequested
from turnstile.models.account import Account
from turnstile.schemas.account import AccountCreate
from turnstile.services.account_service import AccountService
from turnstile.services.authentication_service import (
    AuthenticationService,
    decode_session_token,
)

_MISSING_UUID = uuid.UUID("99999999-9999-9999-9999-999999999999")


class TestAuthenticate:
    """Tests for AuthenticationService.authenticate()."""

    async def test_valid_credentials_issue_session(
        self,
        authentication_service: AuthenticationService,
        event_bus: RecordingEventBus,
        test_account: Account,
    ):
        """Correct credentials return the account and a decodable JWT."""
        session = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )

        assert session.account.id == test_account.id
        assert decode_session_token(session.token) == test_account.id
        assert session.expires_at > datetime.now(UTC)
        assert event_bus.published == [AccountAuthenticated(session.account)]

    async def test_email_is_case_insensitive(
        self,
        authentication_service: AuthenticationService,
        test_account: Account,
    ):
        """Sign-in matches the stored lowercase email."""
        session = await authentication_service.authenticate(
            "OWNER@Example.com", "password123"
        )

        assert session.account.id == test_account.id

    async def test_stamps_last_authenticated_at(
        self,
        authentication_service: AuthenticationService,
        clock: FrozenClock,
        test_account: Account,  # noqa: ARG002 - registers owner@example.com
    ):
        """A successful sign-in records the clock's current time."""
        session = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )

        stamped = session.account.last_authenticated_at
        assert stamped is not None
        assert stamped.replace(tzinfo=None) == clock.now.replace(tzinfo=None)

    async def test_profile_view(
        self,
        authentication_service: AuthenticationService,
        test_account: Account,
    ):
        """The session exposes the public profile of the account."""
        session = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )

        profile = session.profile
        assert profile.id == test_account.id
        assert profile.email == "owner@example.com"
        assert profile.is_privileged is True
        assert profile.last_authenticated_at is not None

    async def test_wrong_password_raises(
        self,
        authentication_service: AuthenticationService,
        event_bus: RecordingEventBus,
        test_account: Account,
    ):
        """A bad password is rejected and nothing is stamped."""
        with pytest.raises(InvalidCredentialsError) as exc_info:
            await authentication_service.authenticate("owner@example.com", "wrong")

        assert exc_info.value.code == "INVALID_CREDENTIALS"
        assert exc_info.value.message == "Invalid email or password"
        assert test_account.last_authenticated_at is None
        assert event_bus.published == []

    async def test_unknown_email_raises_same_error(
        self,
        authentication_service: AuthenticationService,
        password_hasher: BcryptPasswordHasher,
    ):
        """Unknown emails get the same error after a dummy comparison."""
        with (
            patch.object(password_hasher, "verify", return_value=False) as mock_verify,
            pytest.raises(InvalidCredentialsError) as exc_info,
        ):
            await authentication_service.authenticate("ghost@example.com", "pw")

        assert exc_info.value.message == "Invalid email or password"
        mock_verify.assert_called_once_with("pw", DUMMY_HASH)

    async def test_unverified_account_may_sign_in(
        self,
        authentication_service: AuthenticationService,
        test_account: Account,
    ):
        """Verification is not a precondition for authentication."""
        assert test_account.is_verified is False

        session = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )

        assert session.account.id == test_account.id


class TestResolveSession:
    """Tests for AuthenticationService.resolve_session()."""

    async def test_returns_account_for_valid_token(
        self,
        authentication_service: AuthenticationService,
        test_account: Account,
    ):
        """A freshly issued token resolves to its account."""
        session = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )

        account = await authentication_service.resolve_session(session.token)

        assert account.id == test_account.id

    async def test_deleted_account_raises(
        self,
        authentication_service: AuthenticationService,
        auth_secret: str,
    ):
        """A valid signature for a vanished account is rejected."""
        token = create_jwt(account_id=str(_MISSING_UUID), secret=auth_secret)

        with pytest.raises(InvalidCredentialsError, match="Invalid session"):
            await authentication_service.resolve_session(token)

    async def test_token_issued_before_revocation_raises(
        self,
        account_service: AccountService,
        authentication_service: AuthenticationService,
        auth_secret: str,
        test_account: Account,
    ):
        """A token older than sessions_invalidated_before is rejected."""
        token = create_jwt(
            account_id=str(test_account.id),
            secret=auth_secret,
            now=datetime.now(UTC) - timedelta(minutes=1),
        )
        await account_service.invalidate_sessions(test_account.id)

        with pytest.raises(InvalidCredentialsError, match="Invalid session"):
            await authentication_service.resolve_session(token)

    async def test_token_issued_after_revocation_is_accepted(
        self,
        account_service: AccountService,
        authentication_service: AuthenticationService,
        auth_secret: str,
        test_account: Account,
    ):
        """Revocation only affects sessions issued before the stamp."""
        await account_service.invalidate_sessions(test_account.id)
        token = create_jwt(account_id=str(test_account.id), secret=auth_secret)

        account = await authentication_service.resolve_session(token)

        assert account.id == test_account.id


class TestLogout:
    """Tests for AuthenticationService.logout()."""

    async def test_token_is_rejected_after_logout(
        self,
        authentication_service: AuthenticationService,
        test_account: Account,  # noqa: ARG002 - registers owner@example.com
    ):
        """The signed-out token no longer resolves."""
        session = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )

        await authentication_service.logout(session.token)

        with pytest.raises(InvalidCredentialsError, match="Invalid session"):
            await authentication_service.resolve_session(session.token)

    async def test_second_logout_with_same_token_raises(
        self,
        authentication_service: AuthenticationService,
        test_account: Account,  # noqa: ARG002 - registers owner@example.com
    ):
        """A token can be signed out only once."""
        session = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )
        await authentication_service.logout(session.token)

        with pytest.raises(InvalidCredentialsError):
            await authentication_service.logout(session.token)

    async def test_invalid_token_raises(
        self, authentication_service: AuthenticationService
    ):
        """Logout requires a valid session."""
        with pytest.raises(InvalidCredentialsError):
            await authentication_service.logout("not.a.jwt")

    async def test_signs_out_every_session_of_the_account(
        self,
        authentication_service: AuthenticationService,
        test_account: Account,  # noqa: ARG002 - registers owner@example.com
    ):
        """Other sessions of the same account are revoked too."""
        first = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )
        second = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )

        await authentication_service.logout(first.token)

        with pytest.raises(InvalidCredentialsError):
            await authentication_service.resolve_session(second.token)

    async def test_new_sign_in_after_logout_works(
        self,
        authentication_service: AuthenticationService,
        test_account: Account,
    ):
        """Signing in again issues a session that resolves."""
        old = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )
        await authentication_service.logout(old.token)

        new = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )

        account = await authentication_service.resolve_session(new.token)
        assert account.id == test_account.id

    async def test_other_accounts_keep_their_sessions(
        self,
        authentication_service: AuthenticationService,
        test_account: Account,  # noqa: ARG002 - registers owner@example.com
        other_account: Account,
    ):
        """Logout revokes sessions of the signed-out account only."""
        owner = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )
        other = await authentication_service.authenticate(
            "other@example.com", "password456"
        )

        await authentication_service.logout(owner.token)

        account = await authentication_service.resolve_session(other.token)
        assert account.id == other_account.id


class TestDecodeSessionToken:
    """Tests for decode_session_token() and the JWT helpers."""

    def test_round_trip(self, auth_secret: str):
        """A token decodes to the account id it was issued for."""
        account_id = uuid.uuid4()
        token = create_jwt(account_id=str(account_id), secret=auth_secret)

        assert decode_jwt(token, secret=auth_secret) == account_id

    def test_claims_keep_sub_second_issue_time(self, auth_secret: str):
        """iat is carried with microsecond precision."""
        account_id = uuid.uuid4()
        issued_at = (datetime.now(UTC) - timedelta(minutes=1)).replace(
            microsecond=250000
        )
        token = create_jwt(
            account_id=str(account_id), secret=auth_secret, now=issued_at
        )

        claims = decode_session_claims(token, secret=auth_secret)

        assert claims.account_id == account_id
        assert claims.issued_at == issued_at.timestamp()

    def test_expired_token_raises(self, auth_secret: str):
        """Tokens past exp are rejected."""
        token = create_jwt(
            account_id=str(uuid.uuid4()),
            secret=auth_secret,
            expires_delta=timedelta(minutes=5),
            now=datetime.now(UTC) - timedelta(hours=1),
        )

        with pytest.raises(InvalidCredentialsError):
            decode_session_token(token)

    def test_wrong_secret_raises(self, auth_secret: str):  # noqa: ARG002
        """Tokens signed with another key are rejected."""
        token = create_jwt(
            account_id=str(uuid.uuid4()),
            secret="another-secret-that-is-also-long-enough-for-hs256",
        )

        with pytest.raises(InvalidCredentialsError):
            decode_session_token(token)

    def test_non_uuid_subject_raises(self, auth_secret: str):
        """The sub claim must be an account UUID."""
        token = create_jwt(account_id="not-a-uuid", secret=auth_secret)

        with pytest.raises(jwt.InvalidTokenError):
            decode_jwt(token, secret=auth_secret)
        with pytest.raises(InvalidCredentialsError):
            decode_session_token(token)

    def test_garbage_raises(self, auth_secret: str):  # noqa: ARG002
        """Malformed input is rejected."""
        with pytest.raises(InvalidCredentialsError):
            decode_session_token("not.a.jwt")


class TestResetThenSignIn:
    """Two accounts, one password reset, then sign-in with old and new."""

    async def test_reset_password_round_trip(
        self,
        account_service: AccountService,
        authentication_service: AuthenticationService,
        event_bus: RecordingEventBus,
    ):
        """Old credential stops working, new one works, token is spent."""
        first = await account_service.create(
            AccountCreate(email="a@x.com", password="pw1")
        )
        second = await account_service.create(
            AccountCreate(email="b@x.com", password="pw2")
        )
        assert first.is_privileged is True
        assert second.is_privileged is False

        await account_service.request_password_reset("b@x.com")
        token = event_bus.of_type(PasswordResetRequested)[-1].token

        await account_service.reset_password(token, "pw3")

        with pytest.raises(InvalidCredentialsError):
            await authentication_service.authenticate("b@x.com", "pw2")
        session = await authentication_service.authenticate("b@x.com", "pw3")
        assert session.account.id == second.id

        with pytest.raises(InvalidOrExpiredTokenError):
            await account_service.reset_password(token, "pw4")

        # The other account is untouched
        other = await authentication_service.authenticate("a@x.com", "pw1")
        assert other.account.id == first.id

    async def test_reset_revokes_existing_sessions(
        self,
        account_service: AccountService,
        authentication_service: AuthenticationService,
        event_bus: RecordingEventBus,
        test_account: Account,  # noqa: ARG002 - registers owner@example.com
    ):
        """A session opened before the reset stops resolving."""
        before = await authentication_service.authenticate(
            "owner@example.com", "password123"
        )
        await account_service.request_password_reset("owner@example.com")
        token = event_bus.of_type(PasswordResetRequested)[-1].token

        await account_service.reset_password(token, "new-password")

        with pytest.raises(InvalidCredentialsError):
            await authentication_service.resolve_session(before.token)
        after = await authentication_service.authenticate(
            "owner@example.com", "new-password"
        )
        assert (await authentication_service.resolve_session(after.token)).id == (
            after.account.id
        )
