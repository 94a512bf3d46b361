"""
Refresh token ledger tests.

Verifies:
- Refresh tokens are single use and rotate on every consumption
- Revoking a token revokes every token issued after it in its chain
- Expired tokens are purged after the retention window
"""

from datetime import timedelta

import pytest

from stockledger.errors import ConflictError, InvalidTokenError, NotFoundError
from stockledger.models import RefreshToken, SessionToken
from stockledger.services import session_service, token_service
from stockledger.time_utils import utcnow


class TestConsumeRefreshToken:
    def test_rotation_issues_new_pair(self, db_session, uow, cashier):
        record, token = token_service.issue_refresh_token(uow, cashier.id)
        rotation = token_service.consume_refresh_token(uow, token)

        assert rotation.refresh_token != token
        assert rotation.user_context.user_id == cashier.id
        assert rotation.user_context.store_id == cashier.store_id

        db_session.expire_all()
        old = db_session.get(RefreshToken, record.id)
        assert old.revoked is True
        assert old.replaced_by_id == rotation.refresh_record.id
        assert old.state == "ROTATED"

        assert session_service.validate_session(uow, rotation.access_token).user_id == cashier.id

    def test_token_is_single_use(self, uow, cashier):
        _, token = token_service.issue_refresh_token(uow, cashier.id)
        token_service.consume_refresh_token(uow, token)

        with pytest.raises(InvalidTokenError):
            token_service.consume_refresh_token(uow, token)

    def test_successor_is_usable(self, uow, cashier):
        _, token = token_service.issue_refresh_token(uow, cashier.id)
        first = token_service.consume_refresh_token(uow, token)
        second = token_service.consume_refresh_token(uow, first.refresh_token)
        assert second.refresh_record.id != first.refresh_record.id

    @pytest.mark.parametrize("token", [None, "", "not-a-real-token"])
    def test_unknown_token(self, uow, token):
        with pytest.raises(InvalidTokenError):
            token_service.consume_refresh_token(uow, token)

    def test_expired_token(self, db_session, uow, cashier):
        record, token = token_service.issue_refresh_token(uow, cashier.id)
        record.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        with pytest.raises(InvalidTokenError):
            token_service.consume_refresh_token(uow, token)

    def test_disabled_user(self, db_session, uow, cashier):
        _, token = token_service.issue_refresh_token(uow, cashier.id)
        cashier.is_active = False
        db_session.commit()

        with pytest.raises(InvalidTokenError):
            token_service.consume_refresh_token(uow, token)

    def test_unverified_user(self, db_session, uow, cashier):
        _, token = token_service.issue_refresh_token(uow, cashier.id)
        cashier.is_verified = False
        db_session.commit()

        with pytest.raises(InvalidTokenError):
            token_service.consume_refresh_token(uow, token)


class TestRevokeRefreshToken:
    def test_revoking_root_revokes_whole_chain(self, db_session, uow, cashier):
        root, token = token_service.issue_refresh_token(uow, cashier.id)
        first = token_service.consume_refresh_token(uow, token)
        second = token_service.consume_refresh_token(uow, first.refresh_token)

        revoked = token_service.revoke_refresh_token(uow, root.id, reason="security")

        # Root and first were already rotated; only the live tail is revoked now
        assert revoked == [second.refresh_record.id]
        with pytest.raises(InvalidTokenError):
            token_service.consume_refresh_token(uow, second.refresh_token)

        db_session.expire_all()
        tail = db_session.get(RefreshToken, second.refresh_record.id)
        assert tail.state == "REVOKED"
        assert tail.revoked_reason == "security"

    def test_revoke_live_token(self, uow, cashier):
        record, _ = token_service.issue_refresh_token(uow, cashier.id)
        assert token_service.revoke_refresh_token(uow, record.id) == [record.id]

    def test_revoking_twice_conflicts(self, uow, cashier):
        record, _ = token_service.issue_refresh_token(uow, cashier.id)
        token_service.revoke_refresh_token(uow, record.id)

        with pytest.raises(ConflictError):
            token_service.revoke_refresh_token(uow, record.id)

    def test_unknown_token_id(self, uow):
        with pytest.raises(NotFoundError):
            token_service.revoke_refresh_token(uow, 404)

    def test_revoke_all_user_tokens(self, db_session, uow, cashier, manager):
        token_service.issue_refresh_token(uow, cashier.id)
        token_service.issue_refresh_token(uow, cashier.id)
        _, other = token_service.issue_refresh_token(uow, manager.id)
        _, access = session_service.create_session(uow, cashier.id)

        result = token_service.revoke_all_user_tokens(uow, cashier.id)

        assert result == {"refresh_tokens_revoked": 2, "sessions_revoked": 1}
        assert session_service.validate_session(uow, access) is None
        # Other users are untouched
        token_service.consume_refresh_token(uow, other)


class TestTokenHousekeeping:
    def test_list_user_tokens(self, uow, cashier):
        _, token = token_service.issue_refresh_token(uow, cashier.id)
        token_service.consume_refresh_token(uow, token)

        states = sorted(t["state"] for t in token_service.list_user_tokens(uow, cashier.id))
        assert states == ["ACTIVE", "ROTATED"]

    def test_cleanup_respects_retention(self, db_session, uow, cashier):
        stale, _ = token_service.issue_refresh_token(uow, cashier.id)
        recent, _ = token_service.issue_refresh_token(uow, cashier.id)
        live, _ = token_service.issue_refresh_token(uow, cashier.id)
        stale.expires_at = utcnow() - timedelta(days=8)
        recent.expires_at = utcnow() - timedelta(days=1)
        db_session.commit()
        stale_id, live_id = stale.id, live.id

        assert token_service.cleanup_expired_tokens(uow) == 1

        db_session.expire_all()
        assert db_session.get(RefreshToken, stale_id) is None
        assert db_session.query(RefreshToken).count() == 2
        assert db_session.get(RefreshToken, live_id) is not None

    def test_cleanup_detaches_forward_links(self, db_session, uow, cashier):
        root, token = token_service.issue_refresh_token(uow, cashier.id)
        rotation = token_service.consume_refresh_token(uow, token)
        successor = db_session.get(RefreshToken, rotation.refresh_record.id)
        successor.expires_at = utcnow() - timedelta(days=30)
        db_session.commit()
        root_id = root.id

        assert token_service.cleanup_expired_tokens(uow) == 1

        db_session.expire_all()
        assert db_session.get(RefreshToken, root_id).replaced_by_id is None


class TestSessions:
    def test_create_and_validate(self, uow, manager):
        session, token = session_service.create_session(uow, manager.id)
        actor = session_service.validate_session(uow, token)

        assert actor.user_id == manager.id
        assert actor.role == "MANAGER"
        assert actor.is_privileged
        assert session.token_hash == session_service.hash_token(token)
        assert session.token_hash != token

    def test_expired_session(self, db_session, uow, manager):
        session, token = session_service.create_session(uow, manager.id)
        session.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()
        assert session_service.validate_session(uow, token) is None

    def test_revoke_session(self, db_session, uow, manager):
        _, token = session_service.create_session(uow, manager.id)

        assert session_service.revoke_session(uow, token) is True
        assert session_service.revoke_session(uow, token) is False
        assert session_service.validate_session(uow, token) is None
        assert db_session.query(SessionToken).filter_by(is_revoked=True).count() == 1


class TestLogout:
    def test_revokes_session_and_refresh_chain(self, uow, cashier):
        _, access = session_service.create_session(uow, cashier.id)
        _, refresh = token_service.issue_refresh_token(uow, cashier.id)

        result = token_service.logout(uow, user_id=cashier.id, access_token=access, refresh_token=refresh)

        assert result["session_revoked"] is True
        assert len(result["refresh_tokens_revoked"]) == 1
        assert session_service.validate_session(uow, access) is None
        with pytest.raises(InvalidTokenError):
            token_service.consume_refresh_token(uow, refresh)

    def test_other_users_refresh_token_untouched(self, uow, cashier, manager):
        _, access = session_service.create_session(uow, cashier.id)
        _, other = token_service.issue_refresh_token(uow, manager.id)

        result = token_service.logout(uow, user_id=cashier.id, access_token=access, refresh_token=other)

        assert result["refresh_tokens_revoked"] == []
        token_service.consume_refresh_token(uow, other)

    def test_failure_keeps_both_tokens(self, monkeypatch, uow, cashier):
        _, access = session_service.create_session(uow, cashier.id)
        _, refresh = token_service.issue_refresh_token(uow, cashier.id)

        def broken_chain(*args, **kwargs):
            raise RuntimeError("refresh store unavailable")

        monkeypatch.setattr(token_service, "_revoke_chain", broken_chain)
        with pytest.raises(RuntimeError):
            token_service.logout(uow, user_id=cashier.id, access_token=access, refresh_token=refresh)

        assert session_service.validate_session(uow, access).user_id == cashier.id
        token_service.consume_refresh_token(uow, refresh)
