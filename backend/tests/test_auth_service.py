import pytest

from stockledger.errors import ConflictError, InvalidTokenError, ValidationError
from stockledger.models import RefreshToken, SessionToken
from stockledger.services import auth_service, session_service, token_service

from conftest import PASSWORD


class TestPasswords:
    @pytest.mark.parametrize("password", ["", "short1", "allletters", "12345678"])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(ValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_roundtrip(self):
        hashed = auth_service.hash_password("Sturdy123")
        assert hashed.startswith("$2")
        assert auth_service.verify_password("Sturdy123", hashed)
        assert not auth_service.verify_password("Sturdy124", hashed)

    def test_malformed_hash_never_verifies(self):
        assert auth_service.verify_password("Sturdy123", "not-a-bcrypt-hash") is False


class TestCreateUser:
    def test_email_normalized(self, uow, main_store):
        user = auth_service.create_user(
            uow, email="  New.Cashier@Example.COM ", password=PASSWORD, store_id=main_store.id
        )
        assert user.email == "new.cashier@example.com"
        assert user.role == "CASHIER"
        assert user.password_hash != PASSWORD

    def test_duplicate_email(self, uow, cashier):
        with pytest.raises(ConflictError):
            auth_service.create_user(uow, email=cashier.email.upper(), password=PASSWORD)

    def test_unknown_role(self, uow):
        with pytest.raises(ValidationError):
            auth_service.create_user(uow, email="x@example.com", password=PASSWORD, role="OWNER")

    def test_invalid_email(self, uow):
        with pytest.raises(ValidationError):
            auth_service.create_user(uow, email="not-an-email", password=PASSWORD)


class TestAuthenticate:
    def test_login_issues_access_and_refresh(self, db_session, uow, cashier):
        result = auth_service.authenticate(uow, cashier.email, PASSWORD)

        assert result.actor.user_id == cashier.id
        assert result.user.last_login_at is not None
        assert db_session.query(SessionToken).filter_by(user_id=cashier.id).count() == 1
        assert db_session.query(RefreshToken).filter_by(user_id=cashier.id).count() == 1

        assert session_service.validate_session(uow, result.access_token).role == "CASHIER"
        rotation = token_service.consume_refresh_token(uow, result.refresh_token)
        assert rotation.user_context.user_id == cashier.id

    def test_email_is_case_insensitive(self, uow, cashier):
        result = auth_service.authenticate(uow, cashier.email.upper(), PASSWORD)
        assert result.user.id == cashier.id

    @pytest.mark.parametrize("email,password", [
        ("cashier@stockledger.test", "Wrong1234"),
        ("nobody@stockledger.test", PASSWORD),
        ("", PASSWORD),
        ("cashier@stockledger.test", None),
    ])
    def test_failures_look_identical(self, uow, cashier, email, password):
        with pytest.raises(InvalidTokenError) as exc_info:
            auth_service.authenticate(uow, email, password)
        assert exc_info.value.message == "Invalid credentials"

    def test_disabled_user_cannot_login(self, db_session, uow, cashier):
        cashier.is_active = False
        db_session.commit()
        with pytest.raises(InvalidTokenError):
            auth_service.authenticate(uow, cashier.email, PASSWORD)
