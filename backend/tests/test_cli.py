from datetime import timedelta

from stockledger.models import RefreshToken, User
from stockledger.services import token_service
from stockledger.time_utils import utcnow


def test_users_create_and_list(app, db_session, main_store):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "users", "create",
        "--email", "owner@stockledger.test",
        "--password", "Password123",
        "--role", "ADMIN",
    ])
    assert "PASS Created user: owner@stockledger.test" in result.output
    assert db_session.query(User).filter_by(email="owner@stockledger.test").count() == 1

    result = runner.invoke(args=["users", "list"])
    assert "owner@stockledger.test" in result.output


def test_users_create_rejects_weak_password(app, db_session):
    result = app.test_cli_runner().invoke(args=[
        "users", "create", "--email", "weak@stockledger.test", "--password", "weak", "--role", "CASHIER",
    ])
    assert "FAIL Failed to create user" in result.output


def test_reconcile_reports_drift(app, db_session, tire_stock):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["ledger", "reconcile", "--strict"])
    assert result.exit_code == 0
    assert "1 valid, 0 invalid" in result.output

    tire_stock.quantity = 7
    db_session.commit()

    result = runner.invoke(args=["ledger", "reconcile", "--strict"])
    assert result.exit_code == 1
    assert "DRIFT" in result.output
    assert "discrepancy=-3" in result.output


def test_cleanup_tokens(app, db_session, uow, cashier):
    record, _ = token_service.issue_refresh_token(uow, cashier.id)
    record.expires_at = utcnow() - timedelta(days=10)
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-tokens", "--retention-days", "7"])
    assert "Deleted 1 refresh tokens" in result.output
    assert db_session.query(RefreshToken).count() == 0
