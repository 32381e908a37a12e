"""
Flask CLI command tests.
"""

from pos_backend.models import Product, SessionToken, SystemLog, User
from pos_backend.services import session_service


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init"])
    assert first.exit_code == 0, first.output
    second = runner.invoke(args=["system", "init"])
    assert second.exit_code == 0, second.output

    assert db_session.query(User).count() == 2
    assert db_session.query(Product).count() == 10
    assert "already exists" in second.output


def test_verify_ledger_after_init(app, db_session):
    runner = app.test_cli_runner()
    runner.invoke(args=["system", "init"])

    result = runner.invoke(args=["inventory", "verify-ledger"])

    assert result.exit_code == 0, result.output
    assert "10/10 ledgers consistent" in result.output


def test_users_create_and_issue_token(app, db_session):
    runner = app.test_cli_runner()

    created = runner.invoke(args=["users", "create", "--name", "Ana", "--email", "Ana@Example.com", "--role", "admin"])
    assert created.exit_code == 0, created.output
    user = db_session.query(User).filter_by(email="ana@example.com").one()
    assert user.role == "admin"

    duplicate = runner.invoke(args=["users", "create", "--name", "Ana", "--email", "ana@example.com"])
    assert duplicate.exit_code != 0

    issued = runner.invoke(args=["users", "issue-token", "ana@example.com"])
    assert issued.exit_code == 0, issued.output
    token = issued.output.strip().splitlines()[-1]
    assert len(token) == 64
    assert db_session.query(SessionToken).filter_by(user_id=user.id).count() == 1


def test_low_stock_listing(app, db_session, make_product):
    make_product(sku="LOW-1", stock=2, threshold=5)
    make_product(sku="FINE-1", stock=50, threshold=5)

    result = app.test_cli_runner().invoke(args=["inventory", "low-stock"])

    assert result.exit_code == 0
    assert "LOW-1" in result.output
    assert "FINE-1" not in result.output


def test_users_deactivate_revokes_tokens(app, client, db_session, cashier_user, cashier_headers):
    session_service.create_session(cashier_user.id)

    result = app.test_cli_runner().invoke(args=["users", "deactivate", "Cashier@Example.com"])

    assert result.exit_code == 0, result.output
    assert "revoked 2 session(s)" in result.output
    assert db_session.get(User, cashier_user.id).is_active is False
    assert db_session.query(SessionToken).filter_by(user_id=cashier_user.id, is_revoked=False).count() == 0
    assert db_session.query(SystemLog).filter_by(action="user_deactivated").count() == 1
    assert client.get("/api/profile", headers=cashier_headers).status_code == 401


def test_users_deactivate_unknown_email(app, db_session):
    result = app.test_cli_runner().invoke(args=["users", "deactivate", "nobody@example.com"])
    assert result.exit_code != 0
