"""Tests for the flask CLI command groups."""

from serialpos.models import User
from serialpos.services.serial_service import validate_format


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init"])
    second = runner.invoke(args=["system", "init"])

    assert first.exit_code == 0
    assert "already exists" in second.output
    assert db_session.query(User).count() == 3


def test_issue_token_for_unknown_user(app, db_session):
    result = app.test_cli_runner().invoke(args=["users", "issue-token", "--username", "ghost"])
    assert result.exit_code != 0


def test_test_imei_prints_valid_numbers(app):
    result = app.test_cli_runner().invoke(args=["serials", "test-imei", "--count", "3"])
    imeis = result.output.split()
    assert len(imeis) == 3
    assert all(validate_format(i, "IMEI").is_valid for i in imeis)


def test_release_expired_reservations_command(app, db_session):
    result = app.test_cli_runner().invoke(args=["maintenance", "release-expired-reservations"])
    assert result.exit_code == 0
    assert "Released 0" in result.output
