"""Tests for the Frostpaw client registration script."""

import sys

import pytest

from scripts.register_client import main, register_client, validate_client_id


@pytest.mark.parametrize("client_id", ["squirrelflight", "my-app", "app_2", "abc"])
def test_valid_client_ids(client_id):
    assert validate_client_id(client_id)


@pytest.mark.parametrize("client_id", ["", "ab", "-app", "My App", "a" * 65, "app!"])
def test_invalid_client_ids(client_id):
    assert not validate_client_id(client_id)


def test_register_with_memory_store(monkeypatch):
    monkeypatch.setenv("USE_MEMORY_STORE", "true")

    result = register_client("squirrelflight", "Squirrelflight", 563808552288780322)

    assert result["status"] == "created"
    assert result["client_id"] == "squirrelflight"
    assert len(result["secret"]) >= 48


def test_dry_run_generates_no_secret(monkeypatch):
    monkeypatch.setenv("USE_MEMORY_STORE", "true")

    result = register_client("squirrelflight", "Squirrelflight", 1, dry_run=True)

    assert result == {"client_id": "squirrelflight", "secret": None, "status": "dry_run"}


def _run_main(monkeypatch, *extra):
    argv = [
        "register_client.py",
        "--client-id",
        "squirrelflight",
        "--name",
        "Squirrelflight",
        "--owner-id",
        "563808552288780322",
        *extra,
    ]
    monkeypatch.setattr(sys, "argv", argv)
    main()


def test_main_requires_database_url(monkeypatch, capsys):
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(SystemExit) as exc_info:
        _run_main(monkeypatch)

    assert exc_info.value.code == 1
    out = capsys.readouterr().out
    assert "DATABASE_URL" in out
    assert "Secret:" not in out


def test_main_dry_run_without_database_url(monkeypatch, capsys):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("USE_MEMORY_STORE", "true")

    _run_main(monkeypatch, "--dry-run")

    assert "[DRY RUN]" in capsys.readouterr().out
