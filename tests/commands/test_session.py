"""Tests for the login, logout and status commands."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from pimsctl.cli import cli
from tests.conftest import GOOD_EMAIL, GOOD_PASSWORD, LOGIN_URL

LOGIN = ["login", "--email", GOOD_EMAIL, "--password", GOOD_PASSWORD]


@pytest.mark.usefixtures("_isolated_profile")
class TestLoginCommand:
    def test_login(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, LOGIN)
        assert result.exit_code == 0, result.output
        assert "derived" in result.stdout
        assert GOOD_PASSWORD not in result.output

    def test_login_json(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", *LOGIN])
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["ok"] is True
        assert payload["op"] == "login"
        assert payload["data"]["deployment"] == "derived"
        assert "s1" not in result.stdout

    def test_login_prebuilt(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", *LOGIN, "--server-url", f"{LOGIN_URL}/prebuilt"])
        assert json.loads(result.stdout)["data"]["deployment"] == "prebuilt"

    def test_password_prompt(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["login", "--email", GOOD_EMAIL], input=f"{GOOD_PASSWORD}\n")
        assert result.exit_code == 0
        assert GOOD_PASSWORD not in result.output

    def test_password_from_env(self, cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PIMSCTL_PASSWORD", GOOD_PASSWORD)
        result = cli_runner.invoke(cli, ["login", "--email", GOOD_EMAIL])
        assert result.exit_code == 0

    def test_open_pages_tagged_on_login(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(
            cli, ["--json", *LOGIN, "--open", "https://example.com/page", "--open", "about:blank"]
        )
        assert result.exit_code == 0
        assert json.loads(result.stdout)["data"]["tagged"] == ["example.com"]
        rules = cli_runner.invoke(cli, ["-q", "rules"])
        assert rules.stdout.strip() == "3060"

    def test_wrong_password(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(
            cli, ["--json", "login", "--email", GOOD_EMAIL, "--password", "nope"]
        )
        assert result.exit_code == 1
        assert result.stdout == ""
        payload = json.loads(result.stderr)
        assert payload["ok"] is False
        assert payload["error"]["code"] == "INVALID_CREDENTIALS"
        assert payload["error"]["message"] == "Invalid email or password"


@pytest.mark.usefixtures("_isolated_profile")
class TestLogoutCommand:
    def test_logout_removes_rules(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, LOGIN)
        cli_runner.invoke(cli, ["observe", "example.com", "news.example.org"])
        result = cli_runner.invoke(cli, ["--json", "logout"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)["data"]
        assert data["was_logged_in"] is True
        assert data["removed"] == 2

        rules = cli_runner.invoke(cli, ["--json", "rules"])
        assert json.loads(rules.stdout)["data"]["count"] == 0

    def test_logout_when_logged_out(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["logout"])
        assert result.exit_code == 0
        assert "removed: 0" in result.stdout


@pytest.mark.usefixtures("_isolated_profile")
class TestStatusCommand:
    def test_logged_out(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["status"])
        assert result.exit_code == 0
        assert "logged out" in result.stdout

    def test_logged_in_json(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, LOGIN)
        cli_runner.invoke(cli, ["observe", "example.com"])
        result = cli_runner.invoke(cli, ["--json", "status"])
        data = json.loads(result.stdout)["data"]
        assert data["logged_in"] is True
        assert data["email"] == GOOD_EMAIL
        assert data["known_domains"] == ["example.com"]
        assert data["rule_count"] == 1
