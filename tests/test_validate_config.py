import json

import pytest

from scripts.validate_config import ConfigValidator

VALID_TOKEN = "Valid_Token_Part_1.Part2.Part_3_Longer_And_Complex"


def _base_config() -> dict:
    return {
        "token": VALID_TOKEN,
        "guild_ids": [1],
        "role_ids": {"admin": 10, "support": 11, "senior_staff": 12, "founder": 13},
        "ticket_categories": {"support": 20},
        "logging_channels": {"tickets": 30, "memberships": 31, "errors": 32},
    }


@pytest.fixture(autouse=True)
def _no_env_token(monkeypatch):
    monkeypatch.delenv("DISCORD_TOKEN", raising=False)


def _validator(tmp_path, payload) -> ConfigValidator:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps(payload) if isinstance(payload, dict) else payload, encoding="utf-8")
    config_path.chmod(0o600)
    return ConfigValidator(config_path=str(config_path), env_path=str(tmp_path / ".env"))


def test_valid_config_passes(tmp_path):
    validator = _validator(tmp_path, _base_config())

    assert validator.validate_all() is True
    assert validator.errors == []


def test_bad_role_id_reported(tmp_path):
    payload = _base_config()
    payload["role_ids"]["founder"] = "not-an-id"
    validator = _validator(tmp_path, payload)

    assert validator.validate_all() is False
    assert any("role_ids.founder" in error for error in validator.errors)


def test_invalid_json_reported(tmp_path):
    validator = _validator(tmp_path, "{broken")

    validator.validate_config_json()

    assert validator.errors and "Invalid JSON" in validator.errors[0]


def test_placeholder_and_duplicate_roles_warn(tmp_path):
    payload = _base_config()
    payload["token"] = "YOUR_BOT_TOKEN"
    payload["role_ids"]["staff"] = 11
    validator = _validator(tmp_path, payload)

    validator.validate_config_json()

    assert any("placeholder" in warning for warning in validator.warnings)
    assert any("role_ids.staff" in warning for warning in validator.warnings)
    assert "Discord token in config.json has invalid format" in validator.errors


def test_env_token_checked(tmp_path, monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "bad.token")
    validator = _validator(tmp_path, _base_config())

    validator.validate_environment()

    assert "DISCORD_TOKEN has invalid format" in validator.errors
