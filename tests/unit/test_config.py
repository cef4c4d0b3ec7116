"""Unit tests for Settings validation."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from account_service.config import Settings


def _settings(**overrides) -> Settings:
    fields = dict(
        access_token_secret="access-secret",
        refresh_token_secret="refresh-secret",
    )
    fields.update(overrides)
    return Settings(**fields)


class TestSecuritySettings:
    def test_defaults_are_valid(self):
        settings = _settings()
        assert settings.access_token_expire_minutes == 15
        assert settings.refresh_token_expire_days == 10
        assert settings.jwt_algorithm == "HS256"

    def test_equal_secrets_rejected(self):
        with pytest.raises(PydanticValidationError, match="must differ"):
            _settings(refresh_token_secret="access-secret")

    @pytest.mark.parametrize("rounds", [3, 32])
    def test_bcrypt_rounds_bounds(self, rounds):
        with pytest.raises(PydanticValidationError, match="bcrypt_rounds"):
            _settings(bcrypt_rounds=rounds)

    def test_unknown_store_backend(self):
        with pytest.raises(PydanticValidationError, match="store_backend"):
            _settings(store_backend="sqlite")


class TestEnvironment:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "5")
        monkeypatch.setenv("REVOKE_SESSIONS_ON_PASSWORD_CHANGE", "true")
        settings = _settings()
        assert settings.access_token_expire_minutes == 5
        assert settings.revoke_sessions_on_password_change is True

    def test_allowed_origins_list(self):
        settings = _settings(allowed_origins="http://a.test, http://b.test,")
        assert settings.allowed_origins_list == ["http://a.test", "http://b.test"]

    def test_reads_dotenv_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("REFRESH_TOKEN_EXPIRE_DAYS", raising=False)
        (tmp_path / ".env").write_text("refresh_token_expire_days=3\n")

        assert _settings().refresh_token_expire_days == 3
