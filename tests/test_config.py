import logging

from api_test_plan.core.config import Settings, get_settings
from api_test_plan.core.logging import setup_logging


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.unauthenticated_status == 401
        assert settings.forbidden_status == 403
        assert settings.credential_placeholder == "${API_TOKEN}"
        assert settings.workers == 1

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("API_TEST_PLAN_WORKERS", "4")
        monkeypatch.setenv("API_TEST_PLAN_NOT_FOUND_SENTINEL", "missing-thing")
        settings = Settings()
        assert settings.workers == 4
        assert settings.not_found_sentinel == "missing-thing"

    def test_explicit_overrides_win_and_none_is_ignored(self, monkeypatch):
        monkeypatch.setenv("API_TEST_PLAN_WORKERS", "4")
        assert get_settings(workers=2).workers == 2
        assert get_settings(workers=None).workers == 4


class TestSetupLogging:
    def test_single_handler(self):
        setup_logging("INFO")
        setup_logging("DEBUG")
        logger = logging.getLogger("api_test_plan")
        ours = [h for h in logger.handlers if getattr(h, "_api_test_plan", False)]
        assert len(ours) == 1
        assert logger.level == logging.DEBUG
