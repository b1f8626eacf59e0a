"""
Tests for settings loading.
"""
import pytest

from amount_detection.config import Settings


class TestSettings:
    """Tests for Settings defaults and environment overrides."""

    @pytest.mark.unit
    def test_defaults(self):
        settings = Settings()
        assert settings.match_tolerance == 0.10
        assert settings.context_window == 50
        assert settings.provenance_window == 20
        assert settings.skip_dates is True
        assert "800" in settings.toll_free_prefixes

    @pytest.mark.unit
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CONTEXT_WINDOW", "30")
        monkeypatch.setenv("MATCH_TOLERANCE", "0.2")
        monkeypatch.setenv("OCR_TIMEOUT", "5")
        monkeypatch.setenv("SKIP_DATES", "false")

        settings = Settings.from_env()

        assert settings.context_window == 30
        assert settings.match_tolerance == 0.2
        assert settings.ocr_timeout == 5.0
        assert settings.skip_dates is False

    @pytest.mark.unit
    def test_invalid_value_rejected(self):
        with pytest.raises(ValueError):
            Settings(match_tolerance=0)
