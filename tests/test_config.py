import pytest

from config import CONFIG_ENV_VAR, ConfigurationManager, get_config


def test_reads_settings_file():
    assert get_config("postprocessing.validation.totals_tolerance") == 0.01
    assert get_config("review.review_queue.page_size") == 15
    assert get_config("output.excel.invoices_sheet") == "Invoices"


def test_missing_key_returns_default():
    assert get_config("no.such.key", "fallback") == "fallback"
    assert get_config("postprocessing.validation.totals_tolerance.deeper") is None


def test_override_and_reload():
    config = ConfigurationManager()
    config.override("review.batch.unknown_supplier", "N/A")
    assert get_config("review.batch.unknown_supplier") == "N/A"

    config.reload()
    assert get_config("review.batch.unknown_supplier") == "Unknown Supplier"


def test_singleton():
    assert ConfigurationManager() is ConfigurationManager()


def test_config_path_from_environment(tmp_path, monkeypatch):
    settings = tmp_path / "settings.yaml"
    settings.write_text("extraction:\n  base_url: http://relay.example:9000\n", encoding="utf-8")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(settings))

    assert get_config("extraction.base_url") == "http://relay.example:9000"


def test_missing_config_file(tmp_path, monkeypatch):
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "absent.yaml"))
    with pytest.raises(FileNotFoundError):
        ConfigurationManager()
