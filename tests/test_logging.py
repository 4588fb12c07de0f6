import logging

import pytest

from visage.logging import get_logger, parse_level, set_log_level


@pytest.fixture
def fresh_logger_name(request):
    name = f"visage.tests.{request.node.name}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


class TestParseLevel:
    @pytest.mark.parametrize("name,expected", [
        ("debug", logging.DEBUG),
        ("INFO", logging.INFO),
        (" Warning ", logging.WARNING),
        (logging.ERROR, logging.ERROR),
    ])
    def test_known_levels(self, name, expected):
        assert parse_level(name) == expected

    @pytest.mark.parametrize("name", ["loud", "basic_format", ""])
    def test_unknown_levels(self, name):
        with pytest.raises(ValueError):
            parse_level(name)


class TestGetLogger:
    def test_library_default_is_warning(self, fresh_logger_name, monkeypatch):
        monkeypatch.delenv("VISAGE_LOG_LEVEL", raising=False)
        assert get_logger(fresh_logger_name).level == logging.WARNING

    def test_cli_default_is_info(self, fresh_logger_name, monkeypatch):
        monkeypatch.delenv("VISAGE_LOG_LEVEL", raising=False)
        assert get_logger(fresh_logger_name + ".cli").level == logging.INFO

    def test_environment_override(self, fresh_logger_name, monkeypatch):
        monkeypatch.setenv("VISAGE_LOG_LEVEL", "debug")
        assert get_logger(fresh_logger_name).level == logging.DEBUG

    def test_bad_environment_value_falls_back(self, fresh_logger_name, monkeypatch):
        monkeypatch.setenv("VISAGE_LOG_LEVEL", "chatty")
        assert get_logger(fresh_logger_name).level == logging.WARNING

    def test_handler_attached_once(self, fresh_logger_name):
        logger = get_logger(fresh_logger_name)
        assert get_logger(fresh_logger_name) is logger
        assert len(logger.handlers) == 1


class TestSetLogLevel:
    def test_applies_to_package_loggers_only(self, fresh_logger_name):
        ours = get_logger(fresh_logger_name)
        other = logging.getLogger("visage_unrelated")
        other.setLevel(logging.CRITICAL)
        try:
            assert set_log_level("ERROR") == logging.ERROR
            assert ours.level == logging.ERROR
            assert other.level == logging.CRITICAL
        finally:
            set_log_level("WARNING")

    def test_rejects_unknown_level(self):
        with pytest.raises(ValueError):
            set_log_level("shouting")
