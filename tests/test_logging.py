"""Tests for logging setup."""

import logging

import pytest
from conftest import FakeAgentModel
from fastapi.testclient import TestClient

from assistant.main import create_app
from assistant.services.container import build_services
from assistant.utils.logging import LogConfig, get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    setup_logging(LogConfig())


class TestSetupLogging:
    """Tests for applying log levels."""

    def test_level_applies_to_module_loggers(self):
        """Test that every module logger follows the configured level."""
        logger = get_logger("assistant.services.approvals")

        setup_logging(LogConfig(level="warning"))
        assert logger.getEffectiveLevel() == logging.WARNING

        setup_logging(LogConfig(level="DEBUG"))
        assert logger.isEnabledFor(logging.DEBUG)

    def test_module_loggers_have_no_level_of_their_own(self):
        """Test that get_logger leaves level control to the package logger."""
        assert get_logger("assistant.services.turns").level == logging.NOTSET

    def test_library_loggers_quieted(self):
        """Test that chatty libraries are turned down."""
        setup_logging(LogConfig(level="DEBUG"))

        assert logging.getLogger("httpx").getEffectiveLevel() == logging.WARNING
        assert logging.getLogger("anthropic").getEffectiveLevel() == logging.WARNING

    def test_settings_log_level_takes_effect_on_startup(self, settings):
        """Test that the app's settings decide the level of its loggers."""
        settings = settings.model_copy(update={"log_level": "DEBUG"})
        services = build_services(settings, model=FakeAgentModel(responses=[]))

        with TestClient(create_app(settings, services=services)):
            assert get_logger("assistant.services.agent_runner").isEnabledFor(logging.DEBUG)

        settings = settings.model_copy(update={"log_level": "ERROR"})
        services = build_services(settings, model=FakeAgentModel(responses=[]))

        with TestClient(create_app(settings, services=services)):
            assert not get_logger("assistant.services.agent_runner").isEnabledFor(logging.WARNING)
