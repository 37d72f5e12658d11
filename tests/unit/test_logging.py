"""Unit tests for calstep logging module."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator

import pytest

from calstep.core.logging import COMPONENTS, ColoredFormatter, get_logger, set_default_level

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _restore_default_level() -> Iterator[None]:
    """Save and restore the module-level _default_level after each test."""
    from calstep.core import logging as calstep_logging

    original = calstep_logging._default_level
    yield
    set_default_level(original)


class TestSetDefaultLevel:
    def test_changes_module_variable(self) -> None:
        from calstep.core import logging as calstep_logging

        set_default_level(logging.DEBUG)
        assert calstep_logging._default_level == logging.DEBUG

    def test_new_logger_uses_default_level(self) -> None:
        set_default_level(logging.WARNING)

        logger = get_logger(f'test_{uuid.uuid4().hex[:8]}')

        assert logger.level == logging.WARNING
        for handler in logger.handlers:
            assert handler.level == logging.WARNING


class TestGetLogger:
    def test_namespaced_and_not_propagating(self) -> None:
        name = f'test_{uuid.uuid4().hex[:8]}'

        logger = get_logger(name)

        assert logger.name == f'calstep.{name}'
        assert logger.propagate is False

    def test_handler_attached_once(self) -> None:
        name = f'test_{uuid.uuid4().hex[:8]}'

        get_logger(name)
        logger = get_logger(name)

        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, ColoredFormatter)


def _record(name: str, level: int, message: str) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, message, None, None)


class TestColoredFormatter:
    def test_component_and_level(self) -> None:
        formatted = ColoredFormatter().format(_record('calstep.misfire', logging.DEBUG, 'fired now'))

        assert '[misfire]' in formatted
        assert '[DEBUG]' in formatted
        assert 'fired now' in formatted

    def test_plain_layout(self) -> None:
        formatted = ColoredFormatter(use_colors=False).format(
            _record('calstep.misfire', logging.DEBUG, 'fired now')
        )

        assert '\033[' not in formatted
        # '[HH:MM:SS] ' prefix
        assert formatted[11:] == '[misfire]' + ' ' * 9 + '[DEBUG]' + ' ' * 3 + 'fired now'

    def test_messages_align_across_components(self) -> None:
        formatter = ColoredFormatter(use_colors=False)

        columns = {
            formatter.format(_record(f'calstep.{component}', logging.INFO, 'msg')).index('msg')
            for component in COMPONENTS
        }

        assert len(columns) == 1


class TestColorSwitches:
    def test_no_color_disables_colors(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv('CALSTEP_FORCE_COLOR', raising=False)
        monkeypatch.setenv('NO_COLOR', '1')

        logger = get_logger(f'test_{uuid.uuid4().hex[:8]}')

        formatter = logger.handlers[0].formatter
        assert isinstance(formatter, ColoredFormatter)
        assert formatter.use_colors is False

    def test_force_color_wins_over_no_color(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv('CALSTEP_FORCE_COLOR', '1')
        monkeypatch.setenv('NO_COLOR', '1')

        logger = get_logger(f'test_{uuid.uuid4().hex[:8]}')

        formatter = logger.handlers[0].formatter
        assert isinstance(formatter, ColoredFormatter)
        assert formatter.use_colors is True
