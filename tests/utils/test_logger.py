import logging
from unittest.mock import patch

from staffdesk.util.logger import (
    ColorFormatter,
    PromptToolkitHandler,
    get_log_filepath,
    get_logger,
    handle_exception,
    resolve_level,
    setup_logger,
    should_use_color,
)


class DummyStream:
    def __init__(self):
        self.written = []

    def write(self, msg):
        self.written.append(msg)

    def isatty(self):
        return True


def test_get_logger_returns_logger():
    logger = get_logger("test_logger")
    assert isinstance(logger, logging.Logger)
    assert any(isinstance(h, PromptToolkitHandler) for h in logger.handlers)
    assert logger.propagate is False


def test_setup_logger_idempotent():
    logger1 = setup_logger("test_logger_idem")
    logger2 = setup_logger("test_logger_idem")
    assert logger1 is logger2
    assert len(logger1.handlers) == 2


def test_color_formatter_applies_color():
    formatter = ColorFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("test", logging.ERROR, "", 0, "error occurred", None, None)
    formatted = formatter.format(record)
    assert "\033[31m" in formatted and "error occurred" in formatted


def test_should_use_color_true(monkeypatch):
    monkeypatch.setattr("sys.stderr", DummyStream())
    assert should_use_color() is True


def test_get_log_filepath_is_stable():
    path = get_log_filepath()
    assert path.parent.exists()
    assert get_log_filepath() == path


def test_resolve_level(monkeypatch):
    monkeypatch.setenv("STAFFDESK_LOG_LEVEL", "warning")
    assert resolve_level() == logging.WARNING
    monkeypatch.setenv("STAFFDESK_LOG_LEVEL", "chatty")
    assert resolve_level() == logging.DEBUG


def test_handle_exception_logs_error():
    class DummyException(Exception):
        pass

    with patch.object(get_logger("main"), "error") as mock_error:
        try:
            raise DummyException("fail")
        except DummyException as exc:
            handle_exception(DummyException, exc, exc.__traceback__)

    mock_error.assert_called_once()
    assert mock_error.call_args.args[0] == "Uncaught exception"


def test_handle_exception_passes_keyboard_interrupt_through():
    with patch("sys.__excepthook__") as default_hook:
        handle_exception(KeyboardInterrupt, KeyboardInterrupt(), None)

    default_hook.assert_called_once()
