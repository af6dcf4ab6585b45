import logging

from core.logger import get_logger, get_session_logger, set_log_level, setup_logging


def test_setup_logging_installs_single_stdout_handler():
    setup_logging("DEBUG")
    setup_logging("INFO")

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.level == logging.INFO
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("uvicorn.access").propagate is True


def test_set_log_level_changes_root_level():
    setup_logging("INFO")

    set_log_level("debug")
    assert logging.getLogger().level == logging.DEBUG

    set_log_level("not-a-level")
    assert logging.getLogger().level == logging.INFO


def test_get_logger_is_namespaced():
    assert get_logger("sessions.manager").name == "sessions.manager"


def test_session_logger_tags_messages(caplog):
    log = get_session_logger(get_logger("sessions.pipeline"), "1700000000000-abcd1234")

    with caplog.at_level(logging.INFO, logger="sessions.pipeline"):
        log.info("user said 'hi'")

    record = caplog.records[-1]
    assert record.getMessage() == "[session 1700000000000-abcd1234] user said 'hi'"
    assert record.session_id == "1700000000000-abcd1234"
