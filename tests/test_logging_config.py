import logging

from jsdeob.logging_config import close_debug_logger, configure_debug_file_logger


def test_debug_logger_replaces_previous_trace(tmp_path):
    first = tmp_path / "first.log"
    second = tmp_path / "second.log"

    logger = configure_debug_file_logger("jsdeob.test_trace", first)
    logger.debug("first message")
    logger = configure_debug_file_logger("jsdeob.test_trace", second)
    logger.debug("second message")
    close_debug_logger(logger)

    assert "first message" in first.read_text(encoding="utf-8")
    assert "second message" not in first.read_text(encoding="utf-8")
    assert "second message" in second.read_text(encoding="utf-8")
    assert logger.handlers == []
    assert logger.propagate


def test_trace_includes_child_loggers(tmp_path):
    path = tmp_path / "nested" / "trace.log"
    logger = configure_debug_file_logger("jsdeob.test_nested", path)
    try:
        logging.getLogger("jsdeob.test_nested.child").info("from child")
    finally:
        close_debug_logger(logger)

    assert "from child" in path.read_text(encoding="utf-8")


def test_propagating_trace_still_reaches_parent_handlers(tmp_path, caplog):
    path = tmp_path / "trace.log"
    logger = configure_debug_file_logger("jsdeob.test_propagate", path, propagate=True)
    try:
        logger.error("visible twice")
    finally:
        close_debug_logger(logger)

    assert "visible twice" in caplog.text
    assert "visible twice" in path.read_text(encoding="utf-8")
