import logging

import structlog

from agentx.logging import bind_context, bind_turn, clear_context, configure_logging


def test_turn_context_is_bound_and_cleared() -> None:
    bind_context(request_id="req_1")
    bind_turn("google/gemini-2.5-flash", ["fs", "git"])
    bound = structlog.contextvars.get_contextvars()
    assert bound == {
        "request_id": "req_1",
        "model": "google/gemini-2.5-flash",
        "mcp_servers": "fs,git",
    }
    clear_context()
    assert structlog.contextvars.get_contextvars() == {}


def test_configure_logging_quiets_protocol_loggers() -> None:
    configure_logging("DEBUG", app_env="dev")
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("mcp").level == logging.WARNING
    assert len(logging.getLogger().handlers) == 1
    configure_logging("ERROR", json_output=True)
    assert logging.getLogger("httpx").level == logging.ERROR
