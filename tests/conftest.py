"""Configure structlog for tests and give every test empty quiz stores."""

import pytest
import structlog

from riichi_club import main
from riichi_club.repository import InMemoryQuizStore

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=False,
)


@pytest.fixture(autouse=True)
def _fresh_stores(monkeypatch):
    monkeypatch.setattr(main, "discard_store", InMemoryQuizStore())
    monkeypatch.setattr(main, "decision_store", InMemoryQuizStore())
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
