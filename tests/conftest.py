from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

import ezburn
from ezburn.api import Service
from ezburn.backends import create_backend
from ezburn.engine import GraphEngine, Transformer
from ezburn.logging import ROOT_LOGGER
from tests._fixtures.project_builder import ProjectBuilder
from tests._fixtures.transform_stub import stub_transform

BACKEND_NAMES = ("native", "main", "worker")


@pytest.fixture
def project(tmp_path: Path) -> ProjectBuilder:
    """Provide a reusable project builder rooted at the pytest tmp_path."""
    return ProjectBuilder(tmp_path)


@pytest.fixture(autouse=True)
def _reset_global_service() -> Iterator[None]:
    yield
    ezburn.stop()


@pytest.fixture(autouse=True)
def _restore_logger() -> Iterator[None]:
    """Undo handlers installed by configure_logging (the CLI calls it on every run)."""
    logger = logging.getLogger(ROOT_LOGGER)
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        if handler not in saved[0]:
            handler.close()
    handlers, level, propagate = saved
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture(params=BACKEND_NAMES)
def service(request: pytest.FixtureRequest) -> Iterator[Service]:
    """A started service for each backend, sharing a stubbed transformer."""
    svc = Service(create_backend(request.param), GraphEngine(Transformer(runner=stub_transform)))
    svc.start()
    try:
        yield svc
    finally:
        svc.close()
