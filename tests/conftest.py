"""
Global pytest fixtures for the shortener test suite.

Responsibilities:
    - Provide isolated in-memory and file-journal storage fixtures
    - Provide a URLManager wired to the in-memory storage (worker running)
    - Provide a fresh FastAPI TestClient via the app factory

Why an app factory?
    `create_app(manager)` lets each test get fresh state and a manager it
    can inspect directly, eliminating cross-test flakiness.
"""

import random
from typing import Iterable

import pytest
from fastapi.testclient import TestClient

from main import create_app
from shortener.manager.generator import BaseGenerator, RandomGenerator
from shortener.manager.url_manager import URLManager
from shortener.storage.file_storage import FileStorage
from shortener.storage.storage import Storage


class ScriptedGenerator(BaseGenerator):
    """Returns the given codes in order; used to force collisions."""

    def __init__(self, codes: Iterable[str]) -> None:
        self.codes = iter(codes)

    def generate(self, length=None) -> str:
        return next(self.codes)


@pytest.fixture
def scripted():
    """Factory for generators that return fixed codes in order."""
    return ScriptedGenerator


@pytest.fixture
def generator() -> RandomGenerator:
    """Seeded generator so failures reproduce."""
    return RandomGenerator(rng=random.Random(1234))


@pytest.fixture
def storage(generator) -> Storage:
    """Fresh in-memory storage."""
    return Storage(generator=generator)


@pytest.fixture
def journal_path(tmp_path) -> str:
    return str(tmp_path / "journal" / "urls.jsonl")


@pytest.fixture
def file_storage(journal_path, generator) -> FileStorage:
    """Fresh journal-backed storage in a temporary directory."""
    return FileStorage(journal_path, generator=generator)


@pytest.fixture
def manager(storage):
    """URLManager over in-memory storage; the delete worker is stopped afterwards."""
    mgr = URLManager(storage=storage)
    yield mgr
    mgr.stop(timeout=2)


@pytest.fixture
def client(manager):
    """
    Provide a TestClient over a fresh app built around the manager fixture.

    Entering the client runs the app lifespan, so leaving it stops the manager.
    """
    with TestClient(create_app(manager)) as c:
        yield c
