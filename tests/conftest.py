"""Shared test fixtures for relnotes.

Provides common fixtures used across unit tests.
"""

from collections.abc import Generator

import pytest

from relnotes.notes.grammar import SectionGrammar
from relnotes.notes.state import NoteStore
from relnotes.settings import Settings, get_settings


# =============================================================================
# SETTINGS
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with safe defaults."""
    return Settings(
        _env_file=None,  # Don't load .env in tests
        environment="testing",
        debug=True,
        llm_api_key="test-api-key",
        github_token="test-github-token",
        generation_timeout_seconds=5,
    )


@pytest.fixture
def mock_settings(test_settings: Settings, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Mock get_settings() to return test settings."""
    from relnotes import settings

    monkeypatch.setattr(settings, "get_settings", lambda: test_settings)
    return test_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Generator[None, None, None]:
    """Keep cached settings from leaking between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# NOTES
# =============================================================================


@pytest.fixture
def grammar() -> SectionGrammar:
    """Default section vocabulary."""
    return SectionGrammar()


@pytest.fixture
def store() -> NoteStore:
    """Fresh in-memory note store."""
    return NoteStore()


FULL_RESPONSE = (
    "DEVELOPER: Added a null check before dereferencing the session token.\n"
    "MARKETING: Sign-in is now more reliable.\n"
    "FEEDBACK: Consider extracting the guard into a helper.\n"
    "SECURITY: None evident.\n"
    "READABILITY: Clear naming, small diff.\n"
    "TESTS: Adds a regression test for expired sessions.\n"
    "CONTRIBUTORS: alice, bob\n"
    "CHANGES: bugfix"
)


@pytest.fixture
def full_response() -> str:
    """A well-formed model response with every default section, in order."""
    return FULL_RESPONSE
