"""
Tests for user agent selection.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-UA-N-01 | fake-useragent available | Equivalence – normal | Library agent returned | Primary source |
| TC-UA-A-01 | fake-useragent raises | Abnormal – data missing | Agent from fallback list | Fallback |
| TC-UA-B-01 | fake-useragent returns empty | Boundary – empty | Agent from fallback list | Fallback |
"""

from unittest.mock import MagicMock, PropertyMock, patch

import pytest

pytestmark = pytest.mark.unit

from phishscan.crawler import user_agent
from phishscan.crawler.user_agent import FALLBACK_USER_AGENTS, random_user_agent


def generator_returning(**kwargs) -> MagicMock:
    generator = MagicMock()
    type(generator).random = PropertyMock(**kwargs)
    return generator


def test_library_agent():
    """The library's random agent is used when available (TC-UA-N-01)."""
    generator = generator_returning(return_value="Mozilla/5.0 (X11) Firefox/121.0")

    with patch.object(user_agent, "_generator", return_value=generator):
        assert random_user_agent() == "Mozilla/5.0 (X11) Firefox/121.0"


def test_library_failure_falls_back():
    """A failing library yields a fallback agent (TC-UA-A-01)."""
    generator = generator_returning(side_effect=RuntimeError("no browser data"))

    with patch.object(user_agent, "_generator", return_value=generator):
        assert random_user_agent() in FALLBACK_USER_AGENTS


def test_empty_agent_falls_back():
    """An empty agent string yields a fallback agent (TC-UA-B-01)."""
    generator = generator_returning(return_value="")

    with patch.object(user_agent, "_generator", return_value=generator):
        assert random_user_agent() in FALLBACK_USER_AGENTS
