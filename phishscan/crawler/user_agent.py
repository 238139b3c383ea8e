"""
User agent selection.

One user agent is picked per scan task and reused for every attempt of that
task. Agents come from fake-useragent's bundled browser data; a fixed list of
desktop Chrome agents is used when that data cannot be loaded.
"""

import random
from functools import lru_cache

from fake_useragent import UserAgent

from phishscan.utils.logging import get_logger

logger = get_logger(__name__)

FALLBACK_USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/118.0.0.0 Safari/537.36 Edg/118.0.2088.46",
)


@lru_cache(maxsize=1)
def _generator() -> UserAgent:
    return UserAgent(fallback=FALLBACK_USER_AGENTS[0])


def random_user_agent() -> str:
    """Return a random realistic desktop user agent string."""
    try:
        agent = _generator().random
    except Exception as e:
        logger.debug("fake-useragent unavailable, using fallback list", error=str(e))
        return random.choice(FALLBACK_USER_AGENTS)

    if not agent:
        return random.choice(FALLBACK_USER_AGENTS)
    return agent
