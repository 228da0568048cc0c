"""Client configuration.

Defaults live in module-level constants; ``ClientConfig`` bundles them for one
download session. The session token is read from a token file, the same way
the server entry point always did it.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ConfigError

logger = logging.getLogger("notion-graph")

NOTION_HOST = "https://www.notion.so"
# modern Chrome
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_13_5) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/69.0.3483.0 Safari/537.36"
)
ACCEPT_LANGUAGE = "en-US,en;q=0.9"
REQUEST_TIMEOUT = 30.0  # seconds

# Minimum spacing between the starts of two consecutive requests (seconds)
MIN_REQUEST_INTERVAL = 0.333
# Sleep before each retry of a 429 response; its length is the retry count
RETRY_DELAYS = (3.0, 5.0, 10.0)

# The web client asks for a bigger first chunk, then smaller ones
FIRST_CHUNK_LIMIT = 50
CHUNK_LIMIT = 30

# The API accepted 6k ids in one record request, we stay well below that
MAX_RECORDS_PER_REQUEST = 128 * 10

QUERY_ROW_LIMIT = 50
DEFAULT_TIME_ZONE = "America/Los_Angeles"

# Activities per getActivityLog page
ACTIVITY_LOG_LIMIT = 20


@dataclass
class ClientConfig:
    """Settings for one credentialed session."""
    token: Optional[str] = None
    host: str = NOTION_HOST
    user_agent: str = USER_AGENT
    accept_language: str = ACCEPT_LANGUAGE
    timeout: float = REQUEST_TIMEOUT
    min_request_interval: float = MIN_REQUEST_INTERVAL
    retry_delays: tuple[float, ...] = RETRY_DELAYS
    first_chunk_limit: int = FIRST_CHUNK_LIMIT
    chunk_limit: int = CHUNK_LIMIT
    max_records_per_request: int = MAX_RECORDS_PER_REQUEST
    query_row_limit: int = QUERY_ROW_LIMIT
    default_time_zone: str = DEFAULT_TIME_ZONE

    def __post_init__(self):
        if self.max_records_per_request < 1:
            raise ConfigError("max_records_per_request must be at least 1")
        if self.min_request_interval < 0:
            raise ConfigError("min_request_interval can't be negative")
        self.retry_delays = tuple(self.retry_delays)


def load_token(path: str | Path) -> str:
    """Read the token_v2 session cookie value from a file.

    Raises:
        ConfigError: If the file doesn't exist or is empty.
    """
    token_path = Path(path).expanduser()
    if not token_path.exists():
        raise ConfigError(f"Token file not found: {token_path}")
    token = token_path.read_text().strip()
    if not token:
        raise ConfigError(f"Token file is empty: {token_path}")
    logger.info(f"Notion token loaded from {token_path}")
    return token
