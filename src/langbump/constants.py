"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FATAL = 1
    USAGE_ERROR = 2
    EXIT_WARNINGS = 3


class PatchStatus(Enum):
    """Outcome of a single marker patch attempt.

    Args:
        Enum (string): Outcome of a single marker patch attempt.
    """

    UPDATED = "updated"
    CURRENT = "current"
    MISSING_FILE = "missing_file"
    MISSING_MARKER = "missing_marker"
    ERROR = "error"


class RunOutcome(Enum):
    """Per-ecosystem outcome reported by the runner."""

    UPDATED = "updated"
    CURRENT = "current"
    FAILED = "failed"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    USER_AGENT = "langbump/1.0"

    CACHE_DIR = ".autofix/cache"
    CACHE_TTL_SEC = 24 * 60 * 60
    CACHE_FILE_TEMPLATE = ".{ecosystem}-versions-cache.json"
    BACKUP_SUFFIX = ".backup."

    # Repository API constants
    GITHUB_API_HOST = "api.github.com"
    GITHUB_PER_PAGE = 100
    ENV_GITHUB_TOKEN = "GITHUB_TOKEN"
    ENV_CACHE_DIR = "LANGBUMP_CACHE_DIR"
    ENV_LOG_LEVEL = "LANGBUMP_LOG_LEVEL"

    # Upstream feeds
    URL_GITHUB_REPOS = "https://api.github.com/repos"
    URL_NODE_INDEX = "https://nodejs.org/dist/index.json"

    DEFAULT_RETENTION = 20
    CHUNKS_DIR = "chunks"
