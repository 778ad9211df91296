class PhabError(Exception):
    """Base class for every error raised by phab."""


class ConfigurationError(PhabError):
    """Raised when the config file or client certificate is missing or invalid."""


class ValidationError(PhabError):
    """Raised when a caller passes invalid input."""


class ParseError(PhabError):
    """Raised when a Conduit response does not have the expected shape."""


class AuthenticationError(PhabError):
    """Raised when Conduit rejects the API token."""


class RateLimitError(PhabError):
    """Raised when the Phabricator host rate limits us."""


class IntegrationError(PhabError):
    """Raised when a Conduit API call fails."""


class FetchSubTasksError(PhabError):
    """Raised when one or more concurrent subtask fetches fail."""


class WatchlistNotFoundError(PhabError):
    """Raised when a watchlist id is not in the store."""


class StorageError(PhabError):
    """Raised when the watchlist db file cannot be read or written."""
