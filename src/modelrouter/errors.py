"""Exception hierarchy shared across modelrouter."""


class RouterError(Exception):
    """Base class for all modelrouter errors."""
