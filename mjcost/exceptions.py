"""Exception classes raised by mjcost."""


class MjcostError(Exception):
    """Base exception class for all mjcost errors."""

    pass


class ConfigurationError(MjcostError, ValueError):
    """Raised when a cost term could not be populated from a configuration source."""

    pass


class DimensionMismatchError(MjcostError, ValueError):
    """Raised when a state or control vector does not match the declared robot layout."""

    pass
