"""Exception types raised by the dynamic grid engine.

Only :class:`SchemaFetchError` is fatal to a screen.  Every other error is
recovered where it happens and surfaced as state (an empty result, an
empty option list, a warning) rather than propagated to the host page.
"""


class GridError(Exception):
    """Base error for dynamic grid failures."""


class SchemaFetchError(GridError):
    """Raised when the screen schema cannot be fetched (network/HTTP/shape)."""


class SchemaParseError(GridError):
    """Raised internally when a schema payload cannot be interpreted."""


class DataFetchError(GridError):
    """Raised when a data request fails or returns a malformed payload."""


class OptionResolutionError(GridError):
    """Raised when a single code group cannot be resolved."""


class NoRowsToExportError(GridError):
    """Raised when a CSV export is requested with no loaded rows."""
