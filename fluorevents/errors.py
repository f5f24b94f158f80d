"""Exception types raised by the fluorevents pipeline."""


class FluorEventsError(Exception):
    """Base class for all fluorevents errors."""


class InvalidParameterError(FluorEventsError, ValueError):
    """A parameter or input shape was rejected before any computation."""


class EmptyPopulationError(FluorEventsError, RuntimeError):
    """A stage produced (or received) an empty channel or window population."""


class InsufficientDataError(FluorEventsError, ValueError):
    """Too few valid samples to fit the edge-extrapolation trend line."""
