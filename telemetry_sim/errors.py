# errors.py


class SimulationError(Exception):
    """Base class for every failure the simulator reports to its caller."""


class ConfigurationError(SimulationError, ValueError):
    """Rejected before a run starts: bad coordinates, route too long, missing sensor id."""


class UpstreamError(SimulationError):
    """A route, time or data-sink request failed. Recoverable, never retried automatically."""


class SimulationActiveError(SimulationError):
    """Only one simulation may be configured or running at a time."""


class SyncUnavailableError(SimulationError):
    pass
