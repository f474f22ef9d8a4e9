"""
Simulation Errors

Exception types raised by the clustering, failure and reclustering modules.
"""


class ClusteringConfigurationError(ValueError):
    """Invalid or missing clustering parameters."""


class FailureConfigurationError(ValueError):
    """Invalid failure generation or monitoring configuration."""


class FailureRateTooHighError(RuntimeError):
    """
    The failure sample buffer could not be extended far enough.

    Raised when the configured failure inter-arrival times are too short
    relative to task runtimes; the simulation run cannot continue.
    """


class GraphConsistencyError(RuntimeError):
    """A task or job lookup failed while rewiring dependencies."""
