"""
Clustering Size Estimator

Estimates the cluster size that minimizes expected makespan when failure
inter-arrival times follow a Weibull-like law, assuming many more tasks than
resources.
"""

import numpy as np

MAX_K = 200


def makespan(k, t: float, s: float, theta: float, phi_gamma: float, phi_ts: float):
    """
    Expected makespan factor for cluster size ``k``.

    Args:
        k: Cluster size (scalar or numpy array)
        t: Task runtime
        s: System overhead per job
        theta: Scale of the failure inter-arrival distribution
        phi_gamma: Shape of the failure inter-arrival distribution
        phi_ts: Likelihood prior of the overhead distribution
    """
    d = (k * t + s) * (phi_ts - 1)
    return d / k * np.exp(np.power(d / theta, phi_gamma))


def estimate_k(t: float, s: float, theta: float, phi_gamma: float, phi_ts: float) -> int:
    """
    Cluster size in [1, MAX_K) with the smallest makespan.

    Returns 0 when no size gives a finite estimate, which callers treat as
    "keep every task in a single job".
    """
    ks = np.arange(1, MAX_K, dtype=float)
    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        values = makespan(ks, t, s, theta, phi_gamma, phi_ts)
    values = np.where(np.isfinite(values), values, np.nan)
    if np.isnan(values).all():
        return 0
    return int(np.nanargmin(values)) + 1
