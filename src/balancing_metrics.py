"""
Balancing Metrics

Diagnostic measures over the task sets of one workflow level. They are
reported before and after balancing and never modify the sets. A level with
one set or fewer scores 0.
"""

from typing import Callable, Dict, List

import numpy as np

try:
    from .task_graph import TaskSet
except ImportError:
    from task_graph import TaskSet


def calculate_distance(set_a: TaskSet, set_b: TaskSet, empty_distance: int = 0) -> int:
    """
    Doubled hop distance from two task sets to their nearest common descendant.

    Both child frontiers are expanded one step at a time until they share a
    set or one of them runs out; siblings with a common child score 0.
    ``empty_distance`` is returned when either set holds no tasks.
    """
    if set_a is set_b:
        return 0
    if not set_a.tasks or not set_b.tasks:
        return empty_distance

    frontier_a = [set_a]
    frontier_b = [set_b]
    distance = 0
    while True:
        frontier_a = _expand(frontier_a)
        frontier_b = _expand(frontier_b)
        if any(candidate in frontier_b for candidate in frontier_a):
            return distance * 2
        distance += 1
        if not frontier_a or not frontier_b:
            return distance * 2


def _expand(frontier: List[TaskSet]) -> List[TaskSet]:
    expanded = []
    for task_set in frontier:
        for child in task_set.children:
            if child not in expanded:
                expanded.append(child)
    return expanded


def pipeline_sum(task_set: TaskSet) -> float:
    """Runtime of a set plus its single-child/single-parent successors."""
    total = task_set.runtime
    while len(task_set.children) == 1:
        child = task_set.children[0]
        if len(child.parents) != 1:
            break
        total += child.runtime
        task_set = child
    return total


def _coefficient_of_variation(values: List[float]) -> float:
    mean = float(np.mean(values))
    if mean == 0.0:
        return 0.0
    return float(np.std(values)) / mean


def horizontal_runtime_variance(sets: List[TaskSet]) -> float:
    if len(sets) <= 1:
        return 0.0
    return _coefficient_of_variation([task_set.runtime for task_set in sets])


def impact_factor_variance(sets: List[TaskSet]) -> float:
    if len(sets) <= 1:
        return 0.0
    return float(np.std([task_set.impact_factor for task_set in sets]))


def pipeline_runtime_variance(sets: List[TaskSet]) -> float:
    if len(sets) <= 1:
        return 0.0
    return _coefficient_of_variation([pipeline_sum(task_set) for task_set in sets])


def distance_variance(sets: List[TaskSet]) -> float:
    """
    Spread of pairwise distances at a level.

    Both the mean and the variance are normalized by the number of sets
    rather than the number of pairs, which keeps values comparable with
    previously published balancing results.
    """
    size = len(sets)
    if size <= 1:
        return 0.0
    distances = np.array([calculate_distance(sets[i], sets[j])
                          for i in range(size) for j in range(i + 1, size)], dtype=float)
    mean = distances.sum() / size
    return float(np.sqrt(np.sum((distances - mean) ** 2) / size))


BALANCING_METRICS: Dict[str, Callable[[List[TaskSet]], float]] = {
    'HRV': horizontal_runtime_variance,
    'IFV': impact_factor_variance,
    'PRV': pipeline_runtime_variance,
    'DV': distance_variance,
}


def compute_level_metrics(levels: Dict[int, List[TaskSet]]) -> Dict[int, Dict[str, float]]:
    """Evaluate every balancing metric on every level."""
    return {
        depth: {name: metric(sets) for name, metric in BALANCING_METRICS.items()}
        for depth, sets in levels.items()
    }
