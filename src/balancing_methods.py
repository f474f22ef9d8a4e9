"""
Balancing Methods

Named transformations applied by balanced clustering, one per character of
the balancing code:

- v: vertical balancing (collapse pipelines)
- c: child-aware horizontal merging
- r: runtime balancing (longest processing time first)
- i: impact factor balancing
- d: distance balancing
- h: random round-robin baseline

Each method receives a BalancingState, merges task sets by updating the task
to set map, and leaves dependency, level and impact bookkeeping to the caller.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List

import numpy as np

try:
    from .balancing_metrics import calculate_distance
    from .task_graph import TaskSet
except ImportError:
    from balancing_metrics import calculate_distance
    from task_graph import TaskSet


IMPACT_TOLERANCE = 1.0e-8
UNREACHABLE = 2 ** 31 - 1

logger = logging.getLogger(__name__)


@dataclass
class BalancingState:
    """Working view shared by the balancing methods."""
    task_map: Dict[int, TaskSet]
    levels: Dict[int, List[TaskSet]]
    clusters_num: int
    rng: np.random.Generator = field(default_factory=np.random.default_rng)

    def unique_sets(self) -> List[TaskSet]:
        seen = []
        ids = set()
        for task_set in self.task_map.values():
            if id(task_set) not in ids:
                ids.add(id(task_set))
                seen.append(task_set)
        return seen

    def assign(self, task_set: TaskSet, target: TaskSet) -> None:
        for task in task_set.tasks:
            self.task_map[task.task_id] = target


@dataclass
class Bin:
    """Output task set being filled by a bin packing method."""
    task_set: TaskSet = field(default_factory=TaskSet)
    members: List[TaskSet] = field(default_factory=list)
    impact: float = 0.0

    @property
    def load(self) -> float:
        return self.task_set.runtime

    def add(self, task_set: TaskSet) -> None:
        if not self.members:
            self.impact = task_set.impact_factor
        self.members.append(task_set)
        self.task_set.add_tasks(task_set.tasks)


def merge_task_sets(tail: TaskSet, head: TaskSet, state: BalancingState) -> None:
    """Move ``tail`` into ``head``, rewiring its parents and children onto ``head``."""
    head.add_tasks(tail.tasks)
    state.assign(tail, head)
    head.impact_factor += tail.impact_factor
    if tail in head.parents:
        head.parents.remove(tail)
    if tail in head.children:
        head.children.remove(tail)

    for parent in tail.parents:
        if tail in parent.children:
            parent.children.remove(tail)
        if parent is head:
            continue
        if head not in parent.children:
            parent.children.append(head)
        if parent not in head.parents:
            head.parents.append(parent)
    for child in tail.children:
        if tail in child.parents:
            child.parents.remove(tail)
        if child is head:
            continue
        if head not in child.parents:
            child.parents.append(head)
        if child not in head.children:
            head.children.append(child)

    tail.tasks = []
    tail.parents = []
    tail.children = []


def _shuffled(sets: List[TaskSet], rng: np.random.Generator) -> List[TaskSet]:
    for _ in range(2):
        sets = [sets[i] for i in rng.permutation(len(sets))]
    return sets


def vertical_balancing(state: BalancingState) -> None:
    """Merge a set into its only child when that child has no other parent."""
    for task_set in state.unique_sets():
        if not task_set.tasks or len(task_set.children) != 1:
            continue
        child = task_set.children[0]
        if len(child.parents) == 1:
            merge_task_sets(task_set, child, state)


def _common_parents(set_a: TaskSet, set_b: TaskSet) -> List[TaskSet]:
    return [parent for parent in set_a.parents if parent in set_b.parents]


def _child_aware_check_level(sets: List[TaskSet], state: BalancingState) -> bool:
    for task_set in sets:
        task_set.checked = False

    clustered = False
    for i, set_a in enumerate(sets):
        if set_a.checked:
            continue
        for set_b in sets[i + 1:]:
            if set_b.checked:
                continue
            if len(_common_parents(set_a, set_b)) == 1:
                set_a.checked = True
                set_b.checked = True
                merge_task_sets(set_a, set_b, state)
                clustered = True
                break
    return clustered


def child_aware_horizontal(state: BalancingState) -> None:
    """
    Pair up sibling sets that share exactly one parent.

    Levels are visited from the most to the least populated; once a level
    merges, every deeper level is checked too.
    """
    checked_levels = set()
    ordered = sorted(state.levels, key=lambda depth: -len(state.levels[depth]))
    for depth in ordered:
        if depth in checked_levels:
            continue
        if _child_aware_check_level(state.levels[depth], state):
            checked_levels.add(depth)
            deeper = depth + 1
            while deeper in state.levels:
                _child_aware_check_level(state.levels[deeper], state)
                checked_levels.add(deeper)
                deeper += 1

    for task_set in state.unique_sets():
        task_set.checked = False


def _pack_levels(state: BalancingState, choose_bin, seed_bins=None, name: str = '') -> None:
    for depth, sets in state.levels.items():
        if len(sets) <= state.clusters_num:
            continue
        bins = [Bin() for _ in range(state.clusters_num)]
        capacity = math.ceil(len(sets) / state.clusters_num)

        pending = _shuffled(list(sets), state.rng)
        pending.sort(key=lambda task_set: task_set.runtime, reverse=True)
        if seed_bins is not None:
            pending = seed_bins(pending, bins)
        for task_set in pending:
            choose_bin(bins, task_set, capacity).add(task_set)

        for packed in bins:
            for member in packed.members:
                state.assign(member, packed.task_set)
        logger.debug(f"{name} balancing packed {len(sets)} sets at depth {depth} "
                     f"into {sum(1 for packed in bins if packed.members)} bins")


def _least_loaded(candidates: List[Bin]) -> Bin:
    return min(candidates, key=lambda candidate: candidate.load)


def _choose_runtime_bin(bins: List[Bin], task_set: TaskSet, capacity: int) -> Bin:
    return _least_loaded(bins)


def _choose_impact_bin(bins: List[Bin], task_set: TaskSet, capacity: int) -> Bin:
    with_room = [b for b in bins if len(b.members) < capacity]
    matching = [b for b in with_room
                if b.members and abs(b.impact - task_set.impact_factor) <= IMPACT_TOLERANCE]
    if matching:
        return _least_loaded(matching)
    empty = [b for b in bins if not b.members]
    if empty:
        return empty[0]
    closest = min(abs(b.impact - task_set.impact_factor) for b in with_room)
    return _least_loaded([b for b in with_room
                          if abs(b.impact - task_set.impact_factor) <= closest + IMPACT_TOLERANCE])


def _bin_distance(packed: Bin, task_set: TaskSet) -> int:
    return min(calculate_distance(task_set, member, UNREACHABLE) for member in packed.members)


def _choose_distance_bin(bins: List[Bin], task_set: TaskSet, capacity: int) -> Bin:
    occupied = [b for b in bins if b.members and len(b.members) < capacity]
    if not occupied:
        empty = [b for b in bins if not b.members]
        return empty[0]
    distances = {id(b): _bin_distance(b, task_set) for b in occupied}
    nearest = min(distances.values())
    return _least_loaded([b for b in occupied if distances[id(b)] == nearest])


def _seed_distance_bins(pending: List[TaskSet], bins: List[Bin]) -> List[TaskSet]:
    """Start each bin with one of the sets farthest apart from each other."""
    size = len(pending)
    distances = np.zeros((size, size))
    for i in range(size):
        for j in range(i):
            distances[i, j] = distances[j, i] = calculate_distance(pending[i], pending[j],
                                                                   UNREACHABLE)

    first, second = np.unravel_index(int(np.argmax(distances)), distances.shape)
    chosen = [int(first)] if first == second else [int(first), int(second)]
    while len(chosen) < min(len(bins), size):
        remaining = [i for i in range(size) if i not in chosen]
        averages = [distances[i, chosen].mean() for i in remaining]
        chosen.append(remaining[int(np.argmax(averages))])

    chosen = chosen[:len(bins)]
    for packed, index in zip(bins, chosen):
        packed.add(pending[index])
    return [task_set for i, task_set in enumerate(pending) if i not in chosen]


def runtime_balancing(state: BalancingState) -> None:
    """Longest processing time first: biggest set into the least loaded bin."""
    _pack_levels(state, _choose_runtime_bin, name='Runtime')


def impact_balancing(state: BalancingState) -> None:
    """Group sets with equal impact factor, least loaded bin first."""
    _pack_levels(state, _choose_impact_bin, name='Impact')


def distance_balancing(state: BalancingState) -> None:
    """Group sets that are close in the DAG, starting from far-apart seeds."""
    _pack_levels(state, _choose_distance_bin, seed_bins=_seed_distance_bins, name='Distance')


def random_balancing(state: BalancingState) -> None:
    """Shuffle each level and deal the sets round-robin into bins."""
    for sets in state.levels.values():
        if len(sets) <= state.clusters_num:
            continue
        bins = [TaskSet() for _ in range(state.clusters_num)]
        for position, task_set in enumerate(_shuffled(list(sets), state.rng)):
            target = bins[position % state.clusters_num]
            target.add_tasks(task_set.tasks)
            state.assign(task_set, target)


BALANCING_METHODS: Dict[str, Callable[[BalancingState], None]] = {
    'v': vertical_balancing,
    'c': child_aware_horizontal,
    'r': runtime_balancing,
    'i': impact_balancing,
    'd': distance_balancing,
    'h': random_balancing,
}
