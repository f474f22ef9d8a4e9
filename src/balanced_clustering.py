"""
Balanced Clustering

Clustering driven by a balancing code: every task starts in its own task set,
then each character of the code applies one balancing method to the set
graph. The surviving sets become jobs.
"""

from collections import deque
from typing import Dict, List, Optional, Tuple

import numpy as np

try:
    from .balancing_methods import BALANCING_METHODS, BalancingState
    from .balancing_metrics import compute_level_metrics
    from .clustering import BasicClustering
    from .simulation_errors import ClusteringConfigurationError, GraphConsistencyError
    from .simulation_parameters import ClusteringParameters, OverheadParameters
    from .task_graph import Task, TaskSet, link, unlink
except ImportError:
    from balancing_methods import BALANCING_METHODS, BalancingState
    from balancing_metrics import compute_level_metrics
    from clustering import BasicClustering
    from simulation_errors import ClusteringConfigurationError, GraphConsistencyError
    from simulation_parameters import ClusteringParameters, OverheadParameters
    from task_graph import Task, TaskSet, link, unlink


class BalancedClustering(BasicClustering):
    """
    Apply a sequence of balancing methods over task sets.

    Before balancing, a task's direct edge to a child is pruned when another
    child of the same task is already an ancestor of it. Pruned edges are put
    back before job dependencies are computed, so jobs keep every original
    dependency.

    Attributes:
        levels: Task sets per level after the last rebuild
        metrics_history: (label, {depth: {metric: value}}) snapshots
        pruned_edges: (parent id, child id) pairs removed before balancing
    """

    name = 'balanced'

    def __init__(self, parameters: ClusteringParameters,
                 overhead: Optional[OverheadParameters] = None):
        super().__init__(parameters, overhead)
        if parameters.clusters_num <= 0:
            raise ClusteringConfigurationError("Balanced clustering needs clusters_num > 0")
        for code in parameters.code or '':
            if code not in BALANCING_METHODS:
                raise ClusteringConfigurationError(f"Unknown balancing code '{code}'")

        self.rng = np.random.default_rng(parameters.seed)
        self.task_map: Dict[int, TaskSet] = {}
        self.levels: Dict[int, List[TaskSet]] = {}
        self.metrics_history: List[Tuple[str, Dict[int, Dict[str, float]]]] = []
        self.pruned_edges: List[Tuple[int, int]] = []

    def cluster(self) -> None:
        self.task_map = {task.task_id: TaskSet(tasks=[task]) for task in self._tasks}
        self.remove_redundant_edges()
        self.rebuild()
        self.record_metrics('before')

        code = self.parameters.code or ''
        for method_code in code:
            self.logger.info(f"Applying balancing method '{method_code}'")
            state = BalancingState(task_map=self.task_map, levels=self.levels,
                                   clusters_num=self.parameters.clusters_num, rng=self.rng)
            BALANCING_METHODS[method_code](state)
            self.rebuild()
        if code:
            self.record_metrics('after')

        self.restore_edges()
        for task_set in self.unique_sets():
            self.add_tasks_to_job(task_set.tasks)

    def unique_sets(self) -> List[TaskSet]:
        seen = []
        ids = set()
        for task_set in self.task_map.values():
            if id(task_set) not in ids:
                ids.add(id(task_set))
                seen.append(task_set)
        return seen

    def _is_ancestor(self, ancestor: Task, task: Task) -> bool:
        """True if ``ancestor`` is ``task`` or reaches it through parent edges."""
        visited = set()
        stack = [task]
        while stack:
            node = stack.pop()
            if node is ancestor:
                return True
            if node.task_id in visited:
                continue
            visited.add(node.task_id)
            stack.extend(self._index[parent_id] for parent_id in node.parents)
        return False

    def _redundant_child(self, task: Task, position: int) -> Optional[Task]:
        child = self._index[task.children[position]]
        for other_id in task.children[position + 1:]:
            other = self._index[other_id]
            if child.depth > other.depth and self._is_ancestor(other, child):
                return child
            if other.depth > child.depth and self._is_ancestor(child, other):
                return other
        return None

    def remove_redundant_edges(self) -> None:
        """Drop parent -> child edges implied by a path through a sibling."""
        for task in self._tasks:
            if len(task.children) < 2:
                continue
            position = 0
            while position < len(task.children):
                redundant = self._redundant_child(task, position)
                if redundant is None:
                    position += 1
                    continue
                unlink(task, redundant)
                self.pruned_edges.append((task.task_id, redundant.task_id))
        if self.pruned_edges:
            self.logger.info(f"Pruned {len(self.pruned_edges)} redundant edges before balancing")

    def restore_edges(self) -> None:
        for parent_id, child_id in self.pruned_edges:
            link(self._index[parent_id], self._index[child_id])

    def rebuild(self) -> None:
        """Rederive set dependencies, levels and impact factors from the task edges."""
        sets = self.unique_sets()
        for task_set in sets:
            task_set.parents = []
            task_set.children = []
            task_set.checked = False

        for task_set in sets:
            for task in task_set.tasks:
                for parent_id in task.parents:
                    parent_set = self.task_map[parent_id]
                    if parent_set is not task_set and parent_set not in task_set.parents:
                        task_set.parents.append(parent_set)
                for child_id in task.children:
                    child_set = self.task_map[child_id]
                    if child_set is not task_set and child_set not in task_set.children:
                        task_set.children.append(child_set)

        ordered = self._set_order(sets)
        level_of = {}
        for task_set in ordered:
            level_of[id(task_set)] = 1 + max((level_of[id(p)] for p in task_set.parents), default=0)

        levels: Dict[int, List[TaskSet]] = {}
        for task_set in sets:
            levels.setdefault(level_of[id(task_set)], []).append(task_set)
        self.levels = dict(sorted(levels.items()))

        sinks = [task_set for task_set in sets if not task_set.children]
        for task_set in sets:
            task_set.impact_factor = 0.0
        for task_set in sinks:
            task_set.impact_factor = 1.0 / len(sinks)
        for task_set in reversed(ordered):
            if task_set.parents:
                share = task_set.impact_factor / len(task_set.parents)
                for parent in task_set.parents:
                    parent.impact_factor += share

    @staticmethod
    def _set_order(sets: List[TaskSet]) -> List[TaskSet]:
        in_degree = {id(task_set): len(task_set.parents) for task_set in sets}
        queue = deque(task_set for task_set in sets if not task_set.parents)
        ordered = []
        while queue:
            task_set = queue.popleft()
            ordered.append(task_set)
            for child in task_set.children:
                in_degree[id(child)] -= 1
                if in_degree[id(child)] == 0:
                    queue.append(child)
        if len(ordered) != len(sets):
            raise GraphConsistencyError("Task set graph contains a cycle after balancing")
        return ordered

    def record_metrics(self, label: str) -> None:
        metrics = compute_level_metrics(self.levels)
        self.metrics_history.append((label, metrics))
        for depth, values in metrics.items():
            summary = ' '.join(f"{name}={value:.4f}" for name, value in values.items())
            self.logger.info(f"Balancing metrics {label} depth {depth} "
                             f"({len(self.levels[depth])} sets): {summary}")
