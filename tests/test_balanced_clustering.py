"""
Unit tests for balanced_clustering.py, balancing_methods.py and
balancing_metrics.py modules.
"""

import numpy as np
import pytest
from pathlib import Path
import sys

# Add src directory to path for imports
sys.path.append(str(Path(__file__).parent.parent / "src"))

from balanced_clustering import BalancedClustering
from balancing_methods import (BALANCING_METHODS, BalancingState, Bin, _choose_impact_bin,
                               merge_task_sets)
from balancing_metrics import (calculate_distance, compute_level_metrics, distance_variance,
                               horizontal_runtime_variance, impact_factor_variance,
                               pipeline_runtime_variance, pipeline_sum)
from simulation_errors import ClusteringConfigurationError
from simulation_parameters import BALANCING_CODES, ClusteringMethod, ClusteringParameters
from task_graph import Task, TaskSet, assign_depths, assign_impact_factors, link


def build(edges, count, lengths=None):
    tasks = [Task(task_id=i, length=(lengths or {}).get(i, 1000.0)) for i in range(count)]
    for parent, child in edges:
        link(tasks[parent], tasks[child])
    assign_depths(tasks)
    assign_impact_factors(tasks)
    return tasks


def balanced(code, clusters_num=2, seed=1):
    parameters = ClusteringParameters(clusters_num=clusters_num,
                                      method=ClusteringMethod.BALANCED,
                                      code=code, seed=seed)
    return BalancedClustering(parameters)


def set_of(*lengths):
    return TaskSet(tasks=[Task(task_id=i, length=length) for i, length in enumerate(lengths)])


def connect(parent, child):
    parent.children.append(child)
    child.parents.append(parent)


def groups(result):
    return sorted(sorted(task.task_id for task in job.tasks) for job in result.jobs)


class TestBalancingMetrics:
    """Test cases for the balancing metrics."""

    def test_single_set_scores_zero(self):
        only = [set_of(5.0)]
        assert horizontal_runtime_variance(only) == 0.0
        assert impact_factor_variance(only) == 0.0
        assert pipeline_runtime_variance(only) == 0.0
        assert distance_variance(only) == 0.0
        assert compute_level_metrics({}) == {}

    def test_runtime_variance(self):
        sets = [set_of(1.0), set_of(3.0)]
        assert horizontal_runtime_variance(sets) == pytest.approx(0.5)

    def test_runtime_variance_zero_mean(self):
        assert horizontal_runtime_variance([set_of(0.0), set_of(0.0)]) == 0.0

    def test_impact_variance(self):
        a, b = set_of(1.0), set_of(1.0)
        a.impact_factor, b.impact_factor = 0.25, 0.75
        assert impact_factor_variance([a, b]) == pytest.approx(0.25)

    def test_pipeline_sum(self):
        a, b, c = set_of(1.0), set_of(2.0), set_of(4.0)
        connect(a, b)
        connect(b, c)
        assert pipeline_sum(a) == 7.0
        d = set_of(8.0)
        connect(d, c)
        assert pipeline_sum(a) == 3.0

    def test_distance_siblings(self):
        a, b, child = set_of(1.0), set_of(1.0), set_of(1.0)
        connect(a, child)
        connect(b, child)
        assert calculate_distance(a, b) == 0
        assert calculate_distance(a, a) == 0

    def test_distance_cousins(self):
        a, b, ca, cb, sink = (set_of(1.0) for _ in range(5))
        connect(a, ca)
        connect(b, cb)
        connect(ca, sink)
        connect(cb, sink)
        assert calculate_distance(a, b) == 2

    def test_distance_empty_set(self):
        assert calculate_distance(set_of(1.0), TaskSet(), empty_distance=99) == 99

    def test_distance_variance_normalized_by_set_count(self):
        # unconnected sets are all 2 apart, so there is no spread
        sets = [set_of(1.0) for _ in range(3)]
        assert distance_variance(sets) == 0.0
        a, b, c, child = (set_of(1.0) for _ in range(4))
        connect(a, child)
        connect(b, child)
        # (a,b)=0; c has no children so (a,c)=(b,c)=2
        assert distance_variance([a, b, c]) == pytest.approx(np.sqrt(8.0 / 9.0))


class TestMergeTaskSets:
    """Test cases for merge_task_sets."""

    def test_rewires_edges(self):
        parent, tail, head, child = set_of(1.0), set_of(2.0), set_of(3.0), set_of(4.0)
        connect(parent, tail)
        connect(tail, child)
        state = BalancingState(task_map={}, levels={}, clusters_num=1)
        merge_task_sets(tail, head, state)

        assert head.parents == [parent]
        assert head.children == [child]
        assert parent.children == [head]
        assert child.parents == [head]
        assert tail.tasks == [] and tail.parents == [] and tail.children == []
        assert head.runtime == 5.0

    def test_merge_into_child(self):
        parent, child = set_of(1.0), set_of(2.0)
        connect(parent, child)
        state = BalancingState(task_map={}, levels={}, clusters_num=1)
        merge_task_sets(parent, child, state)
        assert child.parents == []
        assert child.children == []


class TestImpactBin:
    """Test cases for impact bin selection."""

    def test_prefers_matching_impact(self):
        bins = [Bin(), Bin()]
        low, high, other = set_of(1.0), set_of(1.0), set_of(1.0)
        low.impact_factor, high.impact_factor, other.impact_factor = 0.1, 0.9, 0.9
        bins[0].add(low)
        bins[1].add(high)
        assert _choose_impact_bin(bins, other, capacity=2) is bins[1]

    def test_empty_bin_before_closest(self):
        bins = [Bin(), Bin()]
        first, second = set_of(1.0), set_of(1.0)
        first.impact_factor, second.impact_factor = 0.2, 0.3
        bins[0].add(first)
        assert _choose_impact_bin(bins, second, capacity=2) is bins[1]

    def test_closest_when_full_of_mismatches(self):
        bins = [Bin(), Bin()]
        sets = [set_of(1.0) for _ in range(3)]
        for task_set, impact in zip(sets, (0.1, 0.8, 0.7)):
            task_set.impact_factor = impact
        bins[0].add(sets[0])
        bins[1].add(sets[1])
        assert _choose_impact_bin(bins, sets[2], capacity=2) is bins[1]


class TestBalancedClustering:
    """Test cases for BalancedClustering."""

    def test_codes_cover_every_method(self):
        assert set(BALANCING_METHODS) == set(BALANCING_CODES)

    def test_unknown_code_rejected(self):
        with pytest.raises(ClusteringConfigurationError):
            balanced('rz')

    def test_requires_clusters_num(self):
        with pytest.raises(ClusteringConfigurationError):
            BalancedClustering(ClusteringParameters())

    def test_no_code_keeps_one_job_per_task(self):
        strategy = balanced('')
        result = strategy.run(build([(0, 1), (0, 2)], 3))
        assert len(result.jobs) == 3
        assert [label for label, _ in strategy.metrics_history] == ['before']

    def test_vertical_balancing(self):
        result = balanced('v').run(build([(0, 1), (1, 2)], 3))
        assert groups(result) == [[0, 1, 2]]

    def test_runtime_balancing(self):
        edges = [(0, i) for i in range(1, 5)]
        lengths = {1: 4000.0, 2: 3000.0, 3: 2000.0, 4: 1000.0}
        result = balanced('r').run(build(edges, 5, lengths))
        # longest processing time first: {4s, 1s} and {3s, 2s}
        assert groups(result) == [[0], [1, 4], [2, 3]]
        runtimes = sorted(job.length for job in result.jobs if job.depth == 2)
        assert runtimes == [5000.0, 5000.0]

    def test_runtime_balancing_reduces_variance(self):
        edges = [(0, i) for i in range(1, 7)]
        lengths = {1: 9000.0, 2: 1000.0, 3: 8000.0, 4: 2000.0, 5: 7000.0, 6: 3000.0}
        strategy = balanced('r', clusters_num=2)
        strategy.run(build(edges, 7, lengths))
        before = dict(strategy.metrics_history)['before'][2]['HRV']
        after = dict(strategy.metrics_history)['after'][2]['HRV']
        assert after < before

    def test_impact_balancing_groups_equal_impacts(self):
        # 1, 2 share sink 5 (impact 1/6 each); 3, 4 own sinks 6, 7 (impact 1/3 each)
        edges = [(0, 1), (0, 2), (0, 3), (0, 4), (1, 5), (2, 5), (3, 6), (4, 7)]
        result = balanced('i').run(build(edges, 8))
        middle = [sorted(t.task_id for t in job.tasks) for job in result.jobs if job.depth == 2]
        assert sorted(middle) == [[1, 2], [3, 4]]

    def test_distance_balancing_groups_siblings(self):
        # 1, 2 share child 5; 3, 4 share child 6
        edges = [(0, 1), (0, 2), (0, 3), (0, 4), (1, 5), (2, 5), (3, 6), (4, 6),
                 (5, 7), (6, 7)]
        result = balanced('d').run(build(edges, 8))
        middle = [sorted(t.task_id for t in job.tasks) for job in result.jobs if job.depth == 2]
        assert sorted(middle) == [[1, 2], [3, 4]]

    def test_random_balancing_round_robin(self):
        edges = [(0, i) for i in range(1, 6)]
        result = balanced('h', clusters_num=2, seed=5).run(build(edges, 6))
        sizes = sorted(len(job.tasks) for job in result.jobs if job.depth == 2)
        assert sizes == [2, 3]

    def test_child_aware_pairs_siblings(self):
        edges = [(0, 1), (0, 2)]
        result = balanced('c').run(build(edges, 3))
        assert groups(result) == [[0], [1, 2]]

    def test_pruned_edges_restored(self):
        # 0 -> 1 -> 2 plus the shortcut 0 -> 2
        strategy = balanced('')
        result = strategy.run(build([(0, 1), (1, 2), (0, 2)], 3))
        assert strategy.pruned_edges == [(0, 2)]
        by_task = {job.tasks[0].task_id: job for job in result.jobs}
        assert by_task[2].job_id in by_task[0].children
        assert by_task[0].job_id in by_task[2].parents

    def test_pruning_enables_vertical_merge(self):
        result = balanced('v').run(build([(0, 1), (1, 2), (0, 2)], 3))
        assert groups(result) == [[0, 1, 2]]
        assert result.jobs[0].parents == [] and result.jobs[0].children == []

    def test_levels_rebuilt_after_each_method(self):
        strategy = balanced('v')
        strategy.run(build([(0, 1), (1, 2), (0, 3)], 4))
        assert sum(len(sets) for sets in strategy.levels.values()) == len(
            {id(s) for s in strategy.task_map.values()})

    def test_metrics_history_labels(self):
        strategy = balanced('vr')
        strategy.run(build([(0, 1), (0, 2), (0, 3)], 4))
        assert [label for label, _ in strategy.metrics_history] == ['before', 'after']
        assert set(strategy.metrics_history[0][1][1]) == {'HRV', 'IFV', 'PRV', 'DV'}
