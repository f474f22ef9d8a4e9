"""
Unit tests for task_graph.py module.
Tests the task graph primitives: files, tasks, depths and impact factors.
"""

import pytest
from pathlib import Path
import sys

# Add src directory to path for imports
sys.path.append(str(Path(__file__).parent.parent / "src"))

from simulation_errors import GraphConsistencyError
from task_graph import (FileItem, FileType, Job, Task, TaskSet, TaskStatus, assign_depths,
                        assign_impact_factors, index_tasks, link, topological_order, unlink)


def make_diamond():
    """0 -> (1, 2) -> 3"""
    tasks = [Task(task_id=i, length=1000.0 * (i + 1)) for i in range(4)]
    link(tasks[0], tasks[1])
    link(tasks[0], tasks[2])
    link(tasks[1], tasks[3])
    link(tasks[2], tasks[3])
    return tasks


class TestFileItem:
    """Test cases for FileItem."""

    def test_real_input_file(self):
        raw = FileItem('raw.fits', 100, FileType.INPUT)
        assert raw.is_real_input_file([raw])

    def test_input_produced_in_list_is_not_real(self):
        consumed = FileItem('proj.fits', 100, FileType.INPUT)
        produced = FileItem('proj.fits', 100, FileType.OUTPUT)
        assert not consumed.is_real_input_file([consumed, produced])

    def test_output_is_never_real_input(self):
        produced = FileItem('proj.fits', 100, FileType.OUTPUT)
        assert not produced.is_real_input_file([])


class TestTaskGraph:
    """Test cases for graph helpers."""

    def test_link_is_mutual_and_idempotent(self):
        parent, child = Task(task_id=0, length=1.0), Task(task_id=1, length=1.0)
        link(parent, child)
        link(parent, child)
        assert parent.children == [1]
        assert child.parents == [0]

    def test_unlink(self):
        parent, child = Task(task_id=0, length=1.0), Task(task_id=1, length=1.0)
        link(parent, child)
        unlink(parent, child)
        assert parent.children == []
        assert child.parents == []

    def test_duplicate_ids_rejected(self):
        with pytest.raises(GraphConsistencyError):
            index_tasks([Task(task_id=0, length=1.0), Task(task_id=0, length=2.0)])

    def test_topological_order(self):
        tasks = make_diamond()
        ordered = [task.task_id for task in topological_order(tasks)]
        assert ordered[0] == 0
        assert ordered[-1] == 3

    def test_cycle_detected(self):
        a, b = Task(task_id=0, length=1.0), Task(task_id=1, length=1.0)
        link(a, b)
        link(b, a)
        with pytest.raises(GraphConsistencyError):
            topological_order([a, b])

    def test_assign_depths(self):
        tasks = make_diamond()
        assign_depths(tasks)
        assert [task.depth for task in tasks] == [1, 2, 2, 3]

    def test_depth_is_longest_path(self):
        tasks = make_diamond()
        extra = Task(task_id=4, length=1.0)
        link(tasks[0], extra)
        link(extra, tasks[1])
        tasks.append(extra)
        assign_depths(tasks)
        assert tasks[1].depth == 3
        assert tasks[3].depth == 4

    def test_impact_factors(self):
        tasks = make_diamond()
        assign_impact_factors(tasks)
        assert tasks[3].impact == pytest.approx(1.0)
        assert tasks[1].impact == pytest.approx(0.5)
        assert tasks[2].impact == pytest.approx(0.5)
        assert tasks[0].impact == pytest.approx(1.0)

    def test_impact_shared_between_sinks(self):
        tasks = [Task(task_id=i, length=1.0) for i in range(3)]
        link(tasks[0], tasks[1])
        link(tasks[0], tasks[2])
        assign_impact_factors(tasks)
        assert tasks[1].impact == pytest.approx(0.5)
        assert tasks[0].impact == pytest.approx(1.0)


class TestJobAndTaskSet:
    """Test cases for Job and TaskSet containers."""

    def test_runtime(self):
        assert Task(task_id=0, length=2500.0).runtime == pytest.approx(2.5)

    def test_failed_tasks(self):
        tasks = [Task(task_id=i, length=1.0) for i in range(3)]
        tasks[1].status = TaskStatus.FAILED
        job = Job(job_id=0, tasks=tasks)
        assert job.failed_tasks == [tasks[1]]

    def test_task_set_identity(self):
        a, b = TaskSet(), TaskSet()
        assert a != b
        assert a in [a]
        assert b not in [a]

    def test_task_set_runtime(self):
        task_set = TaskSet()
        task_set.add_tasks([Task(task_id=0, length=10.0), Task(task_id=1, length=5.0)])
        assert task_set.runtime == 15.0
