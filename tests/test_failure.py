"""
Unit tests for failure_monitor.py and failure_generator.py modules.
"""

import math
import pytest
from pathlib import Path
import sys

# Add src directory to path for imports
sys.path.append(str(Path(__file__).parent.parent / "src"))

from distribution_generator import DistributionFamily, DistributionGenerator
from failure_generator import FailureGenerator
from failure_monitor import FailureMonitor, FailureRecord
from simulation_errors import FailureConfigurationError
from simulation_parameters import FailureParameters, FTCFailure, FTCMonitor
from task_graph import Job, Task, TaskStatus


def record(failed, total, depth=1, vm_id=0, length=1.0, delay=0.0):
    return FailureRecord(length=length, failed_tasks_num=failed, depth=depth,
                         all_task_num=total, vm_id=vm_id, job_id=0, workflow_id=0,
                         delay_length=delay)


def windowed_job(windows, depth=1, vm_id=0):
    tasks = []
    for i, (start, finish) in enumerate(windows):
        task = Task(task_id=i, length=(finish - start) * 1000.0, depth=depth)
        task.start_time, task.finish_time = start, finish
        tasks.append(task)
    return Job(job_id=0, depth=depth, tasks=tasks, vm_id=vm_id)


class TestFailureMonitor:
    """Test cases for FailureMonitor."""

    def test_rate_over_matching_bucket(self):
        monitor = FailureMonitor(FTCMonitor.JOB)
        monitor.post_failure_record(record(1, 4, depth=2))
        monitor.post_failure_record(record(2, 6, depth=2))
        monitor.post_failure_record(record(5, 5, depth=3))
        assert monitor.analyze(2) == pytest.approx(3 / 10)
        assert monitor.analyze(3) == pytest.approx(1.0)
        assert monitor.analyze(7) == 0.0

    def test_bucket_keys(self):
        sample = record(0, 1, depth=4, vm_id=2)
        assert FailureMonitor(FTCMonitor.ALL).bucket_key(sample) == 'all'
        assert FailureMonitor(FTCMonitor.VM).bucket_key(sample) == 2
        assert FailureMonitor(FTCMonitor.JOB).bucket_key(sample) == 4
        assert FailureMonitor(FTCMonitor.VM_JOB).bucket_key(sample) == (2, 4)
        assert FailureMonitor(FTCMonitor.NONE).bucket_key(sample) is None

    def test_none_mode_keeps_nothing(self):
        monitor = FailureMonitor(FTCMonitor.NONE)
        monitor.post_failure_record(record(1, 1))
        assert monitor.records == []

    def test_negative_id_rejected(self):
        monitor = FailureMonitor(FTCMonitor.ALL)
        with pytest.raises(ValueError):
            monitor.post_failure_record(record(0, 1, vm_id=-1))

    def test_reset(self):
        monitor = FailureMonitor(FTCMonitor.ALL)
        monitor.post_failure_record(record(1, 2))
        monitor.reset()
        assert monitor.records == []
        assert monitor.analyze('all') == 0.0

    def test_clustering_factor_without_failures(self):
        monitor = FailureMonitor(FTCMonitor.ALL)
        monitor.post_failure_record(record(0, 10))
        assert monitor.get_clustering_factor(record(0, 7)) == 7

    def test_clustering_factor_all_failed(self):
        monitor = FailureMonitor(FTCMonitor.ALL)
        monitor.post_failure_record(record(3, 3))
        assert monitor.get_clustering_factor(record(0, 7, delay=2.0)) == 1

    def test_clustering_factor_formula(self):
        monitor = FailureMonitor(FTCMonitor.ALL)
        monitor.post_failure_record(record(1, 10))
        d, a, t = 2.0, 0.1, 1.0
        expected = (-d + math.sqrt(d * d - 4 * d / math.log(1 - a))) / (2 * t)
        assert monitor.get_k(d, a, t) == pytest.approx(expected)
        assert monitor.get_clustering_factor(record(0, 5, length=t, delay=d)) == int(expected)

    def test_clustering_factor_at_least_one(self):
        monitor = FailureMonitor(FTCMonitor.ALL)
        monitor.post_failure_record(record(9, 10))
        assert monitor.get_clustering_factor(record(0, 5, length=100.0, delay=0.1)) == 1

    def test_clustering_factor_shrinks_as_failures_grow(self):
        factors = []
        for failed in (1, 3, 6):
            monitor = FailureMonitor(FTCMonitor.ALL)
            monitor.post_failure_record(record(failed, 10))
            factors.append(monitor.get_clustering_factor(record(0, 50, delay=5.0)))
        assert factors == sorted(factors, reverse=True)
        assert all(factor >= 1 for factor in factors)


class TestFailureGenerator:
    """Test cases for FailureGenerator."""

    def make_parameters(self, seed=7, scale=5.0, mode=FTCFailure.JOB, enabled=True):
        generator = DistributionGenerator(DistributionFamily.WEIBULL, scale, 1.0,
                                          sample_size=100, seed=seed)
        return FailureParameters(failure_mode=mode, generators={(0, 1): generator},
                                 enabled=enabled)

    def test_failure_inside_window(self):
        parameters = self.make_parameters()
        events = parameters.get_generator(0, 1).cumulative_samples
        job = windowed_job([(events[0] - 1e-6, events[0] + 1e-6)])
        generator = FailureGenerator(parameters, FailureMonitor(FTCMonitor.JOB))
        assert generator.generate(job) is True
        assert job.tasks[0].status == TaskStatus.FAILED
        assert job.status == TaskStatus.FAILED
        assert parameters.get_generator(0, 1).cursor == 1

    def test_no_failure_between_events(self):
        parameters = self.make_parameters(scale=1000.0)
        events = parameters.get_generator(0, 1).cumulative_samples
        start = events[3] + 1e-9
        finish = min(events[4], start + 1e-6)
        job = windowed_job([(start, finish)])
        generator = FailureGenerator(parameters, FailureMonitor(FTCMonitor.JOB))
        assert generator.generate(job) is False
        assert job.tasks[0].status == TaskStatus.SUCCESS
        assert job.status == TaskStatus.SUCCESS

    def test_consumed_event_not_reused(self):
        parameters = self.make_parameters()
        event = parameters.get_generator(0, 1).cumulative_samples[0]
        generator = FailureGenerator(parameters, FailureMonitor(FTCMonitor.NONE))
        first = windowed_job([(event - 1e-6, event + 1e-6)])
        second = windowed_job([(event - 1e-6, event + 1e-6)])
        next_event = parameters.get_generator(0, 1).cumulative_samples[1]
        assert next_event >= event + 1e-6
        assert generator.generate(first) is True
        # the only event inside this short window was consumed by the first job
        assert generator.generate(second) is False
        assert second.tasks[0].status == TaskStatus.SUCCESS

    def test_same_seed_same_verdicts(self):
        windows = [(i * 3.0, i * 3.0 + 2.0) for i in range(40)]
        verdicts = []
        for _ in range(2):
            parameters = self.make_parameters(seed=21)
            job = windowed_job(windows)
            FailureGenerator(parameters, FailureMonitor(FTCMonitor.JOB)).generate(job)
            verdicts.append([task.status for task in job.tasks])
        assert verdicts[0] == verdicts[1]
        assert TaskStatus.FAILED in verdicts[0]

    def test_records_posted_per_task(self):
        parameters = self.make_parameters(scale=1.0e6)
        monitor = FailureMonitor(FTCMonitor.JOB)
        job = windowed_job([(0.0, 1.0), (1.0, 2.0), (2.0, 3.0)])
        FailureGenerator(parameters, monitor).generate(job)
        assert len(monitor.records) == 3
        assert all(r.all_task_num == 1 and r.depth == 1 for r in monitor.records)

    def test_unplaced_job_recorded_on_vm_zero(self):
        parameters = self.make_parameters(scale=1.0e6)
        monitor = FailureMonitor(FTCMonitor.VM)
        job = windowed_job([(0.0, 1.0), (1.0, 2.0)], vm_id=-1)
        assert FailureGenerator(parameters, monitor).generate(job) is False
        assert [r.vm_id for r in monitor.records] == [0, 0]
        assert all(task.status == TaskStatus.SUCCESS for task in job.tasks)

    def test_disabled(self):
        parameters = self.make_parameters(enabled=False)
        monitor = FailureMonitor(FTCMonitor.JOB)
        job = windowed_job([(0.0, 1.0e6)])
        assert FailureGenerator(parameters, monitor).generate(job) is False
        assert monitor.records == []

    def test_none_mode_never_fails(self):
        parameters = self.make_parameters(mode=FTCFailure.NONE)
        job = windowed_job([(0.0, 1.0e4)])
        assert FailureGenerator(parameters, FailureMonitor()).generate(job) is False

    def test_missing_generator(self):
        parameters = self.make_parameters(mode=FTCFailure.VM_JOB)
        job = windowed_job([(0.0, 1.0)], vm_id=3)
        with pytest.raises(FailureConfigurationError):
            FailureGenerator(parameters, FailureMonitor()).generate(job)
