"""
Unit tests for job_metrics.py module.
Tests the JobMetricsCalculator class and its methods.
"""

import pytest
from pathlib import Path
import sys

# Add src directory to path for imports
sys.path.append(str(Path(__file__).parent.parent / "src"))

from job_metrics import BYTES_PER_MB, JobMetrics, JobMetricsCalculator
from task_graph import FileItem, FileType, Job, Task, TaskStatus


def make_job(files, statuses=(TaskStatus.SUCCESS,), start=0.0, finish=10.0):
    tasks = [Task(task_id=i, length=1000.0, status=status) for i, status in enumerate(statuses)]
    return Job(job_id=0, tasks=tasks, files=files, start_time=start, finish_time=finish)


class TestJobMetricsCalculator:
    """Test cases for JobMetricsCalculator."""

    def test_initialization(self):
        """Test calculator initialization."""
        calculator = JobMetricsCalculator()
        assert calculator.logger is not None

    def test_runtime_and_counts(self):
        job = make_job([], statuses=(TaskStatus.SUCCESS, TaskStatus.FAILED, TaskStatus.FAILED),
                       start=5.0, finish=35.0)
        metrics = JobMetricsCalculator().calculate_job_metrics(job)
        assert isinstance(metrics, JobMetrics)
        assert metrics.runtime == pytest.approx(30.0)
        assert metrics.task_count == 3
        assert metrics.failed_tasks == 2

    def test_real_inputs_only(self):
        """Inputs produced inside the job are not staged in."""
        files = [
            FileItem('raw.fits', 3 * BYTES_PER_MB, FileType.INPUT),
            FileItem('proj.fits', 2 * BYTES_PER_MB, FileType.OUTPUT),
            FileItem('proj.fits', 2 * BYTES_PER_MB, FileType.INPUT),
            FileItem('notes.txt', 7 * BYTES_PER_MB, FileType.NONE),
        ]
        metrics = JobMetricsCalculator().calculate_job_metrics(make_job(files))
        assert metrics.input_mb == pytest.approx(3.0)
        assert metrics.output_mb == pytest.approx(2.0)

    def test_unexecuted_job(self):
        metrics = JobMetricsCalculator().calculate_job_metrics(Job(job_id=3))
        assert metrics.runtime == 0.0
        assert metrics.task_count == 0
        assert metrics.input_mb == 0.0
