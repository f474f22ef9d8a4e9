"""
Job Metrics Calculator

This module provides job-level metrics calculation for workflow simulation,
handling the runtime, task outcome and data volume of a single executed job.
"""

import logging
from dataclasses import dataclass

try:
    from .task_graph import FileType, Job, TaskStatus
except ImportError:
    from task_graph import FileType, Job, TaskStatus

BYTES_PER_MB = 1024.0 * 1024.0


@dataclass
class JobMetrics:
    """Job-level metrics for a single job execution."""
    runtime: float  # finish - start on the vm, in seconds
    task_count: int
    failed_tasks: int
    input_mb: float  # inputs not produced inside the job, to be staged in
    output_mb: float


class JobMetricsCalculator:
    """
    Calculator for job-level metrics from an executed job.

    File sizes are given in bytes; volumes are reported in MB.
    """

    def __init__(self):
        """Initialize the job metrics calculator."""
        self.logger = logging.getLogger(__name__)

    def calculate_job_metrics(self, job: Job) -> JobMetrics:
        """
        Calculate job-level metrics for an executed job.

        Args:
            job: Job with start and finish times set by the simulator

        Returns:
            JobMetrics object containing calculated metrics
        """
        input_bytes = sum(item.size for item in job.files
                          if item.is_real_input_file(job.files))
        output_bytes = sum(item.size for item in job.files
                           if item.type == FileType.OUTPUT)
        failed_tasks = sum(1 for task in job.tasks if task.status == TaskStatus.FAILED)

        return JobMetrics(
            runtime=max(job.finish_time - job.start_time, 0.0),
            task_count=len(job.tasks),
            failed_tasks=failed_tasks,
            input_mb=input_bytes / BYTES_PER_MB,
            output_mb=output_bytes / BYTES_PER_MB
        )
