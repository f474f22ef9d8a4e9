"""
Workflow Metrics Calculator

This module provides a metrics calculation class for workflow simulation
results, supporting comparison of clustering and fault tolerant methods on the
same workflow.
"""

import logging
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field

import numpy as np


@dataclass
class DepthMetrics:
    """Metrics for the jobs executed at one workflow depth."""
    depth: int
    job_count: int
    failed_jobs: int
    task_count: int  # task executions, retries included
    total_runtime: float
    average_runtime: float


@dataclass
class WorkflowMetrics:
    """Workflow execution metrics."""
    workflow_id: str
    clustering_method: str
    ft_method: str
    total_tasks: int
    initial_jobs: int
    total_jobs: int
    failed_jobs: int
    retry_jobs: int
    makespan: float
    total_wall_time: float
    task_executions: int
    failed_task_executions: int
    task_failure_rate: float  # failed task executions / task executions
    retry_overhead: float  # executions beyond one per task / tasks
    vm_utilization: float  # wall time / (makespan * vms used)
    total_input_mb: float = 0.0
    total_output_mb: float = 0.0
    depth_metrics: List[DepthMetrics] = field(default_factory=list)


class WorkflowMetricsCalculator:
    """
    Calculator for workflow performance metrics from simulation results.

    Only works with simulation results, not raw workflow definitions.
    """

    def __init__(self):
        self.metrics: Optional[WorkflowMetrics] = None
        self.logger = logging.getLogger(__name__)

    def calculate_metrics(self, simulation_result: 'SimulationResult') -> WorkflowMetrics:
        """
        Calculate metrics directly from a SimulationResult object.

        Args:
            simulation_result: SimulationResult object from WorkflowSimulator

        Returns:
            WorkflowMetrics object containing all calculated metrics
        """
        self.logger.info("Starting workflow metrics calculation from simulation result")
        jobs = simulation_result.jobs

        task_executions = sum(len(job.task_ids) for job in jobs)
        failed_task_executions = sum(job.failed_tasks for job in jobs)
        total_tasks = simulation_result.total_tasks
        vms_used = len({job.vm_id for job in jobs})

        task_failure_rate = failed_task_executions / task_executions if task_executions else 0.0
        retry_overhead = (task_executions - total_tasks) / total_tasks if total_tasks else 0.0
        capacity = simulation_result.makespan * vms_used
        vm_utilization = simulation_result.total_wall_time / capacity if capacity > 0 else 0.0

        self.metrics = WorkflowMetrics(
            workflow_id=simulation_result.workflow_id,
            clustering_method=simulation_result.clustering_method,
            ft_method=simulation_result.ft_method,
            total_tasks=total_tasks,
            initial_jobs=simulation_result.initial_jobs,
            total_jobs=simulation_result.total_jobs,
            failed_jobs=simulation_result.failed_jobs,
            retry_jobs=sum(1 for job in jobs if job.retry),
            makespan=simulation_result.makespan,
            total_wall_time=simulation_result.total_wall_time,
            task_executions=task_executions,
            failed_task_executions=failed_task_executions,
            task_failure_rate=task_failure_rate,
            retry_overhead=retry_overhead,
            vm_utilization=vm_utilization,
            total_input_mb=sum(job.input_mb for job in jobs),
            total_output_mb=sum(job.output_mb for job in jobs),
            depth_metrics=self._calculate_depth_metrics(jobs)
        )

        self.logger.info("Workflow metrics calculation from simulation completed")
        return self.metrics

    def _calculate_depth_metrics(self, jobs: List[Any]) -> List[DepthMetrics]:
        """Group executed jobs by depth."""
        by_depth: Dict[int, List[Any]] = {}
        for job in jobs:
            by_depth.setdefault(job.depth, []).append(job)

        depth_metrics = []
        for depth in sorted(by_depth):
            runtimes = np.array([job.runtime for job in by_depth[depth]], dtype=float)
            depth_metrics.append(DepthMetrics(
                depth=depth,
                job_count=len(by_depth[depth]),
                failed_jobs=sum(1 for job in by_depth[depth] if job.status == 'failed'),
                task_count=sum(len(job.task_ids) for job in by_depth[depth]),
                total_runtime=float(runtimes.sum()),
                average_runtime=float(runtimes.mean())
            ))
        return depth_metrics

    def calculate_job_statistics(self, simulation_result: 'SimulationResult') -> Dict[str, float]:
        """
        Summary statistics over the executed jobs' runtimes and sizes.

        Returns:
            Dictionary with average, min, max and standard deviation of job
            runtime and of tasks per job
        """
        if not simulation_result.jobs:
            return {
                'average_runtime': 0.0,
                'min_runtime': 0.0,
                'max_runtime': 0.0,
                'std_runtime': 0.0,
                'average_tasks_per_job': 0.0,
                'min_tasks_per_job': 0,
                'max_tasks_per_job': 0
            }

        runtimes = np.array([job.runtime for job in simulation_result.jobs], dtype=float)
        sizes = np.array([len(job.task_ids) for job in simulation_result.jobs])
        return {
            'average_runtime': float(runtimes.mean()),
            'min_runtime': float(runtimes.min()),
            'max_runtime': float(runtimes.max()),
            'std_runtime': float(runtimes.std()),
            'average_tasks_per_job': float(sizes.mean()),
            'min_tasks_per_job': int(sizes.min()),
            'max_tasks_per_job': int(sizes.max())
        }

    def compare_results(self, results: List['SimulationResult']) -> List[Dict[str, Any]]:
        """
        Build one comparison row per simulation result.

        Rows are ordered by makespan, fastest first.
        """
        rows = []
        for result in results:
            if not result.success:
                self.logger.warning(f"Skipping failed simulation {result.workflow_id}: "
                                    f"{result.error_message}")
                continue
            metrics = self.calculate_metrics(result)
            rows.append({
                'clustering_method': metrics.clustering_method,
                'ft_method': metrics.ft_method,
                'initial_jobs': metrics.initial_jobs,
                'total_jobs': metrics.total_jobs,
                'failed_jobs': metrics.failed_jobs,
                'makespan': metrics.makespan,
                'task_failure_rate': metrics.task_failure_rate,
                'retry_overhead': metrics.retry_overhead
            })
        rows.sort(key=lambda row: row['makespan'])
        return rows
