"""
Reclustering Engine

Builds replacement jobs for a failed job. The fault tolerant clustering
method decides which tasks are retried and how they are regrouped:

- NOOP: resubmit every task as one job
- SR: resubmit only the failed tasks as one job
- DC: regroup every task into jobs of the estimated optimal size
- DR: regroup only the failed tasks into jobs of the estimated optimal size
- BLOCK: DR separately for each depth that had a failure
- BINARY: bisect the depth range, DC on each single-depth part
"""

import logging
from typing import Callable, Dict, List, Optional

try:
    from .clustering_size_estimator import estimate_k
    from .failure_monitor import FailureMonitor, FailureRecord
    from .simulation_errors import GraphConsistencyError
    from .simulation_parameters import FailureParameters, FTCMethod, OverheadParameters
    from .task_graph import RUNTIME_SCALE, Job, Task, TaskStatus
except ImportError:
    from clustering_size_estimator import estimate_k
    from failure_monitor import FailureMonitor, FailureRecord
    from simulation_errors import GraphConsistencyError
    from simulation_parameters import FailureParameters, FTCMethod, OverheadParameters
    from task_graph import RUNTIME_SCALE, Job, Task, TaskStatus


SIZE_ESTIMATIONS = ('monitor', 'distribution')


def estimate_cluster_factor(record: FailureRecord, monitor: FailureMonitor) -> int:
    """Optimal number of tasks per job for ``record`` under ``monitor``'s statistics."""
    return monitor.get_clustering_factor(record)


class ReclusteringEngine:
    """
    Create replacement jobs for failed jobs.

    Every replacement inherits the complete parent and child lists of the
    failed job, and each of those parents and children is linked back to every
    replacement, even when a replacement only holds part of the tasks.
    """

    def __init__(self, failure_parameters: FailureParameters, monitor: FailureMonitor,
                 overhead_parameters: Optional[OverheadParameters] = None,
                 size_estimation: str = 'monitor'):
        if size_estimation not in SIZE_ESTIMATIONS:
            raise ValueError(f"size_estimation must be one of {SIZE_ESTIMATIONS}, "
                             f"got '{size_estimation}'")
        self.failure_parameters = failure_parameters
        self.monitor = monitor
        self.overhead_parameters = overhead_parameters
        self.size_estimation = size_estimation
        self.logger = logging.getLogger(__name__)

        self._methods: Dict[FTCMethod, Callable[[Job, int], List[Job]]] = {
            FTCMethod.NOOP: self._noop,
            FTCMethod.SR: self._selective,
            FTCMethod.DC: lambda job, next_id: self._dynamic_clustering(job, job.tasks, next_id),
            FTCMethod.DR: lambda job, next_id: self._dynamic_reclustering(job, job.tasks, next_id),
            FTCMethod.BLOCK: self._block,
            FTCMethod.BINARY: self._binary,
        }

    def process(self, job: Job, next_id: int, jobs_by_id: Dict[int, Job]) -> List[Job]:
        """
        Recluster a failed job.

        Args:
            job: The failed job
            next_id: First free job id; replacements take consecutive ids
            jobs_by_id: Every known job, used to link parents and children

        Returns:
            Replacement jobs, not yet added to ``jobs_by_id``
        """
        method = self.failure_parameters.ft_method
        replacements = self._methods[method](job, next_id)
        self.update_dependencies(job, replacements, jobs_by_id)
        self.logger.info(f"Reclustering ({method.value}) replaced job {job.job_id} with "
                         f"{len(replacements)} jobs: {[r.job_id for r in replacements]}")
        return replacements

    def create_job(self, job_id: int, failed: Job, tasks: List[Task]) -> Job:
        """Replacement job for ``tasks`` with the failed job's user and depth."""
        new_job = Job(job_id=job_id, depth=failed.depth, user_id=failed.user_id,
                      priority=failed.priority, vm_id=-1, status=TaskStatus.CREATED)
        for task in tasks:
            task.status = TaskStatus.CREATED
            new_job.tasks.append(task)
            new_job.length += task.length
            for file_item in task.files:
                if file_item not in new_job.files:
                    new_job.files.append(file_item)
            for file_name in task.required_files:
                if file_name not in new_job.required_files:
                    new_job.required_files.append(file_name)
        return new_job

    def update_dependencies(self, failed: Job, replacements: List[Job],
                            jobs_by_id: Dict[int, Job]) -> None:
        new_ids = [replacement.job_id for replacement in replacements]
        for replacement in replacements:
            replacement.parents = list(failed.parents)
            replacement.children = list(failed.children)
        for parent_id in failed.parents:
            self._lookup(parent_id, failed, jobs_by_id).children.extend(new_ids)
        for child_id in failed.children:
            self._lookup(child_id, failed, jobs_by_id).parents.extend(new_ids)

    @staticmethod
    def _lookup(job_id: int, failed: Job, jobs_by_id: Dict[int, Job]) -> Job:
        try:
            return jobs_by_id[job_id]
        except KeyError:
            raise GraphConsistencyError(
                f"Job {job_id} linked to failed job {failed.job_id} is unknown")

    def _split(self, failed: Job, tasks: List[Task], k: int, next_id: int) -> List[Job]:
        if not tasks:
            return []
        if k <= 0:
            # the optimal size is beyond the search range
            return [self.create_job(next_id, failed, tasks)]
        return [self.create_job(next_id + offset, failed, tasks[start:start + k])
                for offset, start in enumerate(range(0, len(tasks), k))]

    def _noop(self, job: Job, next_id: int) -> List[Job]:
        replacement = self.create_job(next_id, job, job.tasks)
        replacement.length = job.length
        return [replacement]

    def _selective(self, job: Job, next_id: int) -> List[Job]:
        failed_tasks = job.failed_tasks
        if not failed_tasks:
            return []
        return [self.create_job(next_id, job, failed_tasks)]

    def _cumulative_delay(self, depth: int) -> float:
        if self.overhead_parameters is None:
            return 0.0
        return self.overhead_parameters.get_cumulative_delay(depth)

    def _monitor_k(self, job: Job, tasks: List[Task]) -> int:
        record = FailureRecord(length=tasks[0].length / RUNTIME_SCALE,
                               failed_tasks_num=0,
                               depth=job.depth,
                               all_task_num=len(tasks),
                               vm_id=max(job.vm_id, 0),
                               job_id=job.job_id,
                               workflow_id=job.user_id,
                               delay_length=self._cumulative_delay(job.depth))
        return estimate_cluster_factor(record, self.monitor)

    def _distribution_k(self, job: Job, tasks: List[Task]) -> int:
        key = self.failure_parameters.generator_key(max(job.vm_id, 0), job.depth)
        if key is None:
            return self._monitor_k(job, tasks)
        generator = self.failure_parameters.get_generator(*key)
        phi_ts = 0.0
        if self.overhead_parameters is not None:
            phi_ts = self.overhead_parameters.get_overhead_likelihood_prior(job.depth)
        t = tasks[0].length / RUNTIME_SCALE
        d = self._cumulative_delay(job.depth)
        k = estimate_k(t, d, generator.get_mle_mean(), generator.get_likelihood_prior(), phi_ts)
        self.logger.debug(f"Size estimate for job {job.job_id}: t={t} d={d} "
                          f"theta={generator.get_mle_mean():.3f} k={k}")
        return k

    def _dynamic_clustering(self, job: Job, tasks: List[Task], next_id: int) -> List[Job]:
        if not tasks:
            return []
        k = self._monitor_k(job, tasks)
        return self._split(job, tasks, k, next_id)

    def _dynamic_reclustering(self, job: Job, tasks: List[Task], next_id: int) -> List[Job]:
        failed_tasks = [task for task in tasks if task.status == TaskStatus.FAILED]
        if not failed_tasks:
            return []
        if self.size_estimation == 'distribution':
            k = self._distribution_k(job, failed_tasks)
        else:
            k = self._monitor_k(job, failed_tasks)
        return self._split(job, failed_tasks, k, next_id)

    @staticmethod
    def _depth_buckets(tasks: List[Task]) -> Dict[int, List[Task]]:
        buckets: Dict[int, List[Task]] = {}
        for task in tasks:
            buckets.setdefault(task.depth, []).append(task)
        return dict(sorted(buckets.items()))

    def _block(self, job: Job, next_id: int) -> List[Job]:
        buckets = self._depth_buckets(job.tasks)
        if len(buckets) == 1:
            return self._dynamic_reclustering(job, job.tasks, next_id)

        replacements = []
        for tasks in buckets.values():
            if any(task.status == TaskStatus.FAILED for task in tasks):
                new_jobs = self._dynamic_reclustering(job, tasks, next_id + len(replacements))
                replacements.extend(new_jobs)
        return replacements

    def _binary(self, job: Job, next_id: int) -> List[Job]:
        return self._bisect(job, self._depth_buckets(job.tasks), next_id)

    def _bisect(self, job: Job, buckets: Dict[int, List[Task]], next_id: int) -> List[Job]:
        depths = list(buckets)
        if len(depths) == 1:
            return self._dynamic_clustering(job, buckets[depths[0]], next_id)

        mid = (depths[0] + depths[-1]) // 2
        upper = {depth: tasks for depth, tasks in buckets.items() if depth <= mid}
        lower = {depth: tasks for depth, tasks in buckets.items() if depth > mid}
        replacements = self._bisect(job, upper, next_id)
        replacements.extend(self._bisect(job, lower, next_id + len(replacements)))
        return replacements
