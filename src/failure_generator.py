"""
Failure Generator

Decides whether tasks fail during their execution window. Failure events are
the cumulative sums of a DistributionGenerator's inter-arrival samples: a task
running in [start, finish) fails iff an unconsumed event falls in that window.
"""

import logging

try:
    from .failure_monitor import FailureMonitor, FailureRecord
    from .simulation_parameters import FailureParameters
    from .task_graph import Job, Task, TaskStatus
except ImportError:
    from failure_monitor import FailureMonitor, FailureRecord
    from simulation_parameters import FailureParameters
    from task_graph import Job, Task, TaskStatus


class FailureGenerator:
    """Inject failures into finished jobs and report them to a FailureMonitor."""

    def __init__(self, parameters: FailureParameters, monitor: FailureMonitor):
        self.parameters = parameters
        self.monitor = monitor
        self.logger = logging.getLogger(__name__)

    def check_failure_status(self, task: Task, vm_id: int) -> bool:
        """
        Check whether ``task`` failed while running on ``vm_id``.

        The failure event that hits a task is consumed, so it is never reused
        by a later check. Events before the window elapsed while nothing ran
        and are skipped.

        Raises:
            FailureConfigurationError: No generator for the task's slot
            FailureRateTooHighError: The sample buffer cannot reach the window
        """
        key = self.parameters.generator_key(vm_id, task.depth)
        if key is None:
            return False
        start, finish = task.start_time, task.finish_time
        if finish <= start:
            return False

        generator = self.parameters.get_generator(*key)
        index, event_time = generator.find_event(start)
        if event_time < finish:
            generator.consume_until(index + 1)
            self.logger.debug(f"Task {task.task_id} on vm {vm_id} hit failure event "
                              f"{index} at {event_time:.2f} in [{start:.2f}, {finish:.2f})")
            return True
        return False

    def generate(self, job: Job) -> bool:
        """
        Decide the fate of every task in ``job``.

        Returns:
            True if at least one task failed
        """
        if not self.parameters.enabled:
            return False

        # a job that was never placed is charged to vm 0
        vm_id = max(job.vm_id, 0)
        job_failed = False
        for task in job.tasks:
            failed = self.check_failure_status(task, vm_id)
            task.status = TaskStatus.FAILED if failed else TaskStatus.SUCCESS
            job_failed = job_failed or failed
            self.monitor.post_failure_record(FailureRecord(
                length=task.runtime,
                failed_tasks_num=1 if failed else 0,
                depth=task.depth,
                all_task_num=1,
                vm_id=vm_id,
                job_id=job.job_id,
                workflow_id=job.user_id))

        job.status = TaskStatus.FAILED if job_failed else TaskStatus.SUCCESS
        if job_failed:
            self.logger.info(f"Job {job.job_id} failed: {len(job.failed_tasks)} of "
                             f"{len(job.tasks)} tasks hit a failure")
        return job_failed
