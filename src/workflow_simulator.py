"""
Workflow Simulator

This module provides a workflow simulation engine that clusters workflow tasks
into jobs, executes the jobs on a pool of virtual machines following DAG
rules, injects task failures and reclusters failed jobs until every task has
succeeded.
"""

import json
import heapq
import logging
import argparse
from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass, asdict, field
from pathlib import Path

try:
    from .clustering_engine import ClusteringEngine
    from .balanced_clustering import BalancedClustering
    from .failure_generator import FailureGenerator
    from .failure_monitor import FailureMonitor
    from .job_metrics import JobMetricsCalculator
    from .reclustering_engine import ReclusteringEngine
    from .simulation_errors import FailureRateTooHighError
    from .simulation_parameters import ClusteringParameters, FailureParameters, OverheadParameters
    from .task_graph import Job, JobClass, TaskStatus
    from .workflow_loader import WorkflowDefinition, load_workflow_from_file
except ImportError:
    from clustering_engine import ClusteringEngine
    from balanced_clustering import BalancedClustering
    from failure_generator import FailureGenerator
    from failure_monitor import FailureMonitor
    from job_metrics import JobMetricsCalculator
    from reclustering_engine import ReclusteringEngine
    from simulation_errors import FailureRateTooHighError
    from simulation_parameters import ClusteringParameters, FailureParameters, OverheadParameters
    from task_graph import Job, JobClass, TaskStatus
    from workflow_loader import WorkflowDefinition, load_workflow_from_file


@dataclass
class ResourceConfig:
    """Resource configuration for workflow execution."""
    vm_num: int = 4
    mips: float = 1000.0  # instructions per second of every vm
    max_job_retries: int = 100  # failed jobs reclustered before giving up
    seed: Optional[int] = None


@dataclass
class SimulationConfig:
    """Complete configuration of a simulation run."""
    resources: ResourceConfig = field(default_factory=ResourceConfig)
    clustering: ClusteringParameters = field(default_factory=ClusteringParameters)
    overhead: Optional[OverheadParameters] = None
    failure: FailureParameters = field(default_factory=FailureParameters)
    stage_in: bool = False
    size_estimation: str = 'monitor'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimulationConfig':
        resources = ResourceConfig(**data.get('resources', {}))
        seed = resources.seed

        clustering_data = dict(data.get('clustering', {}))
        clustering_data.setdefault('seed', seed)
        failure_data = dict(data.get('failure', {}))
        failure_data.setdefault('vm_num', resources.vm_num)

        overhead = None
        if data.get('overhead'):
            overhead = OverheadParameters.from_dict(data['overhead'], seed=seed)

        return cls(resources=resources,
                   clustering=ClusteringParameters.from_dict(clustering_data),
                   overhead=overhead,
                   failure=FailureParameters.from_dict(failure_data, seed=seed),
                   stage_in=bool(data.get('stage_in', False)),
                   size_estimation=data.get('size_estimation', 'monitor'))


@dataclass
class JobInfo:
    """Information about a single executed job."""
    job_id: int
    depth: int
    job_class: str
    task_ids: List[int]
    vm_id: int
    start_time: float
    end_time: float
    runtime: float
    status: str  # 'success' or 'failed'
    failed_tasks: int = 0
    failed_task_ids: List[int] = field(default_factory=list)
    input_mb: float = 0.0
    output_mb: float = 0.0
    retry: bool = False
    replaced_by: List[int] = field(default_factory=list)


@dataclass
class SimulationResult:
    """Result of workflow simulation."""
    workflow_id: str
    clustering_method: str
    ft_method: str
    total_tasks: int
    initial_jobs: int
    total_jobs: int  # executed jobs, retries included
    failed_jobs: int
    makespan: float  # Time from workflow start to completion
    total_wall_time: float  # Sum of all job runtimes
    jobs: List[JobInfo]
    success: bool
    balancing_metrics: List[Dict[str, Any]] = field(default_factory=list)
    error_message: Optional[str] = None


def _failed_result(error_message: str, workflow_id: str = 'unknown') -> SimulationResult:
    return SimulationResult(
        workflow_id=workflow_id,
        clustering_method='unknown',
        ft_method='unknown',
        total_tasks=0,
        initial_jobs=0,
        total_jobs=0,
        failed_jobs=0,
        makespan=0.0,
        total_wall_time=0.0,
        jobs=[],
        success=False,
        error_message=error_message
    )


class WorkflowSimulator:
    """
    Workflow simulation engine with clustering and fault tolerant reclustering.

    This class simulates workflow execution following these rules:
    - Tasks are merged into jobs by the configured clustering method
    - A job starts once all its parent jobs are resolved, on the earliest free vm
    - Tasks inside a job run back to back
    - Finished jobs go through failure injection; failed jobs are reclustered
      and their replacements re-enter the queue
    """

    def __init__(self, config: Optional[SimulationConfig] = None):
        """
        Initialize the workflow simulator.

        Args:
            config: Simulation configuration
        """
        self.config = config or SimulationConfig()
        self.resource_config = self.config.resources
        self.job_metrics_calculator = JobMetricsCalculator()
        self.monitor = FailureMonitor(self.config.failure.monitor_mode)
        self.logger = logging.getLogger(__name__)
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Setup logging configuration."""
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s:%(name)s:%(levelname)s: %(message)s'
        )

    def simulate_workflow(self, workflow: Union[str, Path, WorkflowDefinition]) -> SimulationResult:
        """
        Simulate workflow execution.

        Args:
            workflow: Linked workflow, or path to its JSON task list

        Returns:
            SimulationResult object with execution details and metrics
        """
        self.logger.info("Starting workflow simulation")

        ### Load and cluster the workflow
        try:
            if not isinstance(workflow, WorkflowDefinition):
                workflow = load_workflow_from_file(workflow)
                self.logger.info(f"Loaded workflow {workflow.workflow_id}")
            self.logger.info(f"Using resources: {self.resource_config}")

            total_tasks = len(workflow.tasks)
            engine = ClusteringEngine(self.config.clustering, self.config.overhead,
                                      stage_in=self.config.stage_in)
            clustering_result = engine.run_clustering(workflow.tasks)
            balancing_metrics = self._collect_balancing_metrics(engine)
        except Exception as e:
            self.logger.error(f"Setup workflow simulation failed: {str(e)}")
            return _failed_result(str(e))

        # Simulate workflow execution
        try:
            self.monitor.reset()
            execution_result = self._simulate_execution(clustering_result.jobs)

            result = SimulationResult(
                workflow_id=workflow.workflow_id,
                clustering_method=self.config.clustering.method.value,
                ft_method=self.config.failure.ft_method.value,
                total_tasks=total_tasks,
                initial_jobs=len(clustering_result.jobs),
                total_jobs=len(execution_result['jobs']),
                failed_jobs=sum(1 for job in execution_result['jobs'] if job.status == 'failed'),
                makespan=execution_result['makespan'],
                total_wall_time=execution_result['total_wall_time'],
                jobs=execution_result['jobs'],
                success=True,
                balancing_metrics=balancing_metrics
            )

            self.logger.info(f"Workflow simulation completed successfully. "
                             f"Total jobs: {result.total_jobs}, "
                             f"Failed jobs: {result.failed_jobs}, "
                             f"Makespan: {result.makespan:.2f}s")

            return result
        except Exception as e:
            self.logger.error(f"Workflow simulation failed: {str(e)}")
            return _failed_result(str(e), workflow.workflow_id)

    def _collect_balancing_metrics(self, engine: ClusteringEngine) -> List[Dict[str, Any]]:
        """Flatten balanced clustering metric snapshots into rows."""
        if not isinstance(engine.strategy, BalancedClustering):
            return []
        rows = []
        for label, levels in engine.strategy.metrics_history:
            for depth, values in levels.items():
                rows.append({'stage': label, 'depth': depth, **values})
        return rows

    def _simulate_execution(self, jobs: List[Job]) -> Dict[str, Any]:
        """Run jobs on the vm pool until every job is resolved."""
        failure_generator = FailureGenerator(self.config.failure, self.monitor)
        reclustering_engine = ReclusteringEngine(self.config.failure, self.monitor,
                                                 self.config.overhead,
                                                 size_estimation=self.config.size_estimation)
        overhead = self.config.overhead

        jobs_by_id: Dict[int, Job] = {job.job_id: job for job in jobs}
        next_id = max(jobs_by_id, default=-1) + 1
        resolved_at: Dict[int, float] = {}
        queued = set()
        retry_ids = set()
        vm_free_at = [0.0] * self.resource_config.vm_num
        executed: List[JobInfo] = []
        retries = 0

        ready: List = []
        for job in jobs:
            if not job.parents:
                heapq.heappush(ready, (0.0, job.job_id))
                queued.add(job.job_id)

        self.logger.info(f"Starting execution of {len(jobs)} jobs on "
                         f"{self.resource_config.vm_num} vms")

        while ready:
            ready_time, job_id = heapq.heappop(ready)
            job = jobs_by_id[job_id]

            # earliest free vm, lowest id first
            vm_id = min(range(len(vm_free_at)), key=lambda i: (vm_free_at[i], i))
            queue_delay = overhead.get_queue_delay(job.depth) if overhead else 0.0
            start = max(ready_time, vm_free_at[vm_id]) + queue_delay
            finish = self._run_job(job, vm_id, start)
            vm_free_at[vm_id] = finish

            failed = failure_generator.generate(job) if job.tasks else False
            if not failed:
                job.status = TaskStatus.SUCCESS
                for task in job.tasks:
                    task.status = TaskStatus.SUCCESS
            post_delay = overhead.get_post_delay(job.depth) if overhead else 0.0
            done_at = finish + post_delay

            info = self._create_job_info(job, retry=job_id in retry_ids)
            executed.append(info)
            self.logger.debug(f"Job {job.job_id} on vm {vm_id}: "
                              f"{start:.2f}-{finish:.2f} {info.status}")

            if failed:
                retries += 1
                if retries > self.resource_config.max_job_retries:
                    raise FailureRateTooHighError(
                        f"Exceeded {self.resource_config.max_job_retries} job retries; "
                        f"last failed job {job.job_id}")
                replacements = reclustering_engine.process(job, next_id, jobs_by_id)
                for replacement in replacements:
                    jobs_by_id[replacement.job_id] = replacement
                    retry_ids.add(replacement.job_id)
                    heapq.heappush(ready, (done_at, replacement.job_id))
                    queued.add(replacement.job_id)
                next_id += len(replacements)
                info.replaced_by = [replacement.job_id for replacement in replacements]

            resolved_at[job_id] = done_at
            for child_id in job.children:
                if child_id in queued:
                    continue
                child = jobs_by_id[child_id]
                if all(parent_id in resolved_at for parent_id in child.parents):
                    child_ready = max(resolved_at[parent_id] for parent_id in child.parents)
                    heapq.heappush(ready, (child_ready, child_id))
                    queued.add(child_id)

        unresolved = [job_id for job_id in jobs_by_id if job_id not in resolved_at]
        if unresolved:
            raise RuntimeError(f"Jobs never became ready: {sorted(unresolved)[:10]}")

        return {
            'makespan': max(resolved_at.values(), default=0.0),
            'total_wall_time': sum(info.runtime for info in executed),
            'jobs': executed
        }

    def _run_job(self, job: Job, vm_id: int, start: float) -> float:
        """Run the job's tasks back to back from ``start``; returns the finish time."""
        job.vm_id = vm_id
        job.status = TaskStatus.RUNNING
        job.start_time = start
        clock = start
        for task in job.tasks:
            task.status = TaskStatus.RUNNING
            task.start_time = clock
            clock += task.length / self.resource_config.mips
            task.finish_time = clock
        # clustering delay and stage-in length are not carried by any task
        extra = job.length - sum(task.length for task in job.tasks)
        if extra > 0:
            clock += extra / self.resource_config.mips
        job.finish_time = clock
        return clock

    def _create_job_info(self, job: Job, retry: bool) -> JobInfo:
        metrics = self.job_metrics_calculator.calculate_job_metrics(job)
        return JobInfo(
            job_id=job.job_id,
            depth=job.depth,
            job_class='stage-in' if job.job_class == JobClass.STAGE_IN else 'compute',
            task_ids=[task.task_id for task in job.tasks],
            vm_id=job.vm_id,
            start_time=job.start_time,
            end_time=job.finish_time,
            runtime=metrics.runtime,
            status='failed' if job.status == TaskStatus.FAILED else 'success',
            failed_tasks=metrics.failed_tasks,
            failed_task_ids=[task.task_id for task in job.failed_tasks],
            input_mb=metrics.input_mb,
            output_mb=metrics.output_mb,
            retry=retry
        )

    def print_simulation_summary(self, result: SimulationResult) -> None:
        """Print a summary of the simulation results."""
        print("\n" + "="*60)
        print("WORKFLOW SIMULATION SUMMARY")
        print("="*60)

        print(f"Workflow ID: {result.workflow_id}")
        print(f"Clustering Method: {result.clustering_method}")
        print(f"Fault Tolerant Method: {result.ft_method}")
        print(f"Total Tasks: {result.total_tasks}")
        print(f"Initial Jobs: {result.initial_jobs}")
        print(f"Executed Jobs: {result.total_jobs}")
        print(f"Failed Jobs: {result.failed_jobs}")
        print(f"Total Wall Time: {result.total_wall_time:.2f} seconds ({result.total_wall_time/3600:.2f} hours)")
        print(f"Makespan: {result.makespan:.2f} seconds ({result.makespan/3600:.2f} hours)")
        print(f"Success: {result.success}")

        if result.error_message:
            print(f"Error: {result.error_message}")

        if result.balancing_metrics:
            print("\n" + "-"*40)
            print("BALANCING METRICS")
            print("-"*40)
            for row in result.balancing_metrics:
                print(f"  {row['stage']:>6} depth {row['depth']}: HRV={row['HRV']:.4f} "
                      f"IFV={row['IFV']:.4f} PRV={row['PRV']:.4f} DV={row['DV']:.4f}")

    def write_simulation_result(self, result: SimulationResult,
                                filepath: Union[str, Path]) -> None:
        """Write simulation result to a JSON file."""
        result_dict = asdict(result)

        with open(filepath, 'w') as f:
            json.dump(result_dict, f, indent=2)

        self.logger.info(f"Simulation result written to {filepath}")


def load_simulation_config(filepath: Union[str, Path]) -> SimulationConfig:
    """Load a simulation configuration from a JSON file."""
    with open(filepath, 'r') as f:
        return SimulationConfig.from_dict(json.load(f))


def _get_output_path(input_path: str) -> str:
    """
    Generate output path based on input path structure.

    Args:
        input_path: Path to input workflow file

    Returns:
        Output path in results/ directory with same structure (excluding templates/ prefix)
    """
    input_path_obj = Path(input_path)

    # Remove 'templates/' prefix if present
    if input_path_obj.parts[0] == 'templates':
        relative_path = input_path_obj.relative_to('templates')
    else:
        relative_path = input_path_obj

    output_path = Path("results") / relative_path
    output_path.parent.mkdir(parents=True, exist_ok=True)

    return str(output_path)


def parse_arguments():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Workflow Simulator - Task clustering and failure simulation engine'
    )
    parser.add_argument(
        '--workflow',
        type=str,
        default='templates/montage_workflow.json',
        help='Path to input workflow JSON file (default: templates/montage_workflow.json)'
    )
    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Path to simulation configuration JSON file (default: no clustering, no failures)'
    )
    parser.add_argument(
        '--vm-num',
        type=int,
        default=None,
        help='Override the number of virtual machines'
    )
    return parser.parse_args()


def main():
    """Main function with command line argument support."""
    args = parse_arguments()

    config = load_simulation_config(args.config) if args.config else SimulationConfig()
    if args.vm_num is not None:
        config.resources.vm_num = args.vm_num

    # Create simulator and run simulation
    simulator = WorkflowSimulator(config)
    result = simulator.simulate_workflow(args.workflow)

    # Print results
    simulator.print_simulation_summary(result)

    # Write results to file with same structure as input
    output_path = _get_output_path(args.workflow)
    simulator.write_simulation_result(result, output_path)


if __name__ == "__main__":
    main()
