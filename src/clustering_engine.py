"""
Clustering Engine

Facade that selects a clustering strategy from the configured method, runs it
over a workflow's tasks and optionally prepends a stage-in job carrying the
workflow's real input files.
"""

import logging
from typing import Callable, Dict, List, Optional

try:
    from .balanced_clustering import BalancedClustering
    from .clustering import (BasicClustering, BlockClustering, ClusteringResult,
                             HorizontalClustering, VerticalClustering)
    from .simulation_parameters import ClusteringMethod, ClusteringParameters, OverheadParameters
    from .task_graph import Job, JobClass, Task
except ImportError:
    from balanced_clustering import BalancedClustering
    from clustering import (BasicClustering, BlockClustering, ClusteringResult,
                            HorizontalClustering, VerticalClustering)
    from simulation_parameters import ClusteringMethod, ClusteringParameters, OverheadParameters
    from task_graph import Job, JobClass, Task


# Minimum duration of a stage-in job, in instructions
STAGE_IN_LENGTH = 110

CLUSTERING_STRATEGIES: Dict[ClusteringMethod, Callable[..., BasicClustering]] = {
    ClusteringMethod.NONE: BasicClustering,
    ClusteringMethod.HORIZONTAL: HorizontalClustering,
    ClusteringMethod.VERTICAL: VerticalClustering,
    ClusteringMethod.BLOCK: BlockClustering,
    ClusteringMethod.BALANCED: BalancedClustering,
}


class ClusteringEngine:
    """Run the configured clustering strategy over a task list."""

    def __init__(self, parameters: Optional[ClusteringParameters] = None,
                 overhead: Optional[OverheadParameters] = None,
                 stage_in: bool = False):
        self.parameters = parameters or ClusteringParameters()
        self.overhead = overhead
        self.stage_in = stage_in
        self.strategy: Optional[BasicClustering] = None
        self.logger = logging.getLogger(__name__)

    def run_clustering(self, tasks: List[Task]) -> ClusteringResult:
        """
        Cluster ``tasks`` with a fresh strategy instance.

        Args:
            tasks: Flat task list; it is emptied by this call

        Returns:
            ClusteringResult with jobs (stage-in job last, if enabled) and files
        """
        factory = CLUSTERING_STRATEGIES[self.parameters.method]
        self.strategy = factory(self.parameters, self.overhead)
        self.logger.info(f"Clustering {len(tasks)} tasks with method "
                         f"'{self.parameters.method.value}'")
        result = self.strategy.run(tasks)

        if self.stage_in:
            self.add_stage_in_job(result)
        return result

    def add_stage_in_job(self, result: ClusteringResult) -> Job:
        """Append a depth 0 stage-in job as the parent of every root job."""
        real_inputs = [file_item for file_item in result.files
                       if file_item.is_real_input_file(result.files)]
        stage_in = Job(job_id=len(result.jobs), length=STAGE_IN_LENGTH, depth=0,
                       job_class=JobClass.STAGE_IN, files=real_inputs)

        for job in result.jobs:
            if not job.parents:
                job.parents.append(stage_in.job_id)
                stage_in.children.append(job.job_id)
        result.jobs.append(stage_in)

        self.logger.info(f"Stage-in job {stage_in.job_id} transfers {len(real_inputs)} files "
                         f"to {len(stage_in.children)} root jobs")
        return stage_in
