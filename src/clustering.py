"""
Clustering Strategies

This module merges workflow tasks into jobs. Every strategy consumes a flat
task list whose depths and dependency edges are already set, and produces a
job list with rewired job-level dependencies plus a deduplicated manifest of
every file the tasks read or write.

Strategies:
- BasicClustering: one job per task
- HorizontalClustering: per-depth partitions of a fixed count or size
- VerticalClustering: pipelines of single-parent/single-child tasks
- BlockClustering: horizontal partitions expanded along pipelines
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Tuple

import numpy as np

try:
    from .simulation_errors import ClusteringConfigurationError, GraphConsistencyError
    from .simulation_parameters import ClusteringParameters, OverheadParameters
    from .task_graph import RUNTIME_SCALE, FileItem, Job, Task, index_tasks, unlink
except ImportError:
    from simulation_errors import ClusteringConfigurationError, GraphConsistencyError
    from simulation_parameters import ClusteringParameters, OverheadParameters
    from task_graph import RUNTIME_SCALE, FileItem, Job, Task, index_tasks, unlink


@dataclass
class ClusteringResult:
    """Output of a clustering run."""
    jobs: List[Job] = field(default_factory=list)
    files: List[FileItem] = field(default_factory=list)


def bundle_slices(num: int, clusters_num: int) -> Iterator[Tuple[int, int]]:
    """
    Yield (start, end) slices splitting ``num`` items into ``clusters_num`` bundles.

    Sizes differ by at most one; the first ``num % clusters_num`` bundles take
    the extra item. Fewer bundles are produced when there are fewer items.
    """
    avg_a = num // clusters_num
    avg_b = avg_a + 1 if avg_a * clusters_num < num else avg_a
    mid = num - clusters_num * avg_a
    avg_a = max(avg_a, 1)
    avg_b = max(avg_b, 1)

    start = 0
    for i in range(clusters_num):
        end = min(start + (avg_b if i < mid else avg_a), num)
        if end <= start:
            break
        yield start, end
        start = end


def collapse_slices(num: int, clusters_size: int) -> Iterator[Tuple[int, int]]:
    """Yield consecutive (start, end) slices of at most ``clusters_size`` items."""
    for start in range(0, num, clusters_size):
        yield start, min(start + clusters_size, num)


class BasicClustering:
    """
    One job per task, and the merge machinery shared by every strategy.

    ``run`` is single use: it clears the caller's task list, discards the
    transient task to job map once dependencies are rewired, and refuses to
    run again on the same instance.
    """

    name = 'basic'

    def __init__(self, parameters: Optional[ClusteringParameters] = None,
                 overhead: Optional[OverheadParameters] = None):
        self.parameters = parameters or ClusteringParameters()
        self.overhead = overhead
        self.logger = logging.getLogger(__name__)

        self.jobs: List[Job] = []
        self.files: List[FileItem] = []
        self._file_keys: Set[Tuple[str, object]] = set()
        self._tasks: List[Task] = []
        self._index: Dict[int, Task] = {}
        self._task_to_job: Dict[int, Job] = {}
        self._next_id = 0
        self._consumed = False

    def run(self, tasks: List[Task]) -> ClusteringResult:
        """
        Cluster ``tasks`` into jobs.

        Args:
            tasks: Flat task list; it is emptied by this call

        Returns:
            ClusteringResult with the job list and the file manifest
        """
        if self._consumed:
            raise ClusteringConfigurationError(
                f"{type(self).__name__} has already run; create a new instance")
        self._consumed = True

        self._tasks = list(tasks)
        tasks.clear()
        self._index = index_tasks(self._tasks)

        self.cluster()
        self.update_dependencies()
        self.add_cluster_delay()

        self.logger.info(f"{self.name.capitalize()} clustering merged "
                         f"{len(self._index)} tasks into {len(self.jobs)} jobs")
        self._index = {}
        return ClusteringResult(jobs=self.jobs, files=self.files)

    def cluster(self) -> None:
        for task in self._tasks:
            self.add_tasks_to_job([task])

    def add_tasks_to_job(self, tasks: List[Task]) -> Optional[Job]:
        """Merge ``tasks`` into a new job; returns None for an empty list."""
        if not tasks:
            return None

        job = Job(job_id=self._next_id)
        for task in tasks:
            job.length += task.length
            job.user_id = task.user_id
            job.priority = task.priority
            job.depth = task.depth
            job.tasks.append(task)
            self._task_to_job[task.task_id] = job

            for file_item in task.files:
                if file_item not in job.files:
                    job.files.append(file_item)
                self._add_to_manifest(file_item)
            for file_name in task.required_files:
                if file_name not in job.required_files:
                    job.required_files.append(file_name)

        self._next_id += 1
        self.jobs.append(job)
        return job

    def _add_to_manifest(self, file_item: FileItem) -> None:
        key = (file_item.name, file_item.type)
        if key not in self._file_keys:
            self._file_keys.add(key)
            self.files.append(file_item)

    def _job_of(self, task_id: int, referrer: int) -> Job:
        try:
            return self._task_to_job[task_id]
        except KeyError:
            raise GraphConsistencyError(
                f"Task {task_id} (linked from task {referrer}) was not assigned to a job")

    def update_dependencies(self) -> None:
        """Map task edges through the task to job table, then drop the table."""
        for task in self._tasks:
            job = self._job_of(task.task_id, task.task_id)
            for parent_id in task.parents:
                parent_job = self._job_of(parent_id, task.task_id)
                if parent_job is not job and parent_job.job_id not in job.parents:
                    job.parents.append(parent_job.job_id)
            for child_id in task.children:
                child_job = self._job_of(child_id, task.task_id)
                if child_job is not job and child_job.job_id not in job.children:
                    job.children.append(child_job.job_id)

        self._task_to_job.clear()
        self._tasks.clear()

    def add_cluster_delay(self) -> None:
        if self.overhead is None:
            return
        for job in self.jobs:
            delay = self.overhead.get_cluster_delay(job.depth)
            job.length += delay * RUNTIME_SCALE

    def _depth_pools(self) -> Dict[int, List[Task]]:
        pools: Dict[int, List[Task]] = {}
        for task in self._tasks:
            pools.setdefault(task.depth, []).append(task)
        return dict(sorted(pools.items()))


class HorizontalClustering(BasicClustering):
    """Partition each depth level into ``clusters_num`` bundles or ``clusters_size`` chunks."""

    name = 'horizontal'

    def __init__(self, parameters: ClusteringParameters,
                 overhead: Optional[OverheadParameters] = None):
        super().__init__(parameters, overhead)
        if parameters.clusters_num <= 0 and parameters.clusters_size <= 0:
            raise ClusteringConfigurationError(
                "Horizontal clustering needs clusters_num or clusters_size")
        self.rng = np.random.default_rng(parameters.seed)

    def _shuffle(self, pool: List[Task]) -> List[Task]:
        for _ in range(2):
            pool = [pool[i] for i in self.rng.permutation(len(pool))]
        return pool

    def cluster(self) -> None:
        clusters_num = self.parameters.clusters_num
        clusters_size = self.parameters.clusters_size
        for depth, pool in self._depth_pools().items():
            pool = self._shuffle(pool)
            if clusters_num > 0:
                slices = bundle_slices(len(pool), clusters_num)
            else:
                slices = collapse_slices(len(pool), clusters_size)
            for start, end in slices:
                self.add_tasks_to_job(pool[start:end])
            self.logger.debug(f"Depth {depth}: {len(pool)} tasks partitioned")


class VerticalClustering(BasicClustering):
    """Fold pipelines (fan-in = fan-out = 1) into single jobs."""

    name = 'vertical'

    def remove_duplicate_montage(self) -> None:
        """Drop Montage edges that hide the pipelines from the chain walk."""
        for task in self._tasks:
            if task.task_type == 'mBackground':
                dropped = {'mProjectPP'}
            elif task.task_type == 'mAdd':
                dropped = {'mBackground', 'mShrink'}
            else:
                continue
            for parent_id in list(task.parents):
                parent = self._index[parent_id]
                if parent.task_type in dropped:
                    unlink(parent, task)

    def cluster(self) -> None:
        if self.parameters.reduce_method == 'montage':
            self.remove_duplicate_montage()

        chain: List[Task] = []

        def flush():
            self.add_tasks_to_job(chain)
            chain.clear()

        checked = set()
        # roots are the children of a synthetic root node
        stack = [task for task in self._tasks if not task.parents]
        while stack:
            node = stack.pop()
            if node.task_id in checked:
                flush()
                continue
            checked.add(node.task_id)
            stack.extend(self._index[child_id] for child_id in node.children)

            parents_num = len(node.parents) or 1
            children_num = len(node.children)
            if parents_num > 1:
                flush()
            chain.append(node)
            if children_num != 1:
                flush()
        flush()


class BlockClustering(BasicClustering):
    """Horizontal-style partitions whose entries extend along their pipelines."""

    name = 'block'

    def __init__(self, parameters: ClusteringParameters,
                 overhead: Optional[OverheadParameters] = None):
        super().__init__(parameters, overhead)
        if parameters.clusters_num <= 0 and parameters.clusters_size <= 0:
            raise ClusteringConfigurationError(
                "Block clustering needs clusters_num or clusters_size")
        self._checked: Set[int] = set()

    def search_list(self, tasks: List[Task]) -> List[Task]:
        """Expand each unclaimed task with its single-child/single-parent successors."""
        successors = []
        for task in tasks:
            if task.task_id in self._checked:
                continue
            self._checked.add(task.task_id)
            successors.append(task)

            node = task
            while len(node.children) == 1:
                child = self._index[node.children[0]]
                if child.task_id in self._checked or len(child.parents) != 1:
                    break
                self._checked.add(child.task_id)
                successors.append(child)
                node = child
        return successors

    def cluster(self) -> None:
        clusters_num = self.parameters.clusters_num
        clusters_size = self.parameters.clusters_size
        for pool in self._depth_pools().values():
            if clusters_num > 0:
                slices = bundle_slices(len(pool), clusters_num)
            else:
                slices = collapse_slices(len(pool), clusters_size)
            for start, end in slices:
                self.add_tasks_to_job(self.search_list(pool[start:end]))
        self._checked.clear()
