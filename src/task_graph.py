"""
Task Graph

This module provides the graph primitives shared by the clustering, balancing,
failure and reclustering modules: files, tasks, jobs and the transient task
sets used during balanced clustering.

Tasks and jobs address each other by integer id. A task's ``parents`` and
``children`` hold task ids; a job's hold job ids. ``index_tasks`` builds the
id arena that clustering strategies use to resolve them.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

try:
    from .simulation_errors import GraphConsistencyError
except ImportError:
    from simulation_errors import GraphConsistencyError


# Instructions per simulated second. Task lengths are runtimes scaled by this
# ratio and overhead delays are converted with it as well.
RUNTIME_SCALE = 1000


class FileType(Enum):
    """Role of a file in a task's file list."""
    NONE = 0
    INPUT = 1
    OUTPUT = 2


class TaskStatus(Enum):
    """Execution status of a task or job."""
    CREATED = 'created'
    RUNNING = 'running'
    SUCCESS = 'success'
    FAILED = 'failed'


class JobClass(Enum):
    """Kind of job produced by clustering."""
    STAGE_IN = 1
    COMPUTE = 2


@dataclass(frozen=True)
class FileItem:
    """A named data artifact read or written by a task."""
    name: str
    size: float
    type: FileType = FileType.NONE

    def is_real_input_file(self, file_list: Iterable['FileItem']) -> bool:
        """
        Check whether this file needs to be staged in.

        Workflows write a file once and read it many times, so an input file
        that is also produced as an output somewhere in ``file_list`` is
        generated within the considered set and needs no transfer.

        Args:
            file_list: Files of the task set being considered

        Returns:
            True if this is an input file that nothing in file_list produces
        """
        if self.type != FileType.INPUT:
            return False
        for another in file_list:
            if another.name == self.name and another.type == FileType.OUTPUT:
                return False
        return True


@dataclass
class Task:
    """Atomic unit of work in the workflow DAG."""
    task_id: int
    length: float  # instructions, runtime * RUNTIME_SCALE
    user_id: int = 0
    depth: int = 0
    priority: int = 0
    impact: float = 0.0
    task_type: str = ''
    status: TaskStatus = TaskStatus.CREATED
    start_time: float = 0.0
    finish_time: float = 0.0
    files: List[FileItem] = field(default_factory=list)
    required_files: List[str] = field(default_factory=list)
    parents: List[int] = field(default_factory=list)
    children: List[int] = field(default_factory=list)

    @property
    def runtime(self) -> float:
        """Runtime in simulated seconds."""
        return self.length / RUNTIME_SCALE


@dataclass
class Job:
    """One or more tasks merged into a single schedulable unit."""
    job_id: int
    length: float = 0.0
    depth: int = 0
    job_class: JobClass = JobClass.COMPUTE
    tasks: List[Task] = field(default_factory=list)
    files: List[FileItem] = field(default_factory=list)
    required_files: List[str] = field(default_factory=list)
    parents: List[int] = field(default_factory=list)
    children: List[int] = field(default_factory=list)
    user_id: int = 0
    priority: int = 0
    vm_id: int = -1
    status: TaskStatus = TaskStatus.CREATED
    start_time: float = 0.0
    finish_time: float = 0.0

    @property
    def failed_tasks(self) -> List[Task]:
        return [task for task in self.tasks if task.status == TaskStatus.FAILED]


@dataclass(eq=False)
class TaskSet:
    """
    Transient grouping node used during balanced clustering.

    Task sets coarsen the task graph; their parent and child lists are
    derived from the task edges and rebuilt between balancing passes.
    Equality is identity so sets can be used as dictionary keys.
    """
    tasks: List[Task] = field(default_factory=list)
    parents: List['TaskSet'] = field(default_factory=list)
    children: List['TaskSet'] = field(default_factory=list)
    checked: bool = False
    impact_factor: float = 0.0

    @property
    def runtime(self) -> float:
        """Aggregate length of the tasks in this set."""
        return sum(task.length for task in self.tasks)

    def add_tasks(self, tasks: Iterable[Task]) -> None:
        self.tasks.extend(tasks)


def index_tasks(tasks: Iterable[Task]) -> Dict[int, Task]:
    """Build the task id arena, rejecting duplicate ids."""
    index: Dict[int, Task] = {}
    for task in tasks:
        if task.task_id in index:
            raise GraphConsistencyError(f"Duplicate task id {task.task_id}")
        index[task.task_id] = task
    return index


def link(parent: Task, child: Task) -> None:
    """Add a mutual parent -> child edge between two tasks."""
    if child.task_id not in parent.children:
        parent.children.append(child.task_id)
    if parent.task_id not in child.parents:
        child.parents.append(parent.task_id)


def unlink(parent: Task, child: Task) -> None:
    """Remove the parent -> child edge from both endpoints."""
    if child.task_id in parent.children:
        parent.children.remove(child.task_id)
    if parent.task_id in child.parents:
        child.parents.remove(parent.task_id)


def topological_order(tasks: List[Task],
                      index: Optional[Dict[int, Task]] = None) -> List[Task]:
    """Return tasks parents-first; raise GraphConsistencyError on a cycle."""
    index = index if index is not None else index_tasks(tasks)
    in_degree = {task.task_id: len(task.parents) for task in tasks}
    queue = deque(task for task in tasks if not task.parents)
    ordered = []

    while queue:
        task = queue.popleft()
        ordered.append(task)
        for child_id in task.children:
            if child_id not in index:
                raise GraphConsistencyError(
                    f"Task {task.task_id} has unknown child {child_id}")
            in_degree[child_id] -= 1
            if in_degree[child_id] == 0:
                queue.append(index[child_id])

    if len(ordered) != len(tasks):
        raise GraphConsistencyError("Task graph contains a cycle")
    return ordered


def assign_depths(tasks: List[Task]) -> None:
    """Set each task's depth to its longest path from a root (roots are 1)."""
    index = index_tasks(tasks)
    for task in topological_order(tasks, index):
        parent_depths = [index[p].depth for p in task.parents]
        task.depth = max(parent_depths) + 1 if parent_depths else 1


def assign_impact_factors(tasks: List[Task]) -> None:
    """
    Propagate workflow importance backward from the sinks.

    The sinks share an impact of 1.0 evenly; every task passes its impact to
    its parents, split evenly among them.
    """
    if not tasks:
        return
    index = index_tasks(tasks)
    ordered = topological_order(tasks, index)
    sinks = [task for task in tasks if not task.children]

    for task in tasks:
        task.impact = 0.0
    for task in sinks:
        task.impact = 1.0 / len(sinks)

    for task in reversed(ordered):
        if not task.parents:
            continue
        share = task.impact / len(task.parents)
        for parent_id in task.parents:
            index[parent_id].impact += share
