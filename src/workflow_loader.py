"""
Workflow Loader

Reads a workflow task list from JSON and links it into a task graph ready for
clustering. This is a plain task-list format, not a DAX parser.

Expected layout:
    {
        "workflow_id": "montage_25",
        "tasks": [
            {"id": 0, "runtime": 12.5, "type": "mProjectPP", "parents": [],
             "files": [{"name": "region.hdr", "size": 304, "link": "input"}]}
        ]
    }
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

try:
    from .simulation_errors import GraphConsistencyError
    from .task_graph import (RUNTIME_SCALE, FileItem, FileType, Task, assign_depths,
                             assign_impact_factors, index_tasks, link)
except ImportError:
    from simulation_errors import GraphConsistencyError
    from task_graph import (RUNTIME_SCALE, FileItem, FileType, Task, assign_depths,
                            assign_impact_factors, index_tasks, link)


FILE_LINKS = {
    'input': FileType.INPUT,
    'output': FileType.OUTPUT,
    'none': FileType.NONE,
}

logger = logging.getLogger(__name__)


@dataclass
class WorkflowDefinition:
    """A linked task graph and its identifier."""
    workflow_id: str
    tasks: List[Task] = field(default_factory=list)

    @property
    def total_runtime(self) -> float:
        return sum(task.runtime for task in self.tasks)


def _parse_file(data: Dict[str, Any]) -> FileItem:
    link_name = str(data.get('link', 'none')).lower()
    if link_name not in FILE_LINKS:
        raise ValueError(f"Unknown file link '{link_name}' for file {data.get('name')}")
    return FileItem(name=data['name'], size=float(data.get('size', 0.0)),
                    type=FILE_LINKS[link_name])


def parse_workflow(workflow_data: Dict[str, Any], workflow_id: str = 'unknown',
                   user_id: int = 0) -> WorkflowDefinition:
    """
    Build a linked task graph from a workflow dictionary.

    Task lengths are runtimes scaled by RUNTIME_SCALE; depths and impact
    factors are assigned once the edges are in place.

    Raises:
        GraphConsistencyError: A parent id does not name a task, or the graph has a cycle
    """
    tasks = []
    for entry in workflow_data.get('tasks', []):
        files = [_parse_file(item) for item in entry.get('files', [])]
        tasks.append(Task(
            task_id=int(entry['id']),
            length=float(entry.get('runtime', 0.0)) * RUNTIME_SCALE,
            user_id=user_id,
            priority=int(entry.get('priority', 0)),
            task_type=entry.get('type', ''),
            files=files,
            required_files=[item.name for item in files if item.type == FileType.INPUT],
        ))

    index = index_tasks(tasks)
    for entry in workflow_data.get('tasks', []):
        child = index[int(entry['id'])]
        for parent_id in entry.get('parents', []):
            if int(parent_id) not in index:
                raise GraphConsistencyError(
                    f"Task {child.task_id} refers to unknown parent {parent_id}")
            link(index[int(parent_id)], child)

    assign_depths(tasks)
    assign_impact_factors(tasks)

    workflow = WorkflowDefinition(
        workflow_id=workflow_data.get('workflow_id', workflow_id), tasks=tasks)
    logger.info(f"Parsed workflow {workflow.workflow_id}: {len(tasks)} tasks, "
                f"max depth {max((task.depth for task in tasks), default=0)}")
    return workflow


def load_workflow_from_file(filepath: Union[str, Path]) -> WorkflowDefinition:
    """Load and link a workflow from a JSON file."""
    with open(filepath, 'r') as f:
        workflow_data = json.load(f)
    return parse_workflow(workflow_data, workflow_id=str(filepath))
