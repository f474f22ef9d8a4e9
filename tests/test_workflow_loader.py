"""
Unit tests for workflow_loader.py module.
"""

import json
import pytest
from pathlib import Path
import sys

# Add src directory to path for imports
sys.path.append(str(Path(__file__).parent.parent / "src"))

from simulation_errors import GraphConsistencyError
from task_graph import FileType
from workflow_loader import load_workflow_from_file, parse_workflow

TEMPLATE = Path(__file__).parent.parent / "templates" / "montage_workflow.json"


class TestWorkflowLoader:
    """Test cases for the workflow JSON loader."""

    def test_parse_workflow(self):
        data = {
            "workflow_id": "pair",
            "tasks": [
                {"id": 0, "runtime": 2.0, "type": "a",
                 "files": [{"name": "in.txt", "size": 10, "link": "input"},
                           {"name": "mid.txt", "size": 20, "link": "output"}]},
                {"id": 1, "runtime": 3.5, "type": "b", "parents": [0],
                 "files": [{"name": "mid.txt", "size": 20, "link": "input"}]}
            ]
        }
        workflow = parse_workflow(data)
        first, second = workflow.tasks

        assert workflow.workflow_id == "pair"
        assert first.length == 2000.0
        assert second.runtime == pytest.approx(3.5)
        assert first.children == [1]
        assert second.parents == [0]
        assert (first.depth, second.depth) == (1, 2)
        assert first.required_files == ["in.txt"]
        assert first.files[1].type == FileType.OUTPUT
        assert workflow.total_runtime == pytest.approx(5.5)

    def test_unknown_parent(self):
        data = {"tasks": [{"id": 0, "runtime": 1.0, "parents": [7]}]}
        with pytest.raises(GraphConsistencyError):
            parse_workflow(data)

    def test_unknown_link(self):
        data = {"tasks": [{"id": 0, "runtime": 1.0,
                           "files": [{"name": "x", "size": 1, "link": "sideways"}]}]}
        with pytest.raises(ValueError):
            parse_workflow(data)

    def test_load_template(self):
        workflow = load_workflow_from_file(TEMPLATE)
        assert workflow.workflow_id == "montage_17"
        assert len(workflow.tasks) == 17
        depths = {task.task_type: task.depth for task in workflow.tasks}
        assert depths["mProjectPP"] == 1
        assert depths["mBackground"] == 5
        assert depths["mJPEG"] == 9

    def test_workflow_id_defaults_to_path(self, tmp_path):
        path = tmp_path / "w.json"
        path.write_text(json.dumps({"tasks": [{"id": 0, "runtime": 1.0}]}))
        assert load_workflow_from_file(path).workflow_id == str(path)
