"""
Workflow Runner

Runs a clustered workflow through the failure-injecting simulator and derives
workflow and job metrics from the executed jobs in one call.
"""

import json
import logging
import argparse
from dataclasses import asdict
from typing import Dict, Any, Optional, Union
from pathlib import Path

try:
    from .workflow_simulator import (WorkflowSimulator, SimulationConfig, _get_output_path,
                                     load_simulation_config)
    from .workflow_metrics import WorkflowMetricsCalculator
except ImportError:
    from workflow_simulator import (WorkflowSimulator, SimulationConfig, _get_output_path,
                                    load_simulation_config)
    from workflow_metrics import WorkflowMetricsCalculator


class WorkflowRunner:
    """
    Simulate a workflow, then measure it.

    Metrics are only computed for runs that completed; a failed run is
    reported with its error message.
    """

    def __init__(self, config: Optional[SimulationConfig] = None):
        """
        Initialize the workflow runner.

        Args:
            config: Simulation configuration
        """
        self.config = config or SimulationConfig()
        self.simulator = WorkflowSimulator(self.config)
        self.logger = logging.getLogger(__name__)

    def run_workflow(self, workflow_filepath: Union[str, Path]) -> Dict[str, Any]:
        """
        Cluster, execute and measure one workflow.

        Args:
            workflow_filepath: Path to JSON file containing workflow definition

        Returns:
            Dictionary with the simulation result, metrics and job statistics
        """
        self.logger.info("Starting complete workflow execution and analysis")

        # Step 1: Run simulation
        simulation_result = self.simulator.simulate_workflow(workflow_filepath)

        if not simulation_result.success:
            self.logger.error(f"Workflow simulation failed: {simulation_result.error_message}")
            return {
                'simulation_result': simulation_result,
                'metrics': None,
                'success': False,
                'error_message': simulation_result.error_message
            }

        # Step 2: Calculate metrics directly from simulation result
        metrics_calculator = WorkflowMetricsCalculator()
        metrics = metrics_calculator.calculate_metrics(simulation_result)
        job_stats = metrics_calculator.calculate_job_statistics(simulation_result)

        self.logger.info("Workflow execution and analysis completed successfully")

        return {
            'simulation_result': simulation_result,
            'metrics': metrics,
            'job_statistics': job_stats,
            'success': True,
            'error_message': None
        }

    def print_complete_summary(self, results: Dict[str, Any]) -> None:
        """Print a complete summary of simulation and metrics."""
        if not results['success']:
            print(f"\n❌ Workflow execution failed: {results['error_message']}")
            return

        simulation = results['simulation_result']
        metrics = results['metrics']
        job_stats = results['job_statistics']

        print("\n" + "="*80)
        print("COMPLETE WORKFLOW EXECUTION SUMMARY")
        print("="*80)

        print(f"\n📊 SIMULATION RESULTS:")
        print(f"  Workflow ID: {simulation.workflow_id}")
        print(f"  Clustering: {simulation.clustering_method}")
        print(f"  Fault Tolerant Clustering: {simulation.ft_method}")
        print(f"  Total Tasks: {simulation.total_tasks}")
        print(f"  Initial Jobs: {simulation.initial_jobs}")
        print(f"  Executed Jobs: {simulation.total_jobs}")
        print(f"  Makespan: {simulation.makespan:.2f}s ({simulation.makespan/3600:.2f}h)")
        print(f"  Total Wall Time: {simulation.total_wall_time:.2f}s ({simulation.total_wall_time/3600:.2f}h)")

        print(f"\n📈 FAILURE METRICS:")
        print(f"  Failed Jobs: {metrics.failed_jobs}")
        print(f"  Retry Jobs: {metrics.retry_jobs}")
        print(f"  Task Executions: {metrics.task_executions} ({metrics.failed_task_executions} failed)")
        print(f"  Task Failure Rate: {metrics.task_failure_rate:.4f}")
        print(f"  Retry Overhead: {metrics.retry_overhead:.4f}")
        print(f"  VM Utilization: {metrics.vm_utilization:.2f}")

        print(f"\n🏗️  DEPTH BREAKDOWN:")
        for depth in metrics.depth_metrics:
            print(f"  Depth {depth.depth}: {depth.job_count} jobs ({depth.failed_jobs} failed), "
                  f"{depth.task_count} task runs, avg runtime {depth.average_runtime:.2f}s")

        print(f"\n⚡ JOB STATISTICS:")
        print(f"  Average Job Runtime: {job_stats['average_runtime']:.2f}s")
        print(f"  Min Job Runtime: {job_stats['min_runtime']:.2f}s")
        print(f"  Max Job Runtime: {job_stats['max_runtime']:.2f}s")
        print(f"  Average Tasks per Job: {job_stats['average_tasks_per_job']:.1f}")
        print(f"  Total Input: {metrics.total_input_mb:.2f} MB")
        print(f"  Total Output: {metrics.total_output_mb:.2f} MB")

    def write_complete_results(self, results: Dict[str, Any],
                               filepath: Union[str, Path]) -> None:
        """Write complete results (simulation + metrics) to a JSON file."""
        simulation = results['simulation_result']
        output_data = {
            'metrics': asdict(results['metrics']) if results['metrics'] else None,
            'job_statistics': results.get('job_statistics'),
            'simulation_result': asdict(simulation)
        }

        with open(filepath, 'w') as f:
            json.dump(output_data, f, indent=2)

        self.logger.info(f"Complete results written to {filepath}")


def parse_arguments():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Workflow Runner - Complete workflow execution and analysis pipeline'
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
        default='templates/simulation_config.json',
        help='Path to simulation configuration JSON file (default: templates/simulation_config.json)'
    )
    parser.add_argument(
        '--output',
        type=str,
        default=None,
        help='Output JSON path (default: mirror the workflow path under results/)'
    )
    return parser.parse_args()


def main():
    """Main function with command line argument support."""
    args = parse_arguments()

    config = load_simulation_config(args.config)

    # Create runner and execute workflow
    runner = WorkflowRunner(config)
    results = runner.run_workflow(args.workflow)

    # Print complete summary
    runner.print_complete_summary(results)

    output_path = args.output or _get_output_path(args.workflow)
    runner.write_complete_results(results, output_path)


if __name__ == "__main__":
    main()
