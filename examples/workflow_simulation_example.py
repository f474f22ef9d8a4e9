#!/usr/bin/env python3
"""
Workflow Simulation Example

This example demonstrates how to use the WorkflowSimulator and WorkflowRunner
to simulate the montage template under each clustering method.
"""

import sys
import logging
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from simulation_parameters import ClusteringParameters
from workflow_loader import load_workflow_from_file
from workflow_metrics import WorkflowMetricsCalculator
from workflow_runner import WorkflowRunner
from workflow_simulator import ResourceConfig, SimulationConfig, WorkflowSimulator

CLUSTERING_SETUPS = {
    'none': {'method': 'none'},
    'horizontal': {'method': 'horizontal', 'clusters_num': 2},
    'vertical': {'method': 'vertical', 'reduce_method': 'montage'},
    'block': {'method': 'block', 'clusters_size': 2},
    'balanced': {'method': 'balanced', 'clusters_num': 2, 'code': 'hr'},
}


def main():
    """Run workflow simulation example."""
    print("="*80)
    print("WORKFLOW SIMULATION EXAMPLE")
    print("="*80)

    # Configure logging (optional - set to WARNING to reduce output)
    logging.basicConfig(level=logging.WARNING)

    # Load workflow data
    workflow_file = Path(__file__).parent.parent / 'templates' / 'montage_workflow.json'
    print(f"Loading workflow from: {workflow_file}")

    try:
        workflow = load_workflow_from_file(workflow_file)
        print(f"Workflow {workflow.workflow_id}: {len(workflow.tasks)} tasks")
    except FileNotFoundError:
        print(f"❌ Error: Workflow file not found: {workflow_file}")
        return 1

    # Configure resources
    resource_config = ResourceConfig(vm_num=4, seed=42)

    print(f"Resource Configuration:")
    print(f"  Virtual Machines: {resource_config.vm_num}")
    print(f"  MIPS: {resource_config.mips:.0f}")
    print()

    # Simulate every clustering method on the same workflow
    results = []
    for name, setup in CLUSTERING_SETUPS.items():
        config = SimulationConfig(resources=resource_config,
                                  clustering=ClusteringParameters.from_dict(setup))
        print(f"🚀 Simulating with {name} clustering...")
        results.append(WorkflowSimulator(config).simulate_workflow(workflow_file))

    print("\n📊 CLUSTERING COMPARISON (fastest first):")
    for row in WorkflowMetricsCalculator().compare_results(results):
        print(f"  {row['clustering_method']:>10}: {row['initial_jobs']:>3} jobs, "
              f"makespan {row['makespan']:.2f}s")

    # Full pipeline for the horizontal setup
    config = SimulationConfig(resources=resource_config,
                              clustering=ClusteringParameters.from_dict(CLUSTERING_SETUPS['horizontal']))
    runner = WorkflowRunner(config)
    results = runner.run_workflow(workflow_file)

    if not results['success']:
        print(f"❌ Simulation failed: {results['error_message']}")
        return 1

    # Print results
    runner.print_complete_summary(results)

    # Save results to file
    output_file = Path(__file__).parent.parent / 'results' / 'simulation_example_results.json'
    output_file.parent.mkdir(exist_ok=True)

    print(f"\n💾 Saving results to: {output_file}")
    runner.write_complete_results(results, output_file)

    print("\n✅ Workflow simulation completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
