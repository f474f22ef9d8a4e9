import argparse
import json
import os
from typing import List, Dict, Any
from pprint import pformat
import matplotlib
# Set non-interactive backend to avoid display issues
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns
from pathlib import Path


def run_label(simulation_data: Dict[str, Any]) -> str:
    """Short label identifying a simulation run in plots."""
    return (f"{simulation_data.get('clustering_method', '?')}/"
            f"{simulation_data.get('ft_method', '?')}")


def plot_clustering_comparison(runs: pd.DataFrame, jobs: pd.DataFrame,
                               balancing: pd.DataFrame, output_dir: str = "plots"):
    """Create a comparison of clustering and fault tolerant clustering runs.

    Makespan, job runtimes per depth, failures per depth and, when balanced
    clustering ran, the balancing metrics per stage are drawn in one figure.
    """
    print(f"Creating clustering comparison for {len(runs)} simulation runs")
    sns.set_theme(style="whitegrid")

    fig, axes = plt.subplots(2, 2, figsize=(16, 12))
    ax1, ax2, ax3, ax4 = axes.flatten()

    # 1. Makespan per run
    ordered = runs.sort_values('makespan')
    sns.barplot(data=ordered, x='label', y='makespan', ax=ax1, color='steelblue')
    ax1.set_xlabel("Clustering / Fault Tolerant Method")
    ax1.set_ylabel("Makespan (s)")
    ax1.set_title("Workflow Makespan")
    ax1.tick_params(axis='x', rotation=45)

    # 2. Job runtime distribution per depth
    sns.boxplot(data=jobs, x='depth', y='runtime', hue='label', ax=ax2)
    ax2.set_xlabel("Depth")
    ax2.set_ylabel("Job Runtime (s)")
    ax2.set_title("Job Runtime per Depth")

    # 3. Failed jobs per depth
    failures = (jobs[jobs['status'] == 'failed']
                .groupby(['label', 'depth']).size().reset_index(name='failed_jobs'))
    if failures.empty:
        ax3.text(0.5, 0.5, "No failed jobs", ha='center', va='center')
    else:
        sns.barplot(data=failures, x='depth', y='failed_jobs', hue='label', ax=ax3)
    ax3.set_xlabel("Depth")
    ax3.set_ylabel("Failed Jobs")
    ax3.set_title("Job Failures per Depth")

    # 4. Horizontal runtime variance before and after each balancing method
    if balancing.empty:
        ax4.text(0.5, 0.5, "No balanced clustering runs", ha='center', va='center')
    else:
        sns.pointplot(data=balancing, x='stage', y='HRV', hue='depth', ax=ax4)
    ax4.set_xlabel("Balancing Stage")
    ax4.set_ylabel("HRV")
    ax4.set_title("Horizontal Runtime Variance")

    plt.tight_layout()
    plt.savefig(os.path.join(output_dir, "clustering_comparison.png"))
    plt.close()

    # Create a detailed comparison table
    with open(os.path.join(output_dir, "clustering_comparison.txt"), "w") as f:
        f.write("Clustering Comparison\n")
        f.write("=====================\n\n")

        for _, run in ordered.iterrows():
            f.write(f"{run['label']} ({run['file_name']}):\n")
            f.write(f"  Workflow: {run['workflow_id']}\n")
            f.write(f"  Initial Jobs: {run['initial_jobs']}\n")
            f.write(f"  Executed Jobs: {run['total_jobs']}\n")
            f.write(f"  Failed Jobs: {run['failed_jobs']}\n")
            f.write(f"  Makespan: {run['makespan']:.2f} seconds\n")
            f.write(f"  Total Wall Time: {run['total_wall_time']:.2f} seconds\n")
            f.write("\n")


def find_simulation_files(directory_path: str) -> List[str]:
    """Find all JSON simulation files in a directory."""
    directory = Path(directory_path)
    if not directory.exists():
        raise FileNotFoundError(f"Directory '{directory_path}' not found")

    if not directory.is_dir():
        raise NotADirectoryError(f"'{directory_path}' is not a directory")

    json_files = list(directory.glob("**/*.json"))

    if not json_files:
        raise FileNotFoundError(f"No JSON files found in directory '{directory_path}'")

    return sorted([str(f) for f in json_files])


def extract_job_rows(simulation_data: Dict[str, Any], file_name: str) -> List[Dict[str, Any]]:
    """Flatten the executed jobs of one simulation."""
    label = run_label(simulation_data)
    return [{
        'file_name': file_name,
        'label': label,
        'job_id': job['job_id'],
        'depth': job['depth'],
        'vm_id': job['vm_id'],
        'runtime': job['runtime'],
        'status': job['status'],
        'tasks': len(job['task_ids']),
        'failed_tasks': job.get('failed_tasks', 0),
        'retry': job.get('retry', False)
    } for job in simulation_data.get('jobs', [])]


def process_simulation_directory(directory_path: str) -> tuple:
    """Load simulation results written by the simulator or the runner.

    Returns:
        tuple: (runs, jobs, balancing) data frames
    """
    simulation_files = find_simulation_files(directory_path)
    runs, jobs, balancing = [], [], []

    print(f"Found {len(simulation_files)} JSON files in directory")

    for file_path in simulation_files:
        file_name = Path(file_path).name
        print(f"  Loading and processing: {file_name}")
        with open(file_path, 'r') as f:
            data = json.load(f)

        # runner output nests the simulation result
        simulation_data = data.get('simulation_result', data)
        if 'jobs' not in simulation_data:
            print(f"  Warning: {file_name} is not a simulation result, skipping")
            continue
        if not simulation_data.get('success', False):
            print(f"  Warning: {file_name} holds a failed simulation, skipping")
            continue

        label = run_label(simulation_data)
        runs.append({
            'file_name': file_name,
            'label': label,
            'workflow_id': simulation_data['workflow_id'],
            'initial_jobs': simulation_data['initial_jobs'],
            'total_jobs': simulation_data['total_jobs'],
            'failed_jobs': simulation_data['failed_jobs'],
            'makespan': simulation_data['makespan'],
            'total_wall_time': simulation_data['total_wall_time']
        })
        jobs.extend(extract_job_rows(simulation_data, file_name))
        for row in simulation_data.get('balancing_metrics', []):
            balancing.append({'file_name': file_name, 'label': label, **row})

    if not runs:
        raise ValueError(f"No valid simulation data processed from directory '{directory_path}'")

    print(f"Successfully processed {len(runs)} simulation files")
    print(f"Sample run: {pformat(runs[0])}")

    return pd.DataFrame(runs), pd.DataFrame(jobs), pd.DataFrame(balancing)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description='Create clustering comparison plots using pandas/matplotlib/seaborn'
    )
    parser.add_argument('simulation_directory', type=str,
                        help='Path to directory containing simulation result JSON files')
    parser.add_argument('--output-dir', type=str, default='output',
                        help='Base output directory (default: output)')
    args = parser.parse_args()

    Path(args.output_dir).mkdir(parents=True, exist_ok=True)

    print(f"Processing simulation data from directory: {args.simulation_directory}")
    try:
        runs, jobs, balancing = process_simulation_directory(args.simulation_directory)
    except (FileNotFoundError, NotADirectoryError, ValueError) as e:
        print(f"Error processing simulation data: {e}")
        exit(1)

    plot_clustering_comparison(runs, jobs, balancing, output_dir=args.output_dir)
    print(f"Clustering comparison saved to {args.output_dir}/clustering_comparison.png")
