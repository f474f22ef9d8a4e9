#!/usr/bin/env python3
"""
Workflow Simulation Visualization Examples

This script builds interactive plotly views of simulation results: a vm
timeline of every executed job, a retry analysis and a comparison dashboard
across clustering and fault tolerant clustering methods.
"""

import json
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from plotly.subplots import make_subplots
from pathlib import Path
import argparse


class WorkflowVisualizer:
    """Class for creating visualizations from workflow simulation results."""

    def __init__(self, results_dir: str = "results"):
        self.results_dir = Path(results_dir)
        self.runs, self.jobs = self._load_all_results()

    def _load_all_results(self):
        """Load all JSON results into pandas DataFrames of runs and jobs."""
        all_runs = []
        all_jobs = []

        for json_file in sorted(self.results_dir.rglob("*.json")):
            try:
                with open(json_file, 'r') as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                print(f"Error loading {json_file}: {e}")
                continue

            simulation = data.get('simulation_result', data)
            if not simulation.get('success') or 'jobs' not in simulation:
                continue

            run_name = f"{json_file.stem} ({simulation['clustering_method']}/{simulation['ft_method']})"
            all_runs.append({
                'run': run_name,
                'workflow_id': simulation['workflow_id'],
                'clustering_method': simulation['clustering_method'],
                'ft_method': simulation['ft_method'],
                'initial_jobs': simulation['initial_jobs'],
                'total_jobs': simulation['total_jobs'],
                'failed_jobs': simulation['failed_jobs'],
                'makespan': simulation['makespan'],
                'total_wall_time': simulation['total_wall_time']
            })
            for job in simulation['jobs']:
                all_jobs.append({
                    'run': run_name,
                    'job_id': job['job_id'],
                    'depth': job['depth'],
                    'vm_id': job['vm_id'],
                    'start_time': job['start_time'],
                    'end_time': job['end_time'],
                    'runtime': job['runtime'],
                    'status': job['status'],
                    'tasks': len(job['task_ids']),
                    'retry': job.get('retry', False)
                })

        return pd.DataFrame(all_runs), pd.DataFrame(all_jobs)

    def create_vm_timeline(self, run_name: str = None):
        """Create a Gantt style timeline of jobs per vm for one run."""
        run_name = run_name or self.runs.sort_values('makespan')['run'].iloc[0]
        jobs = self.jobs[self.jobs['run'] == run_name]

        fig = go.Figure()
        for status, color in (('success', 'seagreen'), ('failed', 'firebrick')):
            selected = jobs[jobs['status'] == status]
            fig.add_trace(go.Bar(
                x=selected['runtime'],
                base=selected['start_time'],
                y=[f"vm {vm_id}" for vm_id in selected['vm_id']],
                orientation='h',
                marker_color=color,
                name=status,
                text=[f"job {job_id}" for job_id in selected['job_id']],
                hovertext=[f"job {row.job_id}, depth {row.depth}, {row.tasks} tasks"
                           for row in selected.itertuples()]
            ))
        fig.update_layout(
            barmode='overlay',
            title=f"Job Timeline per VM: {run_name}",
            xaxis_title="Time (s)",
            yaxis_title="Virtual Machine"
        )
        return fig

    def create_retry_analysis(self):
        """Create retry and failure analysis visualization."""
        jobs = self.jobs.copy()

        fig = make_subplots(
            rows=1, cols=2,
            subplot_titles=('Failed Jobs per Depth', 'Retry Jobs per Run'),
            specs=[[{"type": "bar"}, {"type": "bar"}]]
        )

        failed = jobs[jobs['status'] == 'failed'].groupby('depth').size()
        fig.add_trace(
            go.Bar(x=failed.index, y=failed.values, name="Failed Jobs"),
            row=1, col=1
        )

        retries = jobs[jobs['retry']].groupby('run').size().reindex(self.runs['run'], fill_value=0)
        fig.add_trace(
            go.Bar(x=retries.index, y=retries.values, name="Retry Jobs"),
            row=1, col=2
        )

        fig.update_layout(height=500, showlegend=True, title_text="Failure and Retry Analysis")
        return fig

    def create_performance_comparison(self):
        """Create performance comparison scatter across runs."""
        fig = px.scatter(
            self.runs,
            x='initial_jobs',
            y='makespan',
            color='clustering_method',
            symbol='ft_method',
            size='total_wall_time',
            hover_data=['run', 'total_jobs', 'failed_jobs'],
            title="Makespan vs Number of Clustered Jobs",
            labels={
                'initial_jobs': 'Clustered Jobs',
                'makespan': 'Makespan (s)',
                'clustering_method': 'Clustering'
            }
        )
        return fig


def main():
    """Main function to run visualizations."""
    parser = argparse.ArgumentParser(
        description='Create interactive visualizations for workflow simulation results'
    )
    parser.add_argument(
        '--data-path',
        type=str,
        default='results',
        help='Directory containing simulation result JSON files (default: results)'
    )
    parser.add_argument(
        '--output-dir',
        type=str,
        default='.',
        help='Directory to save generated HTML visualizations (default: current directory)'
    )

    args = parser.parse_args()

    # Validate data path
    data_path = Path(args.data_path)
    if not data_path.is_dir():
        print(f"Error: Data path '{data_path}' is not a directory.")
        return 1

    visualizer = WorkflowVisualizer(results_dir=str(data_path))
    if visualizer.runs.empty:
        print(f"No successful simulation results found in '{data_path}'.")
        return 1

    print(f"Successfully loaded {len(visualizer.runs)} simulation results.")
    print("Creating visualizations...")

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    visualizations = {
        'vm_timeline': visualizer.create_vm_timeline(),
        'retry': visualizer.create_retry_analysis(),
        'performance_comparison': visualizer.create_performance_comparison()
    }

    # Save as HTML files
    for name, fig in visualizations.items():
        output_file = output_dir / f"{name}_analysis.html"
        fig.write_html(str(output_file))
        print(f"Saved {output_file}")

    print("\nAll visualizations created successfully!")
    print(f"Visualizations saved to: {output_dir.absolute()}")


if __name__ == "__main__":
    exit(main() or 0)
