"""
Failure Monitor

Accumulates failure observations and turns the observed failure rate into an
optimal clustering factor for reclustered jobs.
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional

try:
    from .simulation_parameters import FTCMonitor
except ImportError:
    from simulation_parameters import FTCMonitor


@dataclass(frozen=True)
class FailureRecord:
    """One failure observation."""
    length: float  # task runtime in seconds
    failed_tasks_num: int
    depth: int
    all_task_num: int
    vm_id: int
    job_id: int
    workflow_id: int
    delay_length: float = 0.0


class FailureMonitor:
    """
    Failure statistics bucketed according to the monitor mode.

    - ALL: every record in a single bucket
    - VM: one bucket per vm id
    - JOB: one bucket per depth
    - VM_JOB: one bucket per (vm id, depth)
    - NONE: records are not kept

    Posting is serialized with a lock so concurrent executors can share one
    monitor. Call ``reset`` between simulation runs.
    """

    def __init__(self, mode: FTCMonitor = FTCMonitor.NONE):
        self.mode = mode
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._buckets: Dict[Hashable, List[FailureRecord]] = {}
        self.records: List[FailureRecord] = []

    def init(self) -> None:
        with self._lock:
            self._buckets = {}
            self.records = []

    def reset(self) -> None:
        self.init()
        self.logger.debug("Failure monitor reset")

    def bucket_key(self, record: FailureRecord) -> Optional[Hashable]:
        """Bucket a record falls in under the current mode; None when not monitored."""
        if self.mode == FTCMonitor.ALL:
            return 'all'
        if self.mode == FTCMonitor.VM:
            return record.vm_id
        if self.mode == FTCMonitor.JOB:
            return record.depth
        if self.mode == FTCMonitor.VM_JOB:
            return record.vm_id, record.depth
        return None

    def post_failure_record(self, record: FailureRecord) -> None:
        if record.workflow_id < 0 or record.job_id < 0 or record.vm_id < 0:
            raise ValueError(f"Failure record has a negative id: {record}")

        key = self.bucket_key(record)
        if key is None:
            return
        with self._lock:
            self._buckets.setdefault(key, []).append(record)
            self.records.append(record)

    def analyze(self, key: Optional[Hashable] = 'all') -> float:
        """
        Observed failure rate of a bucket.

        Args:
            key: Bucket key as returned by ``bucket_key``

        Returns:
            Failed tasks over observed tasks, 0.0 when nothing failed
        """
        with self._lock:
            bucket = list(self._buckets.get(key, []))
        failed = sum(record.failed_tasks_num for record in bucket)
        if failed == 0:
            return 0.0
        return failed / sum(record.all_task_num for record in bucket)

    @staticmethod
    def get_k(d: float, a: float, t: float) -> float:
        """Unclamped optimal cluster size for delay d, failure rate a and runtime t."""
        return (-d + math.sqrt(d * d - 4 * d / math.log(1 - a))) / (2 * t)

    def get_clustering_factor(self, record: FailureRecord) -> int:
        """
        Optimal number of tasks per job given the observed failure rate.

        Larger jobs amortize the per-job delay but are more likely to contain a
        failure. Without observed failures every task goes in one job.
        """
        a = self.analyze(self.bucket_key(record))
        if a <= 0.0 or record.length <= 0.0:
            return record.all_task_num
        if a >= 1.0:
            return 1
        k = self.get_k(record.delay_length, a, record.length)
        return int(max(k, 1))
