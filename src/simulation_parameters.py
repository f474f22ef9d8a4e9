"""
Simulation Parameters

Configuration objects for clustering, scheduling overheads and failure
injection. Each is a dataclass validated on construction and buildable from
the plain dictionaries found in a simulation configuration JSON file.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

try:
    from .distribution_generator import (DistributionFamily, DistributionGenerator,
                                         PeriodicalDistributionGenerator, PeriodicalSignal)
    from .simulation_errors import ClusteringConfigurationError, FailureConfigurationError
except ImportError:
    from distribution_generator import (DistributionFamily, DistributionGenerator,
                                        PeriodicalDistributionGenerator, PeriodicalSignal)
    from simulation_errors import ClusteringConfigurationError, FailureConfigurationError


BALANCING_CODES = 'vcridh'

# A delay is either a fixed number of seconds or a generator sampled per use
DelaySource = Union[float, DistributionGenerator]


class ClusteringMethod(Enum):
    NONE = 'none'
    HORIZONTAL = 'horizontal'
    VERTICAL = 'vertical'
    BLOCK = 'block'
    BALANCED = 'balanced'


class FTCMethod(Enum):
    """Fault tolerant clustering applied to a failed job."""
    NOOP = 'noop'
    SR = 'sr'
    DC = 'dc'
    DR = 'dr'
    BLOCK = 'block'
    BINARY = 'binary'


class FTCMonitor(Enum):
    """How failure records are bucketed by the monitor."""
    NONE = 'none'
    ALL = 'all'
    VM = 'vm'
    JOB = 'job'
    VM_JOB = 'vm_job'


class FTCFailure(Enum):
    """Granularity at which failure generators are selected."""
    NONE = 'none'
    ALL = 'all'
    VM = 'vm'
    JOB = 'job'
    VM_JOB = 'vm_job'


def _parse_enum(enum_cls, value, error_cls):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        valid = ', '.join(member.value for member in enum_cls)
        raise error_cls(f"Invalid {enum_cls.__name__} '{value}', expected one of: {valid}")


def build_generator(spec: Dict[str, Any],
                    rng: Optional[np.random.Generator] = None) -> DistributionGenerator:
    """
    Build a DistributionGenerator from its dictionary description.

    Expected keys are ``distribution``, ``scale`` and ``shape``; optional
    ``a``, ``b``, ``c`` priors and ``sample_size``. A ``signal`` entry with
    ``period``, ``upper_bound`` and ``lower_bound`` makes it periodical.
    """
    try:
        family = _parse_enum(DistributionFamily, spec['distribution'], FailureConfigurationError)
        scale = float(spec['scale'])
        shape = float(spec['shape'])
    except KeyError as e:
        raise FailureConfigurationError(f"Distribution spec is missing key {e}: {spec}")

    kwargs = {
        'a': spec.get('a'),
        'b': spec.get('b'),
        'c': spec.get('c'),
        'sample_size': int(spec.get('sample_size', DistributionGenerator.SAMPLE_SIZE)),
        'max_extensions': int(spec.get('max_extensions', DistributionGenerator.MAX_EXTENSIONS)),
        'seed': spec.get('seed'),
        'rng': rng,
    }
    signal_spec = spec.get('signal')
    if signal_spec:
        signal = PeriodicalSignal(period=float(signal_spec['period']),
                                  upper_bound=float(signal_spec['upper_bound']),
                                  lower_bound=float(signal_spec['lower_bound']),
                                  portion=float(signal_spec.get('portion', 0.5)),
                                  direction=bool(signal_spec.get('direction', True)))
        return PeriodicalDistributionGenerator(family, scale, shape, signal, **kwargs)
    return DistributionGenerator(family, scale, shape, **kwargs)


@dataclass
class ClusteringParameters:
    """Clustering configuration."""
    clusters_num: int = 0
    clusters_size: int = 0
    method: ClusteringMethod = ClusteringMethod.NONE
    code: Optional[str] = None
    reduce_method: Optional[str] = None
    seed: Optional[int] = None

    def __post_init__(self):
        self.method = _parse_enum(ClusteringMethod, self.method, ClusteringConfigurationError)
        if self.clusters_num < 0 or self.clusters_size < 0:
            raise ClusteringConfigurationError(
                f"clusters_num and clusters_size must be non-negative, got "
                f"{self.clusters_num} and {self.clusters_size}")
        if self.method in (ClusteringMethod.HORIZONTAL, ClusteringMethod.BLOCK):
            if self.clusters_num == 0 and self.clusters_size == 0:
                raise ClusteringConfigurationError(
                    f"{self.method.value} clustering needs clusters_num or clusters_size")
        if self.method == ClusteringMethod.BALANCED and self.clusters_num <= 0:
            raise ClusteringConfigurationError("balanced clustering needs clusters_num > 0")
        if self.code:
            unknown = sorted(set(self.code) - set(BALANCING_CODES))
            if unknown:
                raise ClusteringConfigurationError(
                    f"Unknown balancing code(s) {unknown} in '{self.code}', "
                    f"expected characters from '{BALANCING_CODES}'")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClusteringParameters':
        return cls(clusters_num=int(data.get('clusters_num', 0)),
                   clusters_size=int(data.get('clusters_size', 0)),
                   method=data.get('method', ClusteringMethod.NONE),
                   code=data.get('code'),
                   reduce_method=data.get('reduce_method'),
                   seed=data.get('seed'))


@dataclass
class OverheadParameters:
    """
    Scheduling overheads keyed by job depth.

    Depth 0 entries act as the default for depths without their own entry.
    Delays are in simulated seconds.
    """
    wed_interval: float = 0.0
    wed_delay: Dict[int, DelaySource] = field(default_factory=dict)
    queue_delay: Dict[int, DelaySource] = field(default_factory=dict)
    post_delay: Dict[int, DelaySource] = field(default_factory=dict)
    cluster_delay: Dict[int, DelaySource] = field(default_factory=dict)
    bandwidth: float = 0.0

    @staticmethod
    def _sample(table: Dict[int, DelaySource], depth: int) -> float:
        if depth in table:
            source = table[depth]
        elif 0 in table:
            source = table[0]
        else:
            return 0.0
        if isinstance(source, DistributionGenerator):
            return source.next_sample()
        return float(source)

    def get_cluster_delay(self, depth: int) -> float:
        return self._sample(self.cluster_delay, depth)

    def get_queue_delay(self, depth: int) -> float:
        return self._sample(self.queue_delay, depth)

    def get_post_delay(self, depth: int) -> float:
        return self._sample(self.post_delay, depth)

    def get_wed_delay(self, depth: int) -> float:
        return self._sample(self.wed_delay, depth)

    def get_cumulative_delay(self, depth: int) -> float:
        """Expected queue + WED + post delay for a job at ``depth`` (exact depth only)."""
        delay = 0.0
        for table in (self.queue_delay, self.wed_delay, self.post_delay):
            if depth in table:
                source = table[depth]
                if isinstance(source, DistributionGenerator):
                    delay += source.get_mle_mean()
                else:
                    delay += float(source)
        return delay

    def get_overhead_likelihood_prior(self, depth: int) -> float:
        """Likelihood prior of the first overhead generator configured at ``depth``."""
        for table in (self.queue_delay, self.wed_delay, self.post_delay):
            source = table.get(depth)
            if isinstance(source, DistributionGenerator):
                return source.get_likelihood_prior()
        return 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any], seed: Optional[int] = None) -> 'OverheadParameters':
        """
        Build overheads from ``{"queue_delay": {"1": 10.0, "2": {...}}, ...}``.

        Numeric values are fixed delays; dictionary values are generator specs.
        """
        tables = {}
        names = ('wed_delay', 'queue_delay', 'post_delay', 'cluster_delay')
        streams = iter(np.random.SeedSequence(seed).spawn(
            sum(len(data.get(name, {})) for name in names)))
        for name in names:
            table = {}
            for depth, value in data.get(name, {}).items():
                rng = np.random.default_rng(next(streams))
                if isinstance(value, dict):
                    table[int(depth)] = build_generator(value, rng=rng)
                else:
                    table[int(depth)] = float(value)
            tables[name] = table
        return cls(wed_interval=float(data.get('wed_interval', 0.0)),
                   bandwidth=float(data.get('bandwidth', 0.0)),
                   **tables)


@dataclass
class FailureParameters:
    """
    Failure injection and fault tolerant clustering configuration.

    ``generators`` maps (vm_id, depth) to the generator of failure
    inter-arrival times for that slot.
    """
    ft_method: FTCMethod = FTCMethod.NOOP
    monitor_mode: FTCMonitor = FTCMonitor.NONE
    failure_mode: FTCFailure = FTCFailure.NONE
    generators: Dict[Tuple[int, int], DistributionGenerator] = field(default_factory=dict)
    enabled: bool = True

    def __post_init__(self):
        self.ft_method = _parse_enum(FTCMethod, self.ft_method, FailureConfigurationError)
        self.monitor_mode = _parse_enum(FTCMonitor, self.monitor_mode, FailureConfigurationError)
        self.failure_mode = _parse_enum(FTCFailure, self.failure_mode, FailureConfigurationError)

    def get_generator(self, vm_id: int, depth: int) -> DistributionGenerator:
        try:
            return self.generators[(vm_id, depth)]
        except KeyError:
            raise FailureConfigurationError(
                f"No failure generator configured for vm {vm_id}, depth {depth}")

    def generator_key(self, vm_id: int, depth: int) -> Optional[Tuple[int, int]]:
        """Generator slot for a task on ``vm_id`` at ``depth``; None disables failures."""
        if self.failure_mode == FTCFailure.VM_JOB:
            return vm_id, depth
        if self.failure_mode == FTCFailure.JOB:
            return 0, depth
        if self.failure_mode == FTCFailure.VM:
            return vm_id, 0
        if self.failure_mode == FTCFailure.ALL:
            return 0, 0
        return None

    @classmethod
    def from_table(cls, rows: List[List[Optional[DistributionGenerator]]],
                   **kwargs) -> 'FailureParameters':
        """Build parameters from a ``rows[vm_id][depth]`` table of generators."""
        generators = {}
        for vm_id, row in enumerate(rows):
            for depth, generator in enumerate(row):
                if generator is not None:
                    generators[(vm_id, depth)] = generator
        return cls(generators=generators, **kwargs)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], seed: Optional[int] = None) -> 'FailureParameters':
        """
        Build parameters from a configuration dictionary.

        ``generators`` is a list of generator specs each carrying a ``vm`` and
        a ``depth`` key. A spec with ``"vm": "*"`` is replicated for every vm
        in ``range(vm_num)``.
        """
        entries = data.get('generators', [])
        vm_num = int(data.get('vm_num', 1))
        expanded = []
        for entry in entries:
            vms = range(vm_num) if entry.get('vm', 0) == '*' else [int(entry.get('vm', 0))]
            for vm_id in vms:
                expanded.append((vm_id, int(entry.get('depth', 0)), entry))

        streams = np.random.SeedSequence(seed).spawn(len(expanded))
        generators = {}
        for (vm_id, depth, entry), stream in zip(expanded, streams):
            generators[(vm_id, depth)] = build_generator(entry, rng=np.random.default_rng(stream))

        return cls(ft_method=data.get('ft_method', FTCMethod.NOOP),
                   monitor_mode=data.get('monitor_mode', FTCMonitor.NONE),
                   failure_mode=data.get('failure_mode', FTCFailure.NONE),
                   generators=generators,
                   enabled=bool(data.get('enabled', True)))
