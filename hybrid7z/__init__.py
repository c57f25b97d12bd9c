from .archiver import ArchiverInvoker, describe_exit_code
from .compression_module import RunSummary, compress_targets
from .config import Hybrid7zConfig, load_config, load_config_with_fallback
from .errors import (
    ArchiverExitError,
    ArchiverLaunchError,
    ConfigLoadError,
    Hybrid7zError,
    PartitionMatchError,
    PatternFileError,
)
from .filters import FilterCatalog, FilterPartitioner, PartitionOutcome
from .models import ConcurrencyClass, Phase, Target
from .scheduler import InvocationRecord, PhaseScheduler
from .stats import ResultAggregator, print_compression_summary
from .targets import parse_target_specs, read_batch_file
from .timer import PerformanceMonitor, TimingStats
from .workers import set_worker_cap
