from .catalog import FilterCatalog, parse_pattern_lines
from .partitioner import (
    AvailableFileSet,
    FilterPartitioner,
    PartitionOutcome,
    PartitionTable,
    iter_files,
    normalize_path,
)
