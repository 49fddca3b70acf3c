"""clinicbench - async ORM benchmarks on a dermatology clinic workload."""

from __future__ import annotations

from clinicbench.backends import BACKENDS, create_backend
from clinicbench.benchmark import (
    DEFAULT_SEQUENCE,
    BenchmarkBackend,
    BenchmarkRunError,
    BenchmarkRunner,
)
from clinicbench.config import BenchmarkConfig
from clinicbench.datagen import ClinicDataGenerator
from clinicbench.measure import Measurement, measure_performance
from clinicbench.reporter import BenchmarkReporter, load_results
from clinicbench.seed import seed_store, table_counts
from clinicbench.types import BenchmarkResult, MemoryUsage

__version__ = "0.1.0"

__all__ = [
    # Running
    "BenchmarkRunner",
    "BenchmarkRunError",
    "BenchmarkBackend",
    "DEFAULT_SEQUENCE",
    "BACKENDS",
    "create_backend",
    "BenchmarkConfig",
    # Data
    "ClinicDataGenerator",
    "seed_store",
    "table_counts",
    # Measurement
    "measure_performance",
    "Measurement",
    "BenchmarkResult",
    "MemoryUsage",
    # Reporting
    "BenchmarkReporter",
    "load_results",
]
