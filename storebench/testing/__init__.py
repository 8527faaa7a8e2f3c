from .benchmark import BenchmarkRunner, parse_size
from .models import (
    BenchmarkReport,
    BenchmarkSample,
    ConcurrencyReport,
    TestRecord,
    TestResult,
)
from .runner import TestRunner
from .suites import SuiteState, SuiteTest, get_suite, suite_names

__all__ = [
    "BenchmarkReport",
    "BenchmarkRunner",
    "BenchmarkSample",
    "ConcurrencyReport",
    "SuiteState",
    "SuiteTest",
    "TestRecord",
    "TestResult",
    "TestRunner",
    "get_suite",
    "parse_size",
    "suite_names",
]
