from . import conformance, performance, security
from ._base import Metrics, SuiteState, SuiteTest

__all__ = ["Metrics", "SuiteState", "SuiteTest", "get_suite", "suite_names"]

SUITES: dict[str, list[SuiteTest]] = {
    "conformance": conformance.TESTS,
    "performance": performance.TESTS,
    "security": security.TESTS,
}

ALIASES = {"basic": "conformance"}


def suite_names() -> list[str]:
    return [*SUITES, *ALIASES]


def get_suite(name: str) -> list[SuiteTest]:
    suite = SUITES.get(ALIASES.get(name, name))
    if suite is None:
        available = ", ".join(suite_names())
        msg = f"Unknown test suite: {name}. Available suites: {available}"
        raise ValueError(msg)
    return suite
