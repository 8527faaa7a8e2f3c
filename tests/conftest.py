"""Configuration for pytest testing framework."""

from pathlib import Path

import pytest
from _pytest.python import Function

from storebench.providers.local import Storage as LocalStorage
from storebench.providers.memory import Storage as MemoryStorage

ENV_VARS = (
    "AWS_REGION",
    "AWS_BUCKET",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_ENDPOINT",
    "GCP_PROJECT_ID",
    "GCP_BUCKET",
    "GCP_KEY_FILE",
    "GCP_CREDENTIALS",
    "AZURE_ACCOUNT_NAME",
    "AZURE_ACCOUNT_KEY",
    "AZURE_CONTAINER",
    "AZURE_CONNECTION_STRING",
    "MINIO_ENDPOINT",
    "MINIO_PORT",
    "MINIO_USE_SSL",
    "MINIO_ACCESS_KEY",
    "MINIO_SECRET_KEY",
    "MINIO_BUCKET",
    "LOCAL_STORAGE_PATH",
    "TEST_TIMEOUT",
    "TEST_RUN_TIMEOUT",
    "RETRY_ATTEMPTS",
    "CONCURRENT_CONNECTIONS",
    "TEST_DATA_DIR",
    "CLEANUP_AFTER_TESTS",
    "BENCHMARK_ITERATIONS",
    "BENCHMARK_WARMUP",
    "LOG_LEVEL",
)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line("markers", "unit: fast tests without external services")
    config.addinivalue_line(
        "markers", "integration: mark test as exercising several components"
    )
    config.addinivalue_line(
        "markers", "external: mark test as requiring a real cloud backend"
    )


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add command-line options."""
    parser.addoption(
        "--run-external",
        action="store_true",
        default=False,
        help="Run tests that require a real cloud backend",
    )


def pytest_runtest_setup(item: Function) -> None:
    """Setup for each test."""
    if item.get_closest_marker("external"):
        if not item.config.getoption("--run-external", default=False):
            pytest.skip("Skipping external test. Use --run-external to run.")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Run every test from an empty directory with no storebench variables set."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "store"


@pytest.fixture
async def local_storage(store_path: Path):
    storage = LocalStorage({"base_path": str(store_path)})
    await storage.initialize()
    yield storage
    await storage.cleanup()


@pytest.fixture
async def memory_storage():
    storage = MemoryStorage({})
    await storage.initialize()
    yield storage
    await storage.cleanup()
