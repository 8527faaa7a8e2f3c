from collections.abc import Iterable
from statistics import mean

import typing as t
from rich import box
from rich.markup import escape
from rich.table import Table

from storebench.providers import ListPage, ProviderInfo
from storebench.testing.models import BenchmarkReport, TestResult

table_args: dict[str, t.Any] = {
    "show_lines": True,
    "box": box.ROUNDED,
    "border_style": "bold blue",
}

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_file_size(size: float) -> str:
    if size <= 0:
        return "0 Bytes"
    exponent = 0
    while size >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        size /= 1024
        exponent += 1
    return f"{round(size, 2):g} {_SIZE_UNITS[exponent]}"


def format_throughput(bytes_per_second: float) -> str:
    return f"{format_file_size(bytes_per_second)}/s"


def _status_style(status: str) -> str:
    return {"passed": "green", "failed": "red", "error": "bold red"}.get(status, "")


def render_test_summary(results: Iterable[TestResult]) -> Table:
    table = Table(title="[b]Test Results", **table_args)
    for column in ("Provider", "Overall", "Pass Rate", "Status"):
        table.add_column(column)
    for result in results:
        status = "Error" if result.error else result.overall_status
        table.add_row(
            result.provider_name,
            f"[{_status_style(result.overall_status)}]{status}",
            result.pass_rate or "N/A",
            "✅" if result.passed else "❌",
        )
    return table


def render_test_details(result: TestResult) -> Table:
    table = Table(title=f"[b]{result.provider_name}", **table_args)
    for column in ("Test", "Status", "Details"):
        table.add_column(column)
    for name, record in result.tests.items():
        if record.error:
            details = escape(record.error)
        elif record.metrics:
            details = escape(
                ", ".join(f"{k}: {v}" for k, v in record.metrics.items())
            )
        else:
            details = ""
        table.add_row(
            name, f"[{_status_style(record.status)}]{record.status}", details
        )
    return table


def render_benchmark(report: BenchmarkReport) -> Table:
    table = Table(title=f"[b]Benchmark: {report.provider}", **table_args)
    for column in ("Operation", "Size", "Runs", "Avg Time", "Avg Throughput"):
        table.add_column(column)
    groups: dict[tuple[str, int], list[t.Any]] = {}
    for sample in report.samples:
        groups.setdefault((sample.operation, sample.size_bytes), []).append(sample)
    for (operation, size), samples in groups.items():
        table.add_row(
            operation,
            format_file_size(size),
            str(len(samples)),
            f"{mean(s.elapsed_ms for s in samples):.2f}ms",
            format_throughput(mean(s.throughput_bytes_per_second for s in samples)),
        )
    for concurrency in report.concurrency:
        table.add_row(
            f"concurrent x{concurrency.total}",
            format_file_size(concurrency.size_bytes),
            f"{concurrency.successful}/{concurrency.total}",
            f"{concurrency.elapsed_ms:.2f}ms",
            f"{concurrency.success_ratio:.0%} succeeded",
        )
    for sample in report.large_object or ():
        table.add_row(
            f"large {sample.operation} (verified)",
            format_file_size(sample.size_bytes),
            "1",
            f"{sample.elapsed_ms:.2f}ms",
            format_throughput(sample.throughput_bytes_per_second),
        )
    return table


def render_listing(page: ListPage) -> Table:
    table = Table(title="[b]Objects", **table_args)
    for column in ("Key", "Size", "Last Modified"):
        table.add_column(column)
    for obj in page.objects:
        table.add_row(
            escape(obj.key),
            format_file_size(obj.size),
            obj.last_modified.isoformat() if obj.last_modified else "",
        )
    return table


def render_providers(infos: Iterable[ProviderInfo | tuple[str, str]]) -> Table:
    table = Table(title="[b]Providers", **table_args)
    for column in ("Name", "Title", "Capabilities"):
        table.add_column(column)
    for info in infos:
        if isinstance(info, ProviderInfo):
            table.add_row(
                info.name,
                info.title,
                ", ".join(c.value for c in info.capabilities),
            )
        else:
            name, reason = info
            table.add_row(name, "[dim]not installed", escape(reason))
    return table
