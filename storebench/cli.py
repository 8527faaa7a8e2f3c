from pathlib import Path

import asyncio
import typer
import typing as t
from rich.markup import escape

from storebench.config import Config
from storebench.console import console
from storebench.errors import ProviderNotInstalledError
from storebench.logger import LoggerSettings, configure_logger
from storebench.providers import (
    ProviderInfo,
    available_providers,
    get_provider_class,
    provider_from_config,
)
from storebench.reporting import (
    format_file_size,
    render_benchmark,
    render_listing,
    render_providers,
    render_test_details,
    render_test_summary,
)
from storebench.testing import BenchmarkRunner, TestRunner, parse_size

app = typer.Typer(
    help="Exercise object storage providers through one contract.",
    no_args_is_help=True,
)


def _config(ctx: typer.Context) -> Config:
    return Config.load(ctx.obj.get("config_path") if ctx.obj else None)


def _fail(error: BaseException) -> t.NoReturn:
    console.print(f"[bold red]Error:[/bold red] {escape(str(error))}")
    raise typer.Exit(1) from error


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None, "--config", help="Path to a YAML or JSON configuration file."
    ),
) -> None:
    configure_logger(LoggerSettings.from_env())
    ctx.obj = {"config_path": config}


@app.command()
def test(
    ctx: typer.Context,
    provider: str = typer.Option("all", "-p", "--provider", help="Provider or 'all'."),
    test_type: str = typer.Option(
        "conformance",
        "-t",
        "--type",
        help="conformance, basic, performance or security.",
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose"),
) -> None:
    """Run a test suite against one or all configured providers."""
    if verbose:
        configure_logger(LoggerSettings.from_env(verbose=True))
    runner = TestRunner(_config(ctx))
    try:
        results = asyncio.run(
            runner.run(
                provider,
                test_type,
                verbose=verbose,
                progress=lambda name: console.status(f"Testing {name}..."),
            )
        )
    except Exception as e:
        _fail(e)
    console.print(render_test_summary(results))
    if verbose:
        for result in results:
            if result.tests:
                console.print(render_test_details(result))
    if not all(result.passed for result in results):
        raise typer.Exit(1)


async def _benchmark(
    config: Config,
    provider_name: str,
    file_sizes: list[int],
    concurrency: int,
    iterations: int,
    warmup_runs: int,
    large_object_size: int,
) -> t.Any:
    provider = await provider_from_config(provider_name, config)
    async with provider:
        return await BenchmarkRunner(provider).run(
            file_sizes,
            concurrency=concurrency,
            iterations=iterations,
            warmup_runs=warmup_runs,
            large_object_size=large_object_size,
        )


@app.command()
def benchmark(
    ctx: typer.Context,
    provider: str = typer.Option(..., "-p", "--provider"),
    file_size: str | None = typer.Option(None, "-f", "--file-size", help="e.g. 1MB"),
    concurrency: int | None = typer.Option(None, "-c", "--concurrency"),
    iterations: int | None = typer.Option(None, "-i", "--iterations"),
) -> None:
    """Measure upload and download throughput."""
    config = _config(ctx)
    settings = config.get_benchmark_config()
    try:
        sizes = (
            [parse_size(file_size)]
            if file_size
            else [s.size for s in settings.file_sizes]
        )
        report = asyncio.run(
            _benchmark(
                config,
                provider,
                sizes,
                settings.concurrency if concurrency is None else concurrency,
                iterations or settings.iterations,
                settings.warmup_runs,
                settings.large_object_size,
            )
        )
    except Exception as e:
        _fail(e)
    console.print(render_benchmark(report))


async def _with_provider(
    config: Config,
    provider_name: str,
    operation: t.Callable[[t.Any], t.Awaitable[t.Any]],
) -> t.Any:
    provider = await provider_from_config(provider_name, config)
    async with provider:
        return await operation(provider)


@app.command()
def upload(
    ctx: typer.Context,
    file: Path = typer.Option(..., "-f", "--file", exists=True, dir_okay=False),
    provider: str = typer.Option(..., "-p", "--provider"),
    key: str | None = typer.Option(None, "-k", "--key"),
) -> None:
    """Upload a local file."""
    object_key = key or file.name
    try:
        result = asyncio.run(
            _with_provider(
                _config(ctx), provider, lambda p: p.upload(object_key, file)
            )
        )
    except Exception as e:
        _fail(e)
    console.print(
        f"Uploaded [bold]{escape(result.key)}[/bold] "
        f"({format_file_size(result.size)}) to {escape(result.location)}"
    )


@app.command()
def download(
    ctx: typer.Context,
    key: str = typer.Option(..., "-k", "--key"),
    provider: str = typer.Option(..., "-p", "--provider"),
    output: Path | None = typer.Option(None, "-o", "--output"),
) -> None:
    """Download an object to a local file."""
    destination = output or Path(Path(key).name)
    try:
        result = asyncio.run(
            _with_provider(
                _config(ctx), provider, lambda p: p.download(key, destination)
            )
        )
    except Exception as e:
        _fail(e)
    console.print(
        f"Downloaded [bold]{escape(result.key)}[/bold] "
        f"({format_file_size(result.size)}) to {escape(result.destination_path)}"
    )


@app.command(name="list")
def list_objects(
    ctx: typer.Context,
    provider: str = typer.Option(..., "-p", "--provider"),
    prefix: str | None = typer.Option(None, "--prefix"),
    limit: int = typer.Option(100, "--limit"),
) -> None:
    """List objects in the provider's bucket."""
    try:
        page = asyncio.run(
            _with_provider(
                _config(ctx), provider, lambda p: p.list(prefix=prefix, limit=limit)
            )
        )
    except Exception as e:
        _fail(e)
    console.print(render_listing(page))
    if page.is_truncated:
        console.print(f"More objects after {escape(page.continuation_token or '')}")


@app.command()
def health(
    ctx: typer.Context,
    provider: str = typer.Option(..., "-p", "--provider"),
) -> None:
    """Probe a provider."""
    try:
        status = asyncio.run(
            _with_provider(_config(ctx), provider, lambda p: p.get_health())
        )
    except Exception as e:
        _fail(e)
    style = "green" if status.status == "healthy" else "red"
    console.print(f"{escape(status.provider)}: [{style}]{status.status}[/{style}]")
    if status.error:
        console.print(escape(status.error))


@app.command()
def providers() -> None:
    """Show the registered providers."""
    rows: list[ProviderInfo | tuple[str, str]] = []
    for name in available_providers():
        try:
            rows.append(get_provider_class(name).describe())
        except ProviderNotInstalledError as e:
            rows.append((name, str(e)))
    console.print(render_providers(rows))
