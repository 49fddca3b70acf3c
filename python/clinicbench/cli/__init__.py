"""clinicbench CLI - run, seed and maintain benchmark databases."""

from __future__ import annotations

import argparse
import asyncio
import random
from typing import Any

from rich.console import Console

from clinicbench.backends import BACKENDS, create_backend, create_store
from clinicbench.benchmark import BenchmarkRunError, BenchmarkRunner
from clinicbench.config import BenchmarkConfig
from clinicbench.datagen import PHONE_SEQ_MODULUS, ClinicDataGenerator
from clinicbench.reporter import BenchmarkReporter
from clinicbench.seed import seed_store

console = Console()


def main(args: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Command-line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success)
    """
    parser = argparse.ArgumentParser(
        prog="clinicbench",
        description="Benchmark Python data-access libraries on a clinic workload",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run
    run_parser = subparsers.add_parser("run", help="Run the benchmark sequence")
    run_parser.add_argument(
        "backends",
        nargs="*",
        metavar="BACKEND",
        help="Backends to run (default: all; asyncpg needs PostgreSQL)",
    )
    run_parser.add_argument("--json", help="Write results as JSON to this file")
    run_parser.add_argument("--csv", help="Write results as CSV to this file")
    run_parser.add_argument("--markdown", help="Write a Markdown report to this file")
    run_parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only print the final report",
    )
    run_parser.add_argument(
        "--rankings",
        action="store_true",
        help="Also print per-operation rankings",
    )

    # seed
    seed_parser = subparsers.add_parser("seed", help="Load synthetic clinic data")
    seed_parser.add_argument("backends", nargs="*", metavar="BACKEND")
    seed_parser.add_argument(
        "-n", "--records",
        type=int,
        help="Number of patients (default: BENCHMARK_TOTAL_RECORDS)",
    )
    seed_parser.add_argument(
        "-b", "--batch-size",
        type=int,
        help="Patients per transaction (default: BENCHMARK_BATCH_SIZE)",
    )

    # bulk-delete
    delete_parser = subparsers.add_parser(
        "bulk-delete", help="Delete patients whose first visit is older than N days"
    )
    delete_parser.add_argument("backend", choices=list(BACKENDS))
    delete_parser.add_argument("--older-than", type=int, required=True, metavar="DAYS")

    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 1

    unknown = [b for b in getattr(parsed, "backends", []) if b not in BACKENDS]
    if unknown:
        console.print(f"[red]Unknown backend(s): {', '.join(unknown)}[/red]")
        return 2

    config = BenchmarkConfig.from_env()

    named = [*getattr(parsed, "backends", []), getattr(parsed, "backend", None)]
    if "asyncpg" in named and not config.is_postgres:
        console.print("[red]asyncpg needs a PostgreSQL DATABASE_URL[/red]")
        return 2

    if parsed.command == "run":
        return asyncio.run(_run(parsed, config))
    if parsed.command == "seed":
        return asyncio.run(_seed(parsed, config))
    if parsed.command == "bulk-delete":
        return asyncio.run(_bulk_delete(parsed, config))

    return 0


def default_backends(config: BenchmarkConfig) -> list[str]:
    """Backends used when none are named; asyncpg only runs on PostgreSQL."""
    if config.is_postgres:
        return list(BACKENDS)
    return [name for name in BACKENDS if name != "asyncpg"]


def make_generator(config: BenchmarkConfig, index: int = 0) -> ClinicDataGenerator:
    """Generator for the runner at position ``index`` in one run.

    The last phone block starts at ``index`` so every runner sharing a
    database walks its own diagonal, even under a fixed middle offset.
    """
    mid = config.phone_mid_seq
    if mid is None:
        mid = random.randrange(PHONE_SEQ_MODULUS)
    return ClinicDataGenerator(phone_mid_seq=mid, phone_last_seq=index, seed=config.seed)


def _log_fn(quiet: bool):
    if quiet:
        return lambda msg: None
    return console.print


async def _run(args: Any, config: BenchmarkConfig) -> int:
    """Run each backend in turn, then report everything collected."""
    reporter = BenchmarkReporter(config.results_dir, console=console)
    log = _log_fn(args.quiet)
    failed: list[str] = []

    for index, name in enumerate(args.backends or default_backends(config)):
        generator = make_generator(config, index)
        runner = BenchmarkRunner(create_backend(name, config), generator, log=log)
        try:
            reporter.add_results(await runner.run_all())
        except BenchmarkRunError as e:
            console.print(f"[red]Error: {e}[/red]")
            reporter.add_results(e.results)
            failed.append(name)

    reporter.print_console_report()
    if args.rankings:
        reporter.print_rankings()

    for path, save in (
        (args.json, reporter.save_to_json),
        (args.csv, reporter.save_to_csv),
        (args.markdown, reporter.save_to_markdown),
    ):
        if path:
            save(path)

    if failed:
        console.print(f"[red]Failed backends: {', '.join(failed)}[/red]")
        return 1
    return 0


async def _seed(args: Any, config: BenchmarkConfig) -> int:
    total = args.records if args.records is not None else config.total_records
    batch_size = args.batch_size if args.batch_size is not None else config.batch_size

    names = args.backends or default_backends(config)
    if not config.is_postgres:
        # Every backend shares the one SQLite file
        names = names[:1]

    for name in names:
        store = create_store(name, config)
        console.print(f"[bold cyan]Seeding {name} ({total:,} patients)...[/bold cyan]")
        await store.connect()
        try:
            counts = await seed_store(
                store,
                ClinicDataGenerator(seed=config.seed),
                total_records=total,
                batch_size=batch_size,
                log=console.print,
            )
        finally:
            await store.close()

        for table, count in counts.items():
            console.print(f"  {table}: {count:,}")

    return 0


async def _bulk_delete(args: Any, config: BenchmarkConfig) -> int:
    backend = create_backend(args.backend, config)
    runner = BenchmarkRunner(backend, make_generator(config), log=console.print)

    await backend.initialize()
    try:
        result = await runner.bulk_delete(args.older_than)
    finally:
        await backend.cleanup()

    console.print(
        f"[green]{result.orm}: deleted {result.total_records:,} patients "
        f"in {result.duration:.2f}ms[/green]"
    )
    return 0
