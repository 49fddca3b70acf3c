"""Aggregate benchmark results and export them."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.table import Table

from clinicbench.types import BenchmarkResult

DEFAULT_RESULTS_DIR = "results"

CSV_HEADERS = [
    "ORM",
    "Operation",
    "Duration (ms)",
    "Total Records",
    "Average Time (ms)",
    "Memory Used (MB)",
    "Timestamp",
]


@dataclass(frozen=True)
class OrmSummary:
    """Per-backend aggregate over all of its results."""

    total_operations: int
    average_duration: float
    total_memory_used: int
    fastest_operation: BenchmarkResult
    slowest_operation: BenchmarkResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalOperations": self.total_operations,
            "averageDuration": self.average_duration,
            "totalMemoryUsed": self.total_memory_used,
            "fastestOperation": self.fastest_operation.to_dict(),
            "slowestOperation": self.slowest_operation.to_dict(),
        }


@dataclass(frozen=True)
class Ranking:
    orm: str
    duration: float
    rank: int


@dataclass
class BenchmarkReport:
    timestamp: datetime
    total_duration: float
    """Milliseconds since the reporter was created."""
    results: list[BenchmarkResult] = field(default_factory=list)
    summary: dict[str, OrmSummary] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "totalDuration": self.total_duration,
            "results": [r.to_dict() for r in self.results],
            "summary": {orm: s.to_dict() for orm, s in self.summary.items()},
        }


def _memory_mb(result: BenchmarkResult) -> str:
    mb = result.memory_used_mb
    return "N/A" if mb is None else f"{mb:.2f}"


def _op_with_duration(result: BenchmarkResult) -> str:
    return f"{result.operation} ({result.duration:.2f}ms)"


class BenchmarkReporter:
    """Collects results from one or more backends and renders them.

    File paths given to the ``save_*`` methods are placed under
    ``results_dir`` unless they already start with it; missing parent
    directories are created.
    """

    def __init__(
        self,
        results_dir: str | Path = DEFAULT_RESULTS_DIR,
        console: Console | None = None,
    ) -> None:
        self.results_dir = Path(results_dir)
        self.console = console or Console()
        self.results: list[BenchmarkResult] = []
        self.start_time = datetime.now()

    def add_results(self, results: list[BenchmarkResult]) -> None:
        self.results.extend(results)

    # ========== Aggregation ==========

    def group_results_by_orm(self) -> dict[str, list[BenchmarkResult]]:
        """Group results per backend, keeping first-seen backend order."""
        groups: dict[str, list[BenchmarkResult]] = {}
        for r in self.results:
            groups.setdefault(r.orm, []).append(r)
        return groups

    def generate_summary(self) -> dict[str, OrmSummary]:
        summary: dict[str, OrmSummary] = {}
        for orm, results in self.group_results_by_orm().items():
            # Stable sort: among equal durations the earliest result is the
            # fastest and the latest is the slowest.
            by_duration = sorted(results, key=lambda r: r.duration)
            summary[orm] = OrmSummary(
                total_operations=len(results),
                average_duration=sum(r.duration for r in results) / len(results),
                total_memory_used=sum(
                    r.memory_usage.used for r in results if r.memory_usage is not None
                ),
                fastest_operation=by_duration[0],
                slowest_operation=by_duration[-1],
            )
        return summary

    def get_rankings(self) -> dict[str, list[Ranking]]:
        """Rank backends per operation name, fastest first."""
        operations = dict.fromkeys(r.operation for r in self.results)
        rankings: dict[str, list[Ranking]] = {}
        for op in operations:
            entries = sorted(
                (r for r in self.results if r.operation == op), key=lambda r: r.duration
            )
            rankings[op] = [
                Ranking(orm=r.orm, duration=r.duration, rank=i)
                for i, r in enumerate(entries, start=1)
            ]
        return rankings

    def build_report(self) -> BenchmarkReport:
        now = datetime.now()
        return BenchmarkReport(
            timestamp=self.start_time,
            total_duration=(now - self.start_time).total_seconds() * 1000,
            results=list(self.results),
            summary=self.generate_summary(),
        )

    # ========== Console ==========

    def print_console_report(self) -> None:
        self.console.print("\n[bold blue]ORM Performance Benchmark Results[/bold blue]")

        for orm, results in self.group_results_by_orm().items():
            table = Table(
                title=f"{orm} Results",
                box=box.ROUNDED,
                show_header=True,
                header_style="bold cyan",
            )
            table.add_column("Operation", style="bold")
            table.add_column("Duration (ms)", justify="right")
            table.add_column("Records", justify="right")
            table.add_column("Avg/Record (ms)", justify="right")
            table.add_column("Memory (MB)", justify="right")

            for r in results:
                table.add_row(
                    r.operation,
                    f"{r.duration:.2f}",
                    f"{r.total_records:,}",
                    f"{r.average_time:.4f}",
                    _memory_mb(r),
                )

            self.console.print(table)
            self.console.print()

        self.print_comparison_table()

    def print_comparison_table(self) -> None:
        table = Table(
            title="ORM Performance Comparison",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("ORM", style="bold")
        table.add_column("Operations", justify="right")
        table.add_column("Avg Duration (ms)", justify="right")
        table.add_column("Memory (MB)", justify="right")
        table.add_column("Fastest Op")
        table.add_column("Slowest Op")

        for orm, stats in self.generate_summary().items():
            table.add_row(
                orm,
                str(stats.total_operations),
                f"{stats.average_duration:.2f}",
                f"{stats.total_memory_used / 1024 / 1024:.2f}",
                f"[green]{_op_with_duration(stats.fastest_operation)}[/green]",
                f"[red]{_op_with_duration(stats.slowest_operation)}[/red]",
            )

        self.console.print(table)

    def print_rankings(self) -> None:
        for op, ranking in self.get_rankings().items():
            table = Table(title=op, box=box.ROUNDED, header_style="bold cyan")
            table.add_column("Rank", justify="right")
            table.add_column("ORM", style="bold")
            table.add_column("Duration (ms)", justify="right")
            for entry in ranking:
                style = "green" if entry.rank == 1 else ""
                table.add_row(str(entry.rank), entry.orm, f"{entry.duration:.2f}", style=style)
            self.console.print(table)

    # ========== Export ==========

    def resolve_path(self, file_path: str | Path) -> Path:
        path = Path(file_path)
        if path.parts[: len(self.results_dir.parts)] != self.results_dir.parts:
            path = self.results_dir / path
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def to_json(self) -> str:
        return json.dumps(self.build_report().to_dict(), indent=2, ensure_ascii=False)

    def to_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for r in self.results:
            writer.writerow([
                r.orm,
                r.operation,
                f"{r.duration:.2f}",
                str(r.total_records),
                f"{r.average_time:.4f}",
                _memory_mb(r),
                r.timestamp.isoformat(),
            ])
        return buffer.getvalue()

    def to_markdown(self) -> str:
        report = self.build_report()
        lines = [
            "# ORM Performance Benchmark Report",
            "",
            f"**Generated:** {datetime.now():%Y-%m-%d %H:%M:%S}  ",
            f"**Total Operations:** {len(report.results)}  ",
            f"**Total Duration:** {report.total_duration / 1000:.2f}s",
            "",
            "## Summary",
            "",
            "| ORM | Operations | Avg Duration (ms) | Memory (MB) | Best Performance | Worst Performance |",
            "|-----|------------|-------------------|-------------|------------------|-------------------|",
        ]
        for orm, stats in report.summary.items():
            lines.append(
                f"| {orm} | {stats.total_operations} | {stats.average_duration:.2f} | "
                f"{stats.total_memory_used / 1024 / 1024:.2f} | "
                f"{_op_with_duration(stats.fastest_operation)} | "
                f"{_op_with_duration(stats.slowest_operation)} |"
            )

        lines += ["", "## Detailed Results", ""]
        for orm, results in self.group_results_by_orm().items():
            lines += [
                f"### {orm}",
                "",
                "| Operation | Duration (ms) | Records | Avg/Record (ms) | Memory (MB) |",
                "|-----------|---------------|---------|-----------------|-------------|",
            ]
            for r in results:
                lines.append(
                    f"| {r.operation} | {r.duration:.2f} | {r.total_records:,} | "
                    f"{r.average_time:.4f} | {_memory_mb(r)} |"
                )
            lines.append("")

        return "\n".join(lines)

    def _write(self, file_path: str | Path, content: str) -> Path:
        path = self.resolve_path(file_path)
        path.write_text(content, encoding="utf-8")
        self.console.print(f"[green]Results saved to: {path}[/green]")
        return path

    def save_to_json(self, file_path: str | Path) -> Path:
        return self._write(file_path, self.to_json())

    def save_to_csv(self, file_path: str | Path) -> Path:
        return self._write(file_path, self.to_csv())

    def save_to_markdown(self, file_path: str | Path) -> Path:
        return self._write(file_path, self.to_markdown())


def load_results(path: str | Path) -> list[BenchmarkResult]:
    """Read the ``results`` array back from a JSON report."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return [BenchmarkResult.from_dict(r) for r in data["results"]]
