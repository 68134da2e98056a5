"""
Mind Vault CLI Terminal

A lightweight REPL for watching the performance monitor without the API.
Slash commands inspect snapshots, metrics and strategies; Rich library
for formatted output.

Run with:
    python -m interfaces.cli.terminal               # interactive
    python -m interfaces.cli.terminal --seconds 10  # watch for 10s, print, exit
"""

import argparse
import asyncio
import logging
from functools import partial

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from mindvault.collaborators import InMemoryNoteStore, StaticSessionProvider
from mindvault.config import get_config
from mindvault.file_system import FileSystemManager
from mindvault.performance import PerformanceConfig, create_performance_monitor
from mindvault.windows import WindowManager


# ---------------------------------------------------------------------------
# Logging: quiet for terminal use
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("mindvault.cli")


def _fmt_bytes(n: float) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if abs(n) < 1024:
            return f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} TB"


# ---------------------------------------------------------------------------
# VaultTerminal
# ---------------------------------------------------------------------------

class VaultTerminal:
    """Interactive REPL over a PerformanceMonitor and the window registry."""

    def __init__(self, console: Console | None = None):
        self.config = get_config()
        self.console = console or Console()

        self.monitor = create_performance_monitor(
            PerformanceConfig.from_settings(self.config),
            session_provider=StaticSessionProvider("cli"),
        )
        self.file_system = FileSystemManager(
            window_manager=WindowManager(
                history_limit=self.config.windows.history_limit,
                multi_window_enabled=self.config.windows.multi_window_enabled,
                window_sync=self.config.windows.window_sync,
            ),
            note_store=InMemoryNoteStore(),
            supported_formats=self.config.file_system.supported_formats,
        )

    # -----------------------------------------------------------------------
    # Entry points
    # -----------------------------------------------------------------------

    async def run(self):
        """Start monitoring, run the REPL, then shut down cleanly."""
        self.monitor.start_monitoring()
        self._print_banner()
        try:
            await self._repl_loop()
        except (SystemExit, KeyboardInterrupt):
            pass
        finally:
            self.monitor.stop_monitoring()
            self.console.print("[dim]Goodbye.[/dim]")

    async def watch(self, seconds: float):
        """Monitor for ``seconds``, then print snapshots and stats."""
        self.monitor.start_monitoring()
        try:
            await asyncio.sleep(seconds)
        finally:
            self.monitor.stop_monitoring()
        self._print_snapshots()
        self._print_stats()
        self._print_strategies()

    async def _repl_loop(self):
        """Async input loop; reads from stdin via executor to stay non-blocking."""
        loop = asyncio.get_running_loop()

        while True:
            try:
                line = await loop.run_in_executor(None, partial(input, "vault> "))
            except KeyboardInterrupt:
                self.console.print("\n[dim]Use /quit to exit.[/dim]")
                continue
            except EOFError:
                break

            line = line.strip()
            if not line:
                continue
            if not line.startswith("/"):
                self.console.print("[dim]Commands start with / (try /help)[/dim]")
                continue
            if not self._dispatch_command(line):
                break

    # -----------------------------------------------------------------------
    # Slash command dispatch
    # -----------------------------------------------------------------------

    def _dispatch_command(self, line: str) -> bool:
        """Route a slash command. Returns False when the REPL should exit."""
        parts = line.split(maxsplit=1)
        cmd = parts[0].lower()
        arg = parts[1] if len(parts) > 1 else ""

        if cmd in ("/quit", "/exit"):
            return False

        handlers = {
            "/status": self._cmd_status,
            "/snapshot": lambda _a: self._print_snapshots(),
            "/stats": lambda _a: self._print_stats(),
            "/metrics": self._cmd_metrics,
            "/record": self._cmd_record,
            "/strategies": lambda _a: self._print_strategies(),
            "/tick": self._cmd_tick,
            "/windows": self._cmd_windows,
            "/help": self._cmd_help,
        }
        handler = handlers.get(cmd)
        if handler is None:
            self.console.print(f"[red]Unknown command: {cmd}[/red]  (try /help)")
            return True

        try:
            handler(arg)
        except ValueError as e:
            self.console.print(f"[red]{e}[/red]")
        return True

    # -----------------------------------------------------------------------
    # Slash command implementations
    # -----------------------------------------------------------------------

    def _cmd_status(self, _arg: str):
        """/status: Monitor status panel."""
        status = self.monitor.get_status()
        lines = [
            f"[bold]Monitoring:[/bold] {'yes' if status['monitoring'] else 'no'}",
            f"[bold]Platform:[/bold]   {status['platform']}",
            f"[bold]Metrics:[/bold]    {status['metric_count']} recorded",
            f"[bold]Strategies:[/bold] {status['strategy_count']} "
            f"(last fired: {', '.join(status['last_fired']) or 'none'})",
            f"[bold]Violations:[/bold] {status['threshold_violations']}",
        ]
        self.console.print(Panel("\n".join(lines), title="Mind Vault Status", border_style="cyan"))

    def _cmd_metrics(self, arg: str):
        """/metrics [type]: Most recent metrics."""
        metrics = self.monitor.get_metrics(arg or None, limit=20)
        if not metrics:
            self.console.print("[dim]No metrics recorded.[/dim]")
            return
        table = Table(title="Recent Metrics")
        table.add_column("Time", style="dim")
        table.add_column("Type", style="cyan")
        table.add_column("Duration", justify="right")
        table.add_column("Memory", justify="right")
        table.add_column("Context")
        for m in metrics:
            table.add_row(
                m.timestamp.strftime("%H:%M:%S"),
                m.metric_type.value,
                f"{m.duration:.1f} ms",
                _fmt_bytes(m.memory_usage),
                ", ".join(f"{k}={v}" for k, v in m.context.items()),
            )
        self.console.print(table)

    def _cmd_record(self, arg: str):
        """/record <type> <ms>: Record a metric by hand."""
        parts = arg.split()
        if len(parts) != 2:
            self.console.print("[dim]Usage: /record <type> <duration-ms>[/dim]")
            return
        metric_id = self.monitor.record_metric(parts[0], float(parts[1]))
        self.console.print(f"[green]Recorded[/green] {metric_id[:8]}")

    def _cmd_tick(self, _arg: str):
        """/tick: Run one poll immediately."""
        fired = self.monitor.tick()
        names = ", ".join(s.name for s in fired) or "none"
        self.console.print(f"Strategies fired: {names}")

    def _cmd_windows(self, _arg: str):
        """/windows: Open windows."""
        windows = self.file_system.windows
        active = windows.get_active_window()
        if not windows.get_windows():
            self.console.print("[dim]No open windows.[/dim]")
            return
        table = Table(title="Windows")
        table.add_column("ID", style="dim")
        table.add_column("Type", style="cyan")
        table.add_column("Title")
        table.add_column("State")
        for w in windows.get_windows():
            marker = " *" if active and active.window_id == w.window_id else ""
            table.add_row(w.window_id[:8] + marker, w.window_type.value, w.title, w.state.value)
        self.console.print(table)

    def _cmd_help(self, _arg: str):
        """/help: List available commands."""
        table = Table(title="Commands")
        table.add_column("Command", style="bold cyan")
        table.add_column("Description")
        for cmd, desc in [
            ("/status", "Monitor status"),
            ("/snapshot", "Memory, battery and network snapshots"),
            ("/stats", "Aggregate metric statistics"),
            ("/metrics [type]", "Recent metrics"),
            ("/record <type> <ms>", "Record a metric"),
            ("/strategies", "Optimization strategies and fire counts"),
            ("/tick", "Run one poll now"),
            ("/windows", "Open windows"),
            ("/quit", "Exit"),
        ]:
            table.add_row(cmd, desc)
        self.console.print(table)

    # -----------------------------------------------------------------------
    # Tables
    # -----------------------------------------------------------------------

    def _print_snapshots(self):
        mem = self.monitor.get_memory_manager()
        bat = self.monitor.get_battery_manager()
        net = self.monitor.get_network_manager()
        hw = self.monitor.get_hardware_acceleration()

        table = Table(title="Resources")
        table.add_column("Resource", style="bold cyan")
        table.add_column("Reading")
        table.add_row(
            "Memory",
            f"{_fmt_bytes(mem.used_memory)} / {_fmt_bytes(mem.total_memory)} "
            f"({mem.memory_pressure.value} pressure)",
        )
        table.add_row(
            "Battery",
            f"{bat.level:.0f}% {'charging' if bat.charging else 'discharging'} "
            f"({bat.optimization_level.value})",
        )
        table.add_row(
            "Network",
            f"{net.status.value} via {net.connection_type.value}, {net.bandwidth:.0f} Mbps",
        )
        table.add_row("Hardware accel.", "on" if hw.enabled else "off")
        self.console.print(table)

    def _print_stats(self):
        stats = self.monitor.get_performance_stats()
        table = Table(title="Performance Stats")
        table.add_column("Count", justify="right")
        table.add_column("Avg", justify="right")
        table.add_column("Min", justify="right")
        table.add_column("Max", justify="right")
        table.add_column("Avg CPU", justify="right")
        table.add_row(
            str(stats.count),
            f"{stats.average_duration:.1f} ms",
            f"{stats.min_duration:.1f} ms",
            f"{stats.max_duration:.1f} ms",
            f"{stats.avg_cpu:.1f}%",
        )
        self.console.print(table)

    def _print_strategies(self):
        counts = self.monitor.dispatcher.fire_counts
        table = Table(title=f"Optimization Strategies ({self.monitor.platform.value})")
        table.add_column("Priority", justify="right")
        table.add_column("ID", style="cyan")
        table.add_column("Platforms")
        table.add_column("Enabled")
        table.add_column("Fired", justify="right")
        for s in sorted(self.monitor.get_optimization_strategies(), key=lambda s: s.priority):
            table.add_row(
                str(s.priority),
                s.strategy_id,
                ", ".join(sorted(p.value for p in s.platforms)),
                "[green]yes[/green]" if s.enabled else "[red]no[/red]",
                str(counts.get(s.strategy_id, 0)),
            )
        self.console.print(table)

    def _print_banner(self):
        lines = [
            "[bold]Mind Vault: Performance Monitor[/bold]",
            "",
            f"Platform: {self.monitor.platform.value}  |  "
            f"Poll: every {self.monitor.config.poll_interval}s  |  "
            f"Strategies: {len(self.monitor.get_optimization_strategies())}",
            "",
            "[dim]Type /help for commands.[/dim]",
        ]
        self.console.print(Panel("\n".join(lines), border_style="bright_blue", padding=(1, 2)))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def main(argv: list[str] | None = None):
    """Launch the Mind Vault CLI terminal."""
    parser = argparse.ArgumentParser(description="Mind Vault performance terminal")
    parser.add_argument(
        "--seconds", type=float, default=None,
        help="Watch for N seconds, print tables and exit",
    )
    args = parser.parse_args(argv)

    terminal = VaultTerminal()
    if args.seconds is not None:
        await terminal.watch(args.seconds)
    else:
        await terminal.run()


if __name__ == "__main__":
    asyncio.run(main())
