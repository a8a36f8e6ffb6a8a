# src/kubeforge/cli/formatter.py
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from kubeforge.core.errors import AggregateError, ErrMultipleMatches, ResolutionError
from kubeforge.generate.objects import object_kind

# Decorations go to stderr so manifests on stdout stay pipeable
console = Console(stderr=True)


class AppFormatter:
    """
    AppFormatter: the visual side of the CLI.
    Renders generated objects, failures and run summaries.
    """

    def __init__(self, target: Console = console):
        self.console = target

    def print_objects_table(self, result):
        table = Table(title=f"Generated objects for {result.name or 'application'}",
                      show_header=True, header_style="bold magenta")
        table.add_column("Kind", style="cyan")
        table.add_column("Name")
        table.add_column("Details", style="dim")

        for obj in result.objects:
            table.add_row(object_kind(obj), obj.name, self._details(obj))

        self.console.print(table)

    @staticmethod
    def _details(obj) -> str:
        kind = object_kind(obj)
        if kind == "ImageStream":
            tags = [f"{t} <- {s}" if s else f"{t} (build output)" for t, s in obj.tags.items()]
            return ", ".join(tags)
        if kind == "BuildConfig":
            source = obj.git_uri or ("Dockerfile" if obj.dockerfile is not None else "image")
            output = obj.output_to["name"] if obj.output_to else "no output"
            return f"{obj.strategy} build of {source} -> {output}"
        if kind == "DeploymentConfig":
            return ", ".join(c.image for c in obj.containers)
        if kind == "Service":
            return ", ".join(obj.ports)
        return ""

    def show_manifests(self, text: str, output_format: str):
        syntax = Syntax(text, output_format, theme="monokai", line_numbers=False)
        self.console.print(syntax)

    def show_error(self, err: Exception):
        """Aggregate failures are listed one per line."""
        errors = list(err) if isinstance(err, AggregateError) else [err]
        if len(errors) == 1:
            self.console.print(f"[bold red]error:[/bold red] {errors[0]}")
        else:
            self.console.print(f"[bold red]error:[/bold red] {len(errors)} problems were found")
            for e in errors:
                self.console.print(f"  [red]*[/red] {e}")
        for e in errors:
            if isinstance(e, ErrMultipleMatches):
                self._show_candidates(e)
            elif isinstance(e, ResolutionError) and getattr(e, "errs", None):
                for cause in e.errs:
                    self.console.print(f"    [dim]caused by: {cause}[/dim]")

    def _show_candidates(self, err: ErrMultipleMatches):
        table = Table(title=f'Candidates for "{err.value}"', header_style="bold yellow")
        table.add_column("Use")
        table.add_column("Description", style="dim")
        for match in err.matches:
            table.add_row(match.argument or match.name, match.description)
        self.console.print(table)

    def print_summary(self, summary: dict, applied: bool = False):
        kinds = "\n".join(f"  {kind}: {count}" for kind, count in sorted(summary["by_kind"].items()))
        state = "[green]created[/green]" if applied else "[yellow]not created (preview)[/yellow]"
        self.console.print(Panel(
            f"[bold white]Summary[/bold white]\n"
            f"════════════════════════════════════════\n"
            f"Application:  {summary['name'] or '-'}\n"
            f"Namespace:    {summary['namespace']}\n"
            f"Objects:      {summary['total_objects']} {state}\n"
            f"{kinds}\n"
            f"Warnings:     {summary['warnings']}",
            border_style="dim"
        ))
