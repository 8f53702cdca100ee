"""Typer-based CLI for FluxTrace."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from . import __version__, config, config_manager
from .config import TRACE_CATEGORIES, Settings, load_settings
from .config_manager import ALL_PROVIDERS
from .errors import FileNotFound, NodeNotLocated, UnparsableComponent
from .service import TraceService, create_graph

console = Console()

app = typer.Typer(
    help="🔎 FluxTrace: trace where the data behind a Vue element comes from.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
graph_app = typer.Typer(help="Inspect the module dependency graph.", no_args_is_help=True)
app.add_typer(graph_app, name="graph")


def configure_logging(verbose: bool, default_level: int = logging.WARNING) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else default_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"FluxTrace v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """FluxTrace: static data-flow tracing for Vue single-file components."""
    configure_logging(verbose)


def _settings(project_root: Optional[Path], manifest: Optional[Path], no_live: bool = False) -> Settings:
    settings = load_settings(project_root=project_root)
    if manifest is not None:
        settings.graph.manifest = str(manifest.resolve())
    if no_live:
        settings.graph.live_build = False
    return settings


# ===================================================================
# analyze
# ===================================================================

def _render_result(result: Dict[str, Any]) -> None:
    console.print(Panel(Syntax(result["targetElement"], "html", word_wrap=True), title="Clicked element"))
    if result.get("isStatic"):
        console.print("[green]Static content[/green]: no variables to trace.")
        return

    for category in TRACE_CATEGORIES:
        steps = result["traceChains"].get(category) or []
        if not steps:
            continue
        table = Table(title=f"{category} chain ({result['chainEndings'][category]})", show_lines=False)
        table.add_column("#", justify="right", style="dim")
        table.add_column("File", style="cyan")
        table.add_column("Tag")
        table.add_column("Variables", style="yellow")
        for index, step in enumerate(steps, start=1):
            tag = "[magenta]store[/magenta]" if step.get("isStore") else step["tag"]
            table.add_row(str(index), step["file"], tag, ", ".join(step["tracedVariables"]))
        console.print(table)

    ranked = result.get("rankedVariables") or []
    if ranked:
        console.print("Ranked variables: " + ", ".join(f"{r['name']} ({r['score']:g})" for r in ranked))

    analysis = result.get("aiAnalysis")
    if analysis:
        source = analysis.get("dataSource") or {}
        lines = [
            analysis.get("fullLinkTrace", ""),
            "",
            f"Data source: [bold]{source.get('type')}[/bold] {source.get('method', '')} {source.get('endpoint') or ''}".rstrip(),
            f"Confidence:  {analysis.get('confidence', 0):g}",
        ]
        if analysis.get("errorCode"):
            lines.append(f"[red]Degraded: {analysis['errorCode']}[/red]")
        if analysis.get("suggestNextStep"):
            lines.append(f"Next step:   {analysis['suggestNextStep']}")
        console.print(Panel("\n".join(lines), title="Analysis"))


@app.command("analyze")
def analyze(
    path: str = typer.Argument(..., help="Project-relative path of the .vue file."),
    line: int = typer.Argument(..., help="1-based line of the clicked element."),
    column: int = typer.Argument(..., help="0-based column of the clicked element."),
    project_root: Optional[Path] = typer.Option(None, "--project-root", "-p", help="Root of the Vue project."),
    manifest: Optional[Path] = typer.Option(None, "--manifest", "-m", help="Bundler stats manifest to read."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON result."),
    no_ai: bool = typer.Option(False, "--no-ai", help="Skip the LLM analysis."),
    no_live: bool = typer.Option(False, "--no-live", help="Do not run a live build for the graph."),
):
    """Trace the data flow behind the element at PATH:LINE:COLUMN."""
    service = TraceService(_settings(project_root, manifest, no_live))
    try:
        result = service.analyze(path, line, column, use_ai=not no_ai)
    except (FileNotFound, UnparsableComponent, NodeNotLocated) as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps(result, indent=2, ensure_ascii=False))
    else:
        _render_result(result)


# ===================================================================
# serve
# ===================================================================

@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind."),
    port: int = typer.Option(7001, "--port", help="Port to listen on."),
    project_root: Optional[Path] = typer.Option(None, "--project-root", "-p", help="Root of the Vue project."),
    manifest: Optional[Path] = typer.Option(None, "--manifest", "-m", help="Bundler stats manifest to read."),
    no_live: bool = typer.Option(False, "--no-live", help="Do not run a live build for the graph."),
):
    """Serve GET|POST /api/analyze for the browser overlay."""
    from .server import run_server

    if logging.getLogger().level > logging.INFO:
        logging.getLogger().setLevel(logging.INFO)
    service = TraceService(_settings(project_root, manifest, no_live))
    source = service.graph.init(service.manifest_path)

    console.print("\n[bold green]🔎 FluxTrace server[/bold green]")
    console.print(f"   Project: [cyan]{service.project_root}[/cyan]")
    console.print(f"   Graph:   {len(service.graph)} modules (from {source})")
    console.print(f"   URL:     http://{host}:{port}/api/analyze")
    console.print("\n   [dim]Press Ctrl+C to stop the server[/dim]\n")
    try:
        run_server(service, host=host, port=port)
    except KeyboardInterrupt:
        pass
    finally:
        console.print("\n[dim]Server stopped.[/dim]")


# ===================================================================
# graph
# ===================================================================

def _ready_graph(project_root: Optional[Path], manifest: Optional[Path], no_live: bool):
    settings = _settings(project_root, manifest, no_live)
    graph = create_graph(settings)
    manifest_path = Path(settings.graph.manifest)
    if not manifest_path.is_absolute():
        manifest_path = settings.project_root / manifest_path
    return graph, graph.init(manifest_path)


@graph_app.command("build")
def graph_build(
    project_root: Optional[Path] = typer.Option(None, "--project-root", "-p", help="Root of the Vue project."),
    manifest: Optional[Path] = typer.Option(None, "--manifest", "-m", help="Bundler stats manifest to read."),
    no_live: bool = typer.Option(False, "--no-live", help="Do not run a live build."),
):
    """Build (or load from cache) the dependency graph and print a summary."""
    graph, source = _ready_graph(project_root, manifest, no_live)
    edges = sum(len(children) for children in graph.forward_map().values())
    typer.echo(f"Graph source: {source}")
    typer.echo(f"Modules: {len(graph)} | Edges: {edges}")


@graph_app.command("parents")
def graph_parents(
    file: str = typer.Argument(..., help="Project-relative module path."),
    project_root: Optional[Path] = typer.Option(None, "--project-root", "-p", help="Root of the Vue project."),
    manifest: Optional[Path] = typer.Option(None, "--manifest", "-m", help="Bundler stats manifest to read."),
    no_live: bool = typer.Option(False, "--no-live", help="Do not run a live build."),
):
    """List the modules that import FILE."""
    graph, _ = _ready_graph(project_root, manifest, no_live)
    parents = graph.get_parents(file)
    if not parents:
        typer.echo(f"No parents found for {file}.")
        return
    for parent in parents:
        typer.echo(parent)


@graph_app.command("children")
def graph_children(
    file: str = typer.Argument(..., help="Project-relative module path."),
    project_root: Optional[Path] = typer.Option(None, "--project-root", "-p", help="Root of the Vue project."),
    manifest: Optional[Path] = typer.Option(None, "--manifest", "-m", help="Bundler stats manifest to read."),
    no_live: bool = typer.Option(False, "--no-live", help="Do not run a live build."),
):
    """List the modules FILE imports."""
    graph, _ = _ready_graph(project_root, manifest, no_live)
    children = graph.get_children(file)
    if not children:
        typer.echo(f"No children found for {file}.")
        return
    for child in children:
        typer.echo(child)


# ===================================================================
# LLM configuration
# ===================================================================

@app.command("set-llm")
def set_llm(
    provider: str = typer.Argument(..., help="LLM provider: ollama, groq, openai, anthropic, gemini, openrouter"),
    model: str = typer.Option(None, "--model", "-m", help="Model name (uses provider default if not set)."),
    api_key: str = typer.Option(None, "--api-key", "-k", help="API key for cloud providers."),
    endpoint: str = typer.Option(None, "--endpoint", "-e", help="Custom endpoint URL."),
):
    """Switch the LLM provider used for trace analysis.

    Examples:
        fluxtrace set-llm ollama -m qwen2.5-coder:7b
        fluxtrace set-llm openai -k YOUR_API_KEY -m gpt-4o-mini
    """
    provider = provider.lower().strip()
    if provider not in ALL_PROVIDERS:
        typer.echo(f"❌ Unknown provider '{provider}'. Choose from: {', '.join(ALL_PROVIDERS)}", err=True)
        raise typer.Exit(code=1)

    defaults = config_manager.get_provider_config(provider)
    resolved_model = model or defaults.get("model", "")
    resolved_endpoint = endpoint or defaults.get("endpoint", "")
    resolved_api_key = api_key or ""
    current = config_manager.load_llm_config()
    if provider != "ollama" and not resolved_api_key and current.get("provider") == provider:
        resolved_api_key = current.get("api_key", "")

    if not config_manager.save_llm_config(provider, resolved_model, resolved_api_key, resolved_endpoint):
        typer.echo("❌ Failed to save configuration.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"✅ LLM set to {provider} ({resolved_model})")
    if provider != "ollama" and not resolved_api_key:
        typer.echo("⚠️  No API key configured; pass --api-key or set AI_API_KEY.")


@app.command("show-llm")
def show_llm():
    """Show the current LLM provider configuration."""
    cfg = config_manager.load_llm_config()
    api_key = cfg.get("api_key", "")
    typer.echo(f"  Provider  {cfg.get('provider', 'ollama')}")
    typer.echo(f"  Model     {cfg.get('model', '')}")
    if cfg.get("endpoint"):
        typer.echo(f"  Endpoint  {cfg['endpoint']}")
    if api_key:
        typer.echo(f"  API Key   {api_key[:8] + '•' * min(max(len(api_key) - 8, 0), 16)}")
    else:
        typer.echo("  API Key   (not set)")
    typer.echo(f"  Config    {config.CONFIG_FILE}")


if __name__ == "__main__":
    app()
