"""Coffee Agent CLI using Typer."""

import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.logging import RichHandler

from coffee_agent import __version__
from coffee_agent.cli.catalog import backfill, embeddings_app, run, sources_app

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

app = typer.Typer(
    name="coffee-agent",
    help="Coffee Agent - green coffee catalog reconciliation, AI enrichment and embeddings",
    add_completion=False,
)

app.command("run")(run)
app.command("backfill")(backfill)
app.add_typer(sources_app, name="sources")
app.add_typer(embeddings_app, name="embeddings")


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # SDK request logs drown out per-item progress
    for noisy in ("httpx", "httpcore", "google_genai", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Coffee Agent command line."""
    configure_logging(verbose)


_KEY_VARS = {
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
}


def _key_status(provider: str) -> str:
    for var in _KEY_VARS.get(provider, ()):
        if os.environ.get(var):
            return f"configured ({var})"
    return "not configured"


def _check_ai_config() -> None:
    """Check and display AI configuration status."""
    from coffee_agent.ingestion.registry import get_default_registry

    config = get_default_registry().global_config
    provider = os.environ.get("AI_PROVIDER") or config.enrichment.provider
    models = os.environ.get("AI_MODELS") or ", ".join(config.enrichment.models)

    typer.echo(f"  Enrichment provider: {provider} ({_key_status(provider)})")
    typer.echo(f"  Enrichment models: {models or 'provider defaults'}")
    typer.echo(
        f"  Embedding provider: {config.embedding.provider} / {config.embedding.model} "
        f"({_key_status(config.embedding.provider)})"
    )
    if _key_status(provider) == "not configured":
        typer.echo("  Tip: Set an API key in .env to enable enrichment; runs will skip it otherwise")


@app.command()
def init_db() -> None:
    """Initialize the database (create tables)."""
    from coffee_agent.db.engine import init_db as db_init

    typer.echo("Initializing database...")
    db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def version() -> None:
    """Show the Coffee Agent version."""
    typer.echo(f"Coffee Agent v{__version__}")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    from coffee_agent.db.engine import get_database_url
    from coffee_agent.ingestion.registry import get_default_registry

    typer.echo("Coffee Agent Configuration")
    typer.echo("=" * 40)

    # Check .env file
    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    registry = get_default_registry()
    if registry.config_path:
        typer.echo(f"  Sources config: {registry.config_path}")
        enabled = len(registry.list_enabled_sources())
        typer.echo(f"  Sources: {len(registry.list_sources())} configured, {enabled} enabled")
    else:
        typer.echo("  Sources config: Not found (set SOURCES_CONFIG_PATH)")

    _check_ai_config()

    typer.echo(f"  Database: {get_database_url()}")


if __name__ == "__main__":
    app()
