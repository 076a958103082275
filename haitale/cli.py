"""HaiTale command-line interface.

Describe the world you want to create and get ranked mod recommendations
from a local catalog file.
"""

import asyncio
from pathlib import Path
from typing import List, Optional

import structlog
import typer
from pydantic import ValidationError

from .catalog.models import CatalogLoadError
from .catalog.provider import FileCatalogProvider
from .config import HaitaleConfig, configure_logging
from .recommender.models import Recommendation
from .recommender.orchestrator import RecommendationOrchestrator

logger = structlog.get_logger(__name__)


def load_config(config_file: Optional[Path]) -> HaitaleConfig:
    """Load configuration from a YAML file or the environment."""
    if config_file is not None:
        return HaitaleConfig.from_yaml(config_file)
    return HaitaleConfig()


def render_recommendations(recommendations: List[Recommendation]) -> None:
    """Print recommendations to stdout."""
    typer.echo(f"Found {len(recommendations)} recommended mods:")
    typer.echo("================================================")
    typer.echo()

    for index, rec in enumerate(recommendations, start=1):
        entry = rec.entry
        typer.echo(
            f"{index}. {entry.name} v{entry.version} "
            f"[Score: {rec.relevance_score * 100:.0f}%]"
        )
        typer.echo(f"   Author: {entry.author}")
        typer.echo(f"   License: {entry.license}")
        typer.echo(f"   Description: {entry.description}")
        typer.echo(f"   Why recommended: {rec.reasoning}")
        typer.echo(f"   ID: {entry.id}")
        typer.echo()


async def run_recommend(
    config: HaitaleConfig, description: str
) -> List[Recommendation]:
    """Load the catalog and run the recommendation pipeline."""
    provider = FileCatalogProvider(config.catalog_path)
    orchestrator = RecommendationOrchestrator.create(config)
    try:
        return await orchestrator.recommend_from_provider(provider, description)
    finally:
        await orchestrator.aclose()


def create_app() -> typer.Typer:
    """Create the Typer CLI application."""
    app = typer.Typer(
        name="haitale",
        help="AI-powered HyTale mod installer - describe your world, get mod recommendations",
        add_completion=False,
    )

    @app.callback()
    def main_callback(
        verbose: bool = typer.Option(
            False,
            "--verbose",
            "-v",
            help="Enable verbose output",
        ),
    ) -> None:
        """HaiTale - AI-Powered HyTale Mod Installer."""
        configure_logging(verbose)

    @app.command()
    def recommend(
        description_words: Optional[List[str]] = typer.Argument(
            None,
            help="Describe the world you want to create (e.g. 'medieval fantasy with magic and dragons')",
        ),
        catalog: Optional[Path] = typer.Option(
            None,
            "--catalog",
            help="Path to a JSON or YAML mod catalog",
        ),
        config_file: Optional[Path] = typer.Option(
            None,
            "--config",
            "-c",
            help="Path to configuration file",
        ),
        no_ai: bool = typer.Option(
            False,
            "--no-ai",
            help="Use rule-based recommendations only",
        ),
    ) -> None:
        """Get AI-powered mod recommendations based on your world description."""
        if not description_words:
            typer.echo("Error: Please provide a world description", err=True)
            typer.echo(
                "Example: haitale recommend I want a medieval world with magic and building tools",
                err=True,
            )
            raise typer.Exit(code=1)

        description = " ".join(description_words)

        try:
            config = load_config(config_file)
        except ValidationError as e:
            logger.error("Invalid configuration", error=str(e))
            typer.echo(f"Error: Invalid configuration: {e}", err=True)
            raise typer.Exit(code=1)

        if catalog is not None:
            config.catalog_path = str(catalog)
        if no_ai:
            config.api_key = None

        typer.echo("Analyzing your world description...")
        typer.echo(f"Description: {description}")
        typer.echo()

        try:
            recommendations = asyncio.run(run_recommend(config, description))
        except CatalogLoadError as e:
            logger.error("Catalog could not be loaded", error=e.message, **e.details)
            typer.echo(f"Error: {e.message}", err=True)
            raise typer.Exit(code=1)

        if not recommendations:
            typer.echo("No mods found matching your description.")
            typer.echo("Try being more specific or use different keywords.")
            return

        render_recommendations(recommendations)

    return app


def main() -> None:
    """Main entry point for the HaiTale CLI."""
    app = create_app()
    app()


if __name__ == "__main__":
    main()
