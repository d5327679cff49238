"""Command-line interface for the Reddit content collector."""

import asyncio
import json
import logging
import sys
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

import typer
from typing_extensions import Annotated

from reddit_collector.collector.stream import PaginatedStreamCollector
from reddit_collector.collector.window import CollectionWindowCalculator
from reddit_collector.config import Config
from reddit_collector.exceptions import RedditCollectorError
from reddit_collector.logging_setup import setup_logging
from reddit_collector.monitoring.metrics import PrometheusExporter
from reddit_collector.pipeline import ContentRetrievalOrchestrator, RetrievalOptions
from reddit_collector.reddit_client import RedditAPIClient

app = typer.Typer(help="Reddit content collector - OAuth2 thread retrieval and normalization")

logger = logging.getLogger(__name__)

ConfigOption = Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")]
LogLevelOption = Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")]


def to_jsonable(value: Any) -> Any:
    """Convert results (dataclasses, enums, datetimes) into JSON-friendly data."""
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def emit(value: Any) -> None:
    typer.echo(json.dumps(to_jsonable(value), indent=2))


def start_exporter(config: Config) -> Optional[PrometheusExporter]:
    if not config.monitoring.enable_prometheus:
        return None
    exporter = PrometheusExporter(port=config.monitoring.prometheus_port)
    exporter.start_server()
    return exporter


async def with_client(config: Config, action: Callable[[RedditAPIClient, Any], Awaitable[Any]]) -> Any:
    """Open an authenticated client for the duration of ``action``."""
    exporter = start_exporter(config)
    async with RedditAPIClient(config, prometheus_exporter=exporter) as client:
        return await action(client, exporter)


def run_command(config_path: str, loglevel: str, action: Callable[[Config], Awaitable[Any]]) -> None:
    """Shared wrapper: logging, config loading, event loop and exit codes."""
    setup_logging(loglevel)
    config = Config.from_files(config_path)
    try:
        result = asyncio.run(action(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return
    except RedditCollectorError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sys.exit(1)
    emit(result)


@app.command()
def health(
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
) -> None:
    """Check that the credentials authenticate and report connection metrics."""

    async def action(cfg: Config):
        async def check(client: RedditAPIClient, _exporter):
            result = await client.health_check()
            result["rate_limit"] = client.get_rate_limit_status()
            result["cost"] = client.get_cost_metrics()
            result["config"] = client.get_public_config()
            return result

        return await with_client(cfg, check)

    run_command(config, loglevel, action)


@app.command()
def fetch(
    subreddit: Annotated[str, typer.Argument(help="Subreddit the posts belong to")],
    ids: Annotated[List[str], typer.Argument(help="Post ids without the t3_ prefix")],
    limit: Annotated[Optional[int], typer.Option("--limit", help="Maximum comments per thread")] = None,
    sort: Annotated[Optional[str], typer.Option("--sort", help="Comment sort order")] = None,
    depth: Annotated[Optional[int], typer.Option("--depth", help="Maximum comment depth requested")] = None,
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
) -> None:
    """Retrieve and normalize the given threads."""
    options = RetrievalOptions(limit=limit, sort=sort, depth=depth)

    async def action(cfg: Config):
        async def retrieve(client: RedditAPIClient, exporter):
            orchestrator = ContentRetrievalOrchestrator(client, prometheus_exporter=exporter)
            return await orchestrator.retrieve_for_ids(subreddit, ids, options)

        return await with_client(cfg, retrieve)

    run_command(config, loglevel, action)


@app.command()
def recent(
    subreddit: Annotated[str, typer.Argument(help="Subreddit to collect from")],
    target: Annotated[Optional[int], typer.Option("--target", "-t", help="Number of posts to collect")] = None,
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
) -> None:
    """Retrieve recent threads inside the computed collection window."""

    async def action(cfg: Config):
        async def retrieve(client: RedditAPIClient, exporter):
            orchestrator = ContentRetrievalOrchestrator(client, prometheus_exporter=exporter)
            return await orchestrator.retrieve_recent(subreddit, target)

        return await with_client(cfg, retrieve)

    run_command(config, loglevel, action)


@app.command()
def stream(
    subreddit: Annotated[str, typer.Argument(help="Subreddit whose comments are streamed")],
    max_pages: Annotated[Optional[int], typer.Option("--max-pages", help="Hard cap on pages fetched")] = None,
    page_size: Annotated[Optional[int], typer.Option("--page-size", help="Items per page (1-100)")] = None,
    after: Annotated[Optional[str], typer.Option("--after", help="Cursor to resume from")] = None,
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
) -> None:
    """Stream the newest comments of a subreddit with duplicate and gap detection."""

    async def action(cfg: Config):
        async def collect(client: RedditAPIClient, exporter):
            async def fetch_page(cursor, limit):
                return await client.get_comment_stream_page(subreddit, after=cursor, limit=limit)

            collector = PaginatedStreamCollector(
                fetch_page,
                page_delay_sec=cfg.stream.page_delay_sec,
                gap_threshold_sec=cfg.stream.gap_threshold_sec,
                prometheus_exporter=exporter,
            )
            return await collector.collect(
                page_size=page_size or cfg.stream.page_size,
                max_pages=max_pages or cfg.stream.max_pages,
                start_cursor=after,
            )

        return await with_client(cfg, collect)

    run_command(config, loglevel, action)


@app.command()
def window(
    subreddit: Annotated[str, typer.Argument(help="Subreddit name")],
    target: Annotated[Optional[int], typer.Option("--target", "-t", help="Number of posts to cover")] = None,
    avg_per_day: Annotated[Optional[float], typer.Option("--avg-per-day", help="Override the volume estimate")] = None,
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
) -> None:
    """Show the collection window for a subreddit. Makes no API calls."""
    setup_logging(loglevel)
    cfg = Config.from_files(config)
    calculator = CollectionWindowCalculator(cfg.window)
    emit(calculator.compute_window(subreddit, target or cfg.window.target_items, avg_per_day))


if __name__ == "__main__":
    app()
