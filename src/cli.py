"""
Command-line interface for taste-engine.

Provides commands to run the API and the batch scheduler, initialize the
database, and inspect or steer the dirty-set pipeline.

Usage:
    taste-engine serve        # Run the API server
    taste-engine worker       # Run the batch scheduler
    taste-engine run-batch    # Process one batch and exit
    taste-engine init-db      # Initialize database
    taste-engine status       # Show dirty-set backlog
    taste-engine health       # Check service health
"""

import asyncio
import json
import os
import signal
import sys
from datetime import datetime, timezone

import click

from src.config.settings import get_settings
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Taste Engine - aesthetic ranking and selection."""
    setup_logging(level="DEBUG" if debug else None)


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
@click.option("--embedded-worker", is_flag=True, help="Run the scheduler inside the API process")
def serve(
    host: str | None,
    port: int | None,
    reload: bool,
    metrics_port: int | None,
    embedded_worker: bool,
) -> None:
    """Start the ranking API server."""
    import uvicorn

    if embedded_worker:
        os.environ["EMBEDDED_WORKER"] = "true"
        get_settings.cache_clear()

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    if settings.uses_memory_store and not settings.embedded_worker:
        click.echo(
            click.style(
                "Warning: memory store without --embedded-worker; scores will never update",
                fg="yellow",
            )
        )

    # Start metrics server on separate port
    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "src.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command()
@click.option("--batch-size", default=None, type=int, help="Dirty items claimed per batch")
@click.option("--interval", default=None, type=float, help="Seconds between batches")
@click.option("--triggers/--no-triggers", default=None, help="Consume the Redis trigger stream")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def worker(
    batch_size: int | None,
    interval: float | None,
    triggers: bool | None,
    metrics: bool,
    metrics_port: int | None,
) -> None:
    """Run the batch scheduler.

    Claims dirty items every interval (and immediately on triggers),
    replays their events and publishes changed scores.

    Example:
        taste-engine worker
        taste-engine worker --batch-size 100 --interval 30
    """
    from src.queues.triggers import TriggerQueue
    from src.storage import create_store
    from src.worker.config import WorkerConfig
    from src.worker.scheduler import Scheduler

    settings = get_settings()
    overrides = {}
    if batch_size is not None:
        overrides["batch_size"] = batch_size
    if interval is not None:
        overrides["interval_seconds"] = interval
    config = WorkerConfig(**overrides)

    use_triggers = settings.triggers_enabled if triggers is None else triggers

    async def run():
        scheduler = Scheduler(
            create_store(),
            config=config,
            trigger_queue=TriggerQueue() if use_triggers else None,
        )

        if metrics:
            get_metrics().start_server(port=metrics_port or settings.metrics_port)

        # Handle shutdown signals
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(scheduler.stop()))

        await scheduler.start()

    asyncio.run(run())


@main.command("run-batch")
@click.option("--batch-size", default=None, type=int, help="Dirty items claimed per batch")
@click.option("--drain", is_flag=True, help="Keep running batches until the dirty set is empty")
@click.option("--json-output", is_flag=True, help="Print results as JSON")
def run_batch(batch_size: int | None, drain: bool, json_output: bool) -> None:
    """Process one batch of dirty items and exit.

    Designed for cron scheduling: ``* * * * * taste-engine run-batch``
    """
    from src.storage import create_store
    from src.worker.config import WorkerConfig
    from src.worker.worker import BatchWorker

    overrides = {"batch_size": batch_size} if batch_size is not None else {}
    config = WorkerConfig(**overrides)

    async def run():
        async with create_store() as store:
            batch_worker = BatchWorker(store, config=config)
            results = []
            while True:
                result = await batch_worker.run_batch()
                results.append(result)
                if not drain or result.claimed < config.batch_size:
                    break
                if result.processed == 0:
                    break
            return results

    results = asyncio.run(run())

    if json_output:
        click.echo(json.dumps([r.to_dict() for r in results], indent=2))
        return

    for result in results:
        click.echo(f"\nBatch ({result.worker_id}): {result.outcome}")
        click.echo("-" * 40)
        click.echo(f"  Claimed:        {result.claimed}")
        click.echo(f"  Processed:      {result.processed}")
        click.echo(f"  Published:      {result.published}")
        click.echo(f"  Unchanged:      {result.unchanged}")
        click.echo(f"  Failed:         {result.failed}")
        click.echo(f"  Frozen:         {result.frozen}")
        click.echo(f"  Deferred:       {result.deferred}")
        click.echo(f"  Claims lost:    {result.lost}")
        click.echo(f"  Events:         {result.events_replayed}")
        click.echo(f"  Elapsed:        {result.elapsed_seconds:.2f}s")
        for error in result.errors[:10]:
            click.echo(click.style(f"  ! {error}", fg="red"))


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from src.storage.database import Database
    from src.storage.postgres import PostgresRatingStore

    async def run():
        db = Database()
        await db.connect()
        try:
            await PostgresRatingStore(db).create_tables()
        finally:
            await db.close()
        click.echo("Database initialized successfully")

    asyncio.run(run())


@main.command()
@click.argument("item_ids", nargs=-1, required=True)
def register(item_ids: tuple[str, ...]) -> None:
    """Register item ids with default ratings."""
    from src.ingestion.service import IngestionService
    from src.storage import create_store

    async def run():
        async with create_store() as store:
            return await IngestionService(store).register_items(list(item_ids))

    created = asyncio.run(run())
    click.echo(f"Registered {created} new item(s) ({len(item_ids) - created} already known)")


@main.command("mark-dirty")
@click.argument("item_id")
@click.option("--priority", default=100, type=click.IntRange(0, 100), help="Dirty priority")
@click.option("--unfreeze", is_flag=True, help="Also clear a computation-error freeze")
def mark_dirty(item_id: str, priority: int, unfreeze: bool) -> None:
    """Force a recompute of ITEM_ID."""
    from src.errors import ValidationError
    from src.ingestion.service import IngestionService
    from src.storage import create_store

    async def run():
        async with create_store() as store:
            service = IngestionService(store)
            if unfreeze:
                return await service.unfreeze(item_id, priority)
            return await service.mark_dirty(item_id, priority)

    try:
        entry = asyncio.run(run())
    except ValidationError as e:
        click.echo(click.style(f"Error: {e}", fg="red"))
        sys.exit(1)

    click.echo(f"Marked {entry.item_id} dirty (priority {entry.priority}, version {entry.version})")


@main.command()
@click.option("--json-output", is_flag=True, help="Print status as JSON")
def status(json_output: bool) -> None:
    """Show dirty-set backlog and store totals."""
    from src.storage import create_store
    from src.worker.config import WorkerConfig

    async def run():
        async with create_store() as store:
            return await store.pipeline_status(
                datetime.now(timezone.utc), WorkerConfig().high_priority_threshold
            )

    pipeline = asyncio.run(run())

    if json_output:
        click.echo(json.dumps(pipeline.to_dict(), indent=2))
        return

    def age(seconds: float | None) -> str:
        return "-" if seconds is None else f"{seconds:.0f}s"

    click.echo("\nPipeline Status:")
    click.echo("-" * 40)
    click.echo(f"  Dirty items:        {pipeline.dirty_count}")
    click.echo(f"  High priority:      {pipeline.high_priority_count}")
    click.echo(f"  Claimed:            {pipeline.claimed_count}")
    click.echo(f"  Backing off:        {pipeline.backoff_count}")
    click.echo(f"  Oldest dirty age:   {age(pipeline.oldest_dirty_age_seconds)}")
    click.echo(f"  Average dirty age:  {age(pipeline.avg_dirty_age_seconds)}")
    click.echo("-" * 40)
    click.echo(f"  Items:              {pipeline.total_items}")
    click.echo(f"  Frozen:             {pipeline.frozen_count}")
    click.echo(f"  Raters:             {pipeline.total_raters}")
    click.echo(f"  Events:             {pipeline.total_events}")
    click.echo(f"  Published scores:   {pipeline.total_published}")
    if pipeline.frozen_count:
        click.echo(click.style("Frozen items need inspection (mark-dirty --unfreeze)", fg="yellow"))


@main.command()
def health() -> None:
    """Check the rating store and, if enabled, the trigger stream.

    Exits 1 when the store is down. The trigger stream is reported but only
    degrades service, so it does not change the exit code.
    """
    settings = get_settings()

    async def check_store() -> bool:
        from src.storage import create_store

        async with create_store() as store:
            return await store.health_check()

    async def check_triggers() -> bool:
        from src.queues.triggers import TriggerQueue

        queue = TriggerQueue()
        await queue.connect()
        try:
            return await queue.health_check()
        finally:
            await queue.close()

    async def check() -> dict[str, bool]:
        checks = {f"store ({settings.store_backend})": check_store}
        if settings.triggers_enabled:
            checks["trigger stream"] = check_triggers
        results = {}
        for name, component_check in checks.items():
            try:
                results[name] = await component_check()
            except Exception as e:
                click.echo(click.style(f"  {name}: {e}", fg="yellow"), err=True)
                results[name] = False
        return results

    results = asyncio.run(check())

    click.echo("\nHealth Check Results:")
    click.echo("-" * 40)
    for name, healthy in results.items():
        mark, color = ("ok", "green") if healthy else ("FAIL", "red")
        click.echo(click.style(f"  [{mark}] {name}", fg=color))
    click.echo("-" * 40)

    store_ok = next(iter(results.values()))
    if store_ok:
        click.echo(click.style("All core services healthy!", fg="green"))
    else:
        click.echo(click.style("Rating store unavailable", fg="red"))
        sys.exit(1)


if __name__ == "__main__":
    main()
