"""
Simple CLI to trigger the notice jobs manually or start the scheduler.
"""
from __future__ import annotations

import asyncio
import json
import logging

import click
from dotenv import load_dotenv

from notice_crawler.ingesters.academic import ItemState
from notice_crawler.runtime import Runtime, build_runtime, run_ingestion, run_reminders
from notice_crawler.schedulers.aps import run_scheduler


@click.group()
@click.option("--log-level", default="INFO", show_default=True, help="Python logging level.")
@click.option("--env-file", default=".env", show_default=True, help="Dotenv file with NOTICE_* settings.")
def cli(log_level: str, env_file: str):
    load_dotenv(env_file)
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("crawl-once")
def crawl_once():
    """Run a single ingestion pass and print its summary."""
    runtime = build_runtime()

    async def _run():
        try:
            return await run_ingestion(runtime)
        finally:
            await runtime.aclose()

    report = asyncio.run(_run())
    summary = {
        "pages_walked": report.pages_walked,
        "pages_failed": report.pages_failed,
        "items_queued": report.items_queued,
        "done": report.count(ItemState.DONE),
        "skipped": report.count(ItemState.SKIPPED),
        "failed": report.count(ItemState.FAILED),
        "timed_out": report.timed_out,
        "stopped_reason": report.stopped_reason,
    }
    click.echo(json.dumps(summary, ensure_ascii=False))


@cli.command("remind-once")
def remind_once():
    """Send tomorrow's deadline reminders now."""
    runtime = build_runtime()

    async def _run():
        try:
            return await run_reminders(runtime)
        finally:
            await runtime.aclose()

    click.echo(json.dumps({"reminders_sent": asyncio.run(_run())}))


@cli.command()
def schedule():
    """Run both jobs on their cron schedules until interrupted."""
    runtime: Runtime = build_runtime()
    run_scheduler(runtime)


if __name__ == "__main__":  # pragma: no cover
    cli()
