"""Operations CLI: ``mdnegotiation``.

Every command loads Settings once in the app callback, opens the same
AppState the HTTP server uses and closes it on exit. Output meant for the
operator goes to stdout; logs go to stderr.
"""

from __future__ import annotations

import asyncio
import json
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import structlog
import typer

import mdnegotiation.api as api
from mdnegotiation.cache import InvalidationReason
from mdnegotiation.config import Settings
from mdnegotiation.errors import MarkdownNegotiationError
from mdnegotiation.server import create_app, open_app_state, setup_logging
from mdnegotiation.transport import run_http_server

if TYPE_CHECKING:
    from mdnegotiation.models.content import ContentItem
    from mdnegotiation.state import AppState

log = structlog.get_logger()

app = typer.Typer(help="Serve CMS content as Markdown via HTTP content negotiation.")
cache_app = typer.Typer(help="Inspect and flush the Markdown cache.")
app.add_typer(cache_app, name="cache")


class OutputTarget(StrEnum):
    CACHE = "cache"
    STDOUT = "stdout"
    FILE = "file"


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj["settings"]


@app.callback()
def main(ctx: typer.Context) -> None:
    """Load configuration and set up logging for every command."""
    settings = Settings()
    setup_logging(settings)
    ctx.obj = {"settings": settings}


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@app.command()
def serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (overrides config)"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port (overrides config)"),
) -> None:
    """Run the HTTP server."""
    settings = _settings(ctx)
    overrides = {k: v for k, v in {"host": host, "port": port}.items() if v is not None}
    if overrides:
        settings = settings.model_copy(
            update={"server": settings.server.model_copy(update=overrides)}
        )
    run_http_server(create_app(settings=settings), settings)


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


def _select_items(
    state: AppState, ids: list[int], all_items: bool, content_type: str | None
) -> tuple[list[ContentItem], list[int]]:
    """Return the items to generate and the requested ids that do not exist."""
    items: list[ContentItem] = []
    if all_items:
        for item in state.content.all():
            if item.is_published and (content_type is None or item.type == content_type):
                items.append(item)
        return items, []

    missing: list[int] = []
    for content_id in ids:
        item = state.content.get(content_id)
        if item is None:
            missing.append(content_id)
        else:
            items.append(item)
    return items, missing


async def _generate(
    settings: Settings,
    ids: list[int],
    all_items: bool,
    content_type: str | None,
    output: OutputTarget,
    out_dir: Path,
) -> tuple[int, int, int]:
    generated = failed = tokens = 0

    async with open_app_state(settings) as state:
        items, missing = _select_items(state, ids, all_items, content_type)
        for content_id in missing:
            log.warning("generate_item_failed", content_id=content_id, reason="not_found")
            failed += 1

        if output == OutputTarget.FILE:
            out_dir.mkdir(parents=True, exist_ok=True)

        for item in items:
            if not state.access.can_access(item):
                log.warning("generate_item_failed", content_id=item.id, reason="access_denied")
                failed += 1
                continue

            try:
                if output == OutputTarget.CACHE:
                    # Drop any stale copy so the cache holds a fresh rendering.
                    await state.cache.invalidate(item.id)
                rendered = await state.dispatcher.render(item)
            except MarkdownNegotiationError as exc:
                log.warning("generate_item_failed", content_id=item.id, reason=exc.code)
                failed += 1
                continue

            if output == OutputTarget.STDOUT:
                typer.echo(rendered.markdown)
            elif output == OutputTarget.FILE:
                target = out_dir / f"{item.slug or item.id}.md"
                target.write_text(rendered.markdown, encoding="utf-8")

            generated += 1
            tokens += rendered.tokens

    return generated, failed, tokens


@app.command()
def generate(
    ctx: typer.Context,
    ids: Optional[list[int]] = typer.Argument(None, help="Content ids to generate"),
    all_items: bool = typer.Option(False, "--all", help="Generate every published item"),
    content_type: Optional[str] = typer.Option(None, "--type", help="Restrict --all to one type"),
    output: OutputTarget = typer.Option(OutputTarget.CACHE, "--output", help="Where to write"),
    out_dir: Path = typer.Option(Path("markdown"), "--dir", help="Directory for --output file"),
) -> None:
    """Pre-render Markdown for one or more content items."""
    if not ids and not all_items:
        typer.echo("Nothing to generate: pass content ids or --all.", err=True)
        raise typer.Exit(code=2)

    generated, failed, tokens = asyncio.run(
        _generate(_settings(ctx), ids or [], all_items, content_type, output, out_dir)
    )
    typer.echo(
        f"Generated: {generated}  Failed: {failed}  Tokens: {tokens}",
        err=output == OutputTarget.STDOUT,
    )
    if failed:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# cache
# ---------------------------------------------------------------------------


async def _flush(settings: Settings) -> bool:
    async with open_app_state(settings) as state:
        return await state.cache.flush_all()


async def _stats(settings: Settings) -> dict:
    async with open_app_state(settings) as state:
        return await state.cache.get_stats()


@cache_app.command("flush")
def cache_flush(ctx: typer.Context) -> None:
    """Delete every cached rendering."""
    if not asyncio.run(_flush(_settings(ctx))):
        typer.echo("Cache flush failed.", err=True)
        raise typer.Exit(code=1)
    typer.echo("Cache flushed.")


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show the active cache driver and its settings."""
    typer.echo(json.dumps(asyncio.run(_stats(_settings(ctx))), indent=2))


# ---------------------------------------------------------------------------
# invalidate / status
# ---------------------------------------------------------------------------


async def _invalidate(
    settings: Settings, content_id: int, reason: InvalidationReason, meta_key: str | None
) -> bool:
    async with open_app_state(settings) as state:
        return await state.cache.invalidate(content_id, reason, meta_key=meta_key)


@app.command()
def invalidate(
    ctx: typer.Context,
    content_id: int = typer.Argument(..., help="Content id whose renderings to drop"),
    reason: InvalidationReason = typer.Option(InvalidationReason.SAVED, "--reason"),
    meta_key: Optional[str] = typer.Option(None, "--meta-key", help="Changed metadata key"),
) -> None:
    """Invalidate cached Markdown after a content change."""
    if asyncio.run(_invalidate(_settings(ctx), content_id, reason, meta_key)):
        typer.echo(f"Invalidated content {content_id}.")
    else:
        typer.echo(f"Skipped: metadata key {meta_key!r} is ignored.")


async def _status(settings: Settings) -> dict:
    async with open_app_state(settings) as state:
        return await api.status(state)


@app.command()
def status(ctx: typer.Context) -> None:
    """Print version, converter, cache driver and enabled types."""
    typer.echo(json.dumps(asyncio.run(_status(_settings(ctx))), indent=2))
