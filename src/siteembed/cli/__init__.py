"""Command-line interface for :mod:`siteembed`.

This module exposes the Typer application behind the ``siteembed`` console
script: workspace bootstrap, queueing, queue processing, semantic search,
vector store statistics and purges.

Example:
    >>> import typer
    >>> from siteembed.cli import create_app
    >>> app = create_app()
    >>> isinstance(app, typer.Typer)
    True
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
from typing import Any, Mapping, NoReturn, Sequence

import httpx
import typer
from openai import OpenAI

from siteembed.cli.init import init_workspace, load_workspace_config
from siteembed.core.config import AppConfig, DEFAULTS_RESOURCE_NAME
from siteembed.core.logging import Logger, configure_logging, get_logger
from siteembed.core.paths import WorkspacePaths, resolve_workspace
from siteembed.core.secrets import EnvSecretResolver
from siteembed.modules.embeddings import (
    EmbeddingQueue,
    EmbeddingRecordRepository,
    JsonContentSource,
    QueueRunner,
    SemanticSearch,
    SiteEmbedError,
    StoreRegistry,
    VectorStore,
    WorkItem,
    build_embedding_client,
    build_worker,
    collection_for,
    create_default_store_registry,
    resolve_pipeline_settings,
)
from siteembed.modules.embeddings.queue import DEFAULT_MAX_ATTEMPTS
from siteembed.modules.embeddings.settings import PipelineSettings

_app_help = (
    "Keep CMS content embeddings in sync with a vector database."
    "\n\n"
    "Use `siteembed init` to bootstrap a workspace and `siteembed.toml`."
)


@dataclass(slots=True)
class _AppOptions:
    workspace: Path | None
    log_level: str | None


@dataclass(slots=True)
class CLIContext:
    """Shared context carried across commands once config is loaded."""

    paths: WorkspacePaths
    config: AppConfig
    settings: PipelineSettings
    logger: Logger


def _env_workspace(environ: Mapping[str, str]) -> Path | None:
    value = environ.get("SITEEMBED_WORKSPACE")
    return Path(value).expanduser() if value else None


def _fail(action: str, error: Exception, *, logger: Logger | None) -> NoReturn:
    typer.secho(f"{action} failed: {error}", fg=typer.colors.RED, err=True)
    if logger is not None:
        logger.error(
            "cli-action-failed",
            action=action,
            error_type=error.__class__.__name__,
            error=str(error),
        )
    raise typer.Exit(code=1) from error


def _coerce_filter_value(raw: str) -> str | int:
    value = raw.strip()
    return int(value) if value.isdigit() else value


def parse_filters(values: Sequence[str] | None) -> dict[str, Any]:
    """Parse ``key=value`` (or ``key=a,b``) options into a filter mapping.

    Example:
        >>> parse_filters(["bundle=article", "entity_id=1,2"])
        {'bundle': 'article', 'entity_id': (1, 2)}
    """

    filters: dict[str, Any] = {}
    for raw in values or ():
        key, sep, value = raw.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(
                f"Expected KEY=VALUE, got {raw!r}",
                param_hint="--filter",
            )
        parts = [_coerce_filter_value(part) for part in value.split(",")]
        filters[key.strip()] = tuple(parts) if len(parts) > 1 else parts[0]
    return filters


def _echo_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))


def create_app(
    *,
    environ: Mapping[str, str] | None = None,
    store_registry: StoreRegistry | None = None,
    transport: httpx.BaseTransport | None = None,
    openai_client: OpenAI | None = None,
) -> "typer.Typer":
    """Return the Typer application powering the ``siteembed`` CLI.

    The keyword arguments swap the environment, HTTP transport and OpenAI
    client, mainly for tests.
    """

    env = os.environ if environ is None else environ

    app = typer.Typer(
        help=_app_help,
        no_args_is_help=True,
        rich_markup_mode="rich",
    )

    @app.callback()
    def main_callback(
        ctx: typer.Context,
        workspace: Path | None = typer.Option(
            None,
            "--workspace",
            "-w",
            help=(
                "Override the workspace directory (defaults to "
                "SITEEMBED_WORKSPACE or ~/.siteembed)."
            ),
        ),
        log_level: str | None = typer.Option(
            None,
            "--log-level",
            "-l",
            help="Override the logging level (DEBUG/INFO/WARNING/ERROR).",
        ),
    ) -> None:
        ctx.obj = _AppOptions(workspace=workspace, log_level=log_level)

    def _options(ctx: typer.Context) -> _AppOptions:
        options = ctx.find_root().obj
        if not isinstance(options, _AppOptions):
            return _AppOptions(workspace=None, log_level=None)
        return options

    def _load_context(ctx: typer.Context, command: str) -> CLIContext:
        options = _options(ctx)
        try:
            paths = resolve_workspace(
                workspace_override=options.workspace,
                env_override=_env_workspace(env),
            )
        except ValueError as exc:
            typer.secho(f"Workspace error: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc

        if not paths.config_file.exists():
            typer.secho(
                (
                    "Workspace config not found at "
                    f"{paths.config_file}. Run `siteembed init` first."
                ),
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1)

        overrides = {"log_level": options.log_level} if options.log_level else None
        try:
            config = load_workspace_config(
                paths,
                environ=env,
                cli_overrides=overrides,
            )
            settings = resolve_pipeline_settings(
                config, EnvSecretResolver(env)
            )
        except (ValueError, SiteEmbedError) as exc:
            _fail("Loading configuration", exc, logger=None)

        configure_logging(level=config.log_level, workspace_path=paths.workspace)
        logger = get_logger(__name__, command=command)
        return CLIContext(
            paths=paths,
            config=config,
            settings=settings,
            logger=logger,
        )

    def _build_store(context: CLIContext) -> VectorStore:
        registry = store_registry or create_default_store_registry()
        return registry.create(
            context.settings.require_store_plugin(),
            logger=context.logger.bind(component="vector-store"),
            config=context.settings.store_config,
            transport=transport,
        )

    @app.command(
        "init",
        help="Bootstrap a workspace, seed siteembed.toml and the database.",
    )
    def init_command(
        ctx: typer.Context,
        vector_client: str | None = typer.Option(
            None,
            "--vector-client",
            help="Vector client plugin to record (pinecone or milvus).",
        ),
    ) -> None:
        options = _options(ctx)
        try:
            result = init_workspace(
                workspace=options.workspace,
                env_workspace=_env_workspace(env),
                log_level=options.log_level,
                vector_client=vector_client,
                environ=env,
            )
        except (ValueError, OSError) as exc:
            _fail("Workspace initialization", exc, logger=None)

        configure_logging(
            level=result.config.log_level,
            workspace_path=result.paths.workspace,
        )
        logger = get_logger(__name__, command="init")
        logger.info(
            "init-complete",
            workspace=str(result.paths.workspace),
            config_written=result.config_written,
        )

        typer.secho("Workspace initialized", fg=typer.colors.GREEN, bold=True)
        typer.echo(f"  workspace: {result.paths.workspace}")
        typer.echo(f"  config: {result.paths.config_file}")
        typer.echo(f"  database: {result.paths.database_path}")
        typer.echo(f"  defaults: packaged resource ({DEFAULTS_RESOURCE_NAME})")
        typer.echo(f"  log level: {result.config.log_level}")
        plugin = result.config.embeddings.vector_client_plugin or "not set"
        typer.echo(f"  vector client: {plugin}")
        if not result.config_written:
            typer.echo("  note: existing siteembed.toml left untouched")

    @app.command("enqueue", help="Queue one content entity for embedding.")
    def enqueue_command(
        ctx: typer.Context,
        entity_type: str = typer.Argument(..., help="Entity type, e.g. node."),
        entity_id: str = typer.Argument(..., help="Entity id."),
        bundle: str = typer.Argument(..., help="Bundle, e.g. article."),
    ) -> None:
        context = _load_context(ctx, "enqueue")
        try:
            item = WorkItem(
                entity_type=entity_type,
                entity_id=entity_id,
                bundle=bundle,
            )
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc

        queue = EmbeddingQueue(
            context.paths.database_path,
            logger=context.logger,
        )
        queue.ensure_schema()
        queue_id = queue.enqueue(item)
        typer.echo(
            f"Queued {item.entity_type} {item.entity_id} ({item.bundle}) "
            f"as #{queue_id}"
        )

    @app.command("process", help="Drain the work queue through the worker.")
    def process_command(
        ctx: typer.Context,
        content: Path = typer.Option(
            ...,
            "--content",
            "-c",
            help="JSON export of CMS entities to read field values from.",
        ),
        limit: int | None = typer.Option(
            None,
            "--limit",
            min=1,
            help="Maximum number of queue items to claim.",
        ),
        max_attempts: int = typer.Option(
            DEFAULT_MAX_ATTEMPTS,
            "--max-attempts",
            min=1,
            help="Attempts before an item is marked failed.",
        ),
        json_output: bool = typer.Option(False, "--json"),
    ) -> None:
        context = _load_context(ctx, "process")
        repository = EmbeddingRecordRepository(context.paths.database_path)
        repository.ensure_schema()
        queue = EmbeddingQueue(
            context.paths.database_path,
            logger=context.logger.bind(component="queue"),
        )

        try:
            source = JsonContentSource(content)
            worker = build_worker(
                context.settings,
                content=source,
                repository=repository,
                logger=context.logger.bind(component="worker"),
                registry=store_registry,
                transport=transport,
                openai_client=openai_client,
            )
        except SiteEmbedError as exc:
            _fail("Processing", exc, logger=context.logger)

        runner = QueueRunner(
            queue,
            worker,
            logger=context.logger,
            max_attempts=max_attempts,
        )
        try:
            report = runner.drain(limit)
        finally:
            worker.store.close()

        if json_output:
            _echo_json(
                {
                    **report.to_dict(),
                    "items": [s.to_dict() for s in report.summaries],
                }
            )
            return
        payload = report.to_dict()
        typer.secho("Queue processed", fg=typer.colors.GREEN, bold=True)
        for key in sorted(payload):
            typer.echo(f"  {key}: {payload[key]}")

    @app.command("search", help="Find stored field values close to TEXT.")
    def search_command(
        ctx: typer.Context,
        text: str = typer.Argument(..., help="Query text."),
        entity_type: str = typer.Option(
            "node",
            "--entity-type",
            "-t",
            help="Entity type whose collection is searched.",
        ),
        top_k: int = typer.Option(5, "--top-k", "-k", min=1),
        filter_values: list[str] = typer.Option(
            None,
            "--filter",
            "-f",
            metavar="KEY=VALUE",
            help="Metadata filter; repeat for AND, use commas for IN.",
        ),
        json_output: bool = typer.Option(False, "--json"),
    ) -> None:
        context = _load_context(ctx, "search")
        filters = parse_filters(filter_values)
        try:
            store = _build_store(context)
            client = build_embedding_client(
                context.settings,
                logger=context.logger.bind(component="openai"),
                client=openai_client,
            )
            search = SemanticSearch(
                client=client,
                store=store,
                model=context.settings.model,
                logger=context.logger,
                preparer=context.settings.text_preparer(),
            )
            try:
                matches = search.search(
                    text,
                    entity_type=entity_type,
                    top_k=top_k,
                    filters=filters,
                )
            finally:
                store.close()
        except (ValueError, SiteEmbedError) as exc:
            _fail("Search", exc, logger=context.logger)

        if json_output:
            _echo_json(
                [
                    {
                        "id": match.id,
                        "score": match.score,
                        "metadata": dict(match.metadata),
                    }
                    for match in matches
                ]
            )
            return
        if not matches:
            typer.secho("No matches found.", fg=typer.colors.YELLOW)
            return
        for match in matches:
            typer.echo(f"{match.score:.4f}  {match.id}")

    @app.command("stats", help="Show vector store, mirror and queue counts.")
    def stats_command(
        ctx: typer.Context,
        collection: str | None = typer.Option(
            None,
            "--collection",
            help="Limit vector store stats to one namespace/collection.",
        ),
        json_output: bool = typer.Option(False, "--json"),
    ) -> None:
        context = _load_context(ctx, "stats")
        repository = EmbeddingRecordRepository(context.paths.database_path)
        repository.ensure_schema()
        queue = EmbeddingQueue(context.paths.database_path)
        try:
            store = _build_store(context)
            try:
                partitions = store.stats(collection)
            finally:
                store.close()
        except SiteEmbedError as exc:
            _fail("Stats", exc, logger=context.logger)

        payload = {
            "backend": context.settings.vector_client_plugin,
            "partitions": [partition.to_dict() for partition in partitions],
            "local_records": repository.count(),
            "queue": queue.counts(),
        }
        context.logger.info(
            "stats-collected",
            backend=payload["backend"],
            partitions=len(partitions),
            local_records=payload["local_records"],
        )
        if json_output:
            _echo_json(payload)
            return

        typer.secho(
            f"Vector store ({payload['backend']})",
            fg=typer.colors.CYAN,
            bold=True,
        )
        if not partitions:
            typer.echo("  No statistics are available.")
        for partition in partitions:
            label = partition.name or "(default namespace)"
            count = (
                "unknown"
                if partition.record_count is None
                else partition.record_count
            )
            typer.echo(f"  {label}: {count}")
        typer.echo(f"Local records: {payload['local_records']}")
        queue_counts = payload["queue"] or {"pending": 0}
        typer.echo(
            "Queue: "
            + ", ".join(f"{k}={v}" for k, v in sorted(queue_counts.items()))
        )

    @app.command("purge", help="Delete vectors from an entity type's collection.")
    def purge_command(
        ctx: typer.Context,
        entity_type: str = typer.Option(
            ...,
            "--entity-type",
            "-t",
            help="Entity type whose collection is purged.",
        ),
        ids: list[str] = typer.Option(
            None,
            "--id",
            metavar="SOURCE_ID",
            help="Record id to delete; repeatable.",
        ),
        filter_values: list[str] = typer.Option(
            None,
            "--filter",
            "-f",
            metavar="KEY=VALUE",
            help="Delete records whose metadata matches.",
        ),
        delete_all: bool = typer.Option(
            False,
            "--all",
            help="Delete every record in the collection.",
        ),
        yes: bool = typer.Option(
            False,
            "--yes",
            "-y",
            help="Skip the confirmation prompt for --all.",
        ),
    ) -> None:
        context = _load_context(ctx, "purge")
        filters = parse_filters(filter_values)
        if delete_all and (ids or filters):
            raise typer.BadParameter(
                "--all cannot be combined with --id or --filter",
                param_hint="--all",
            )
        if not delete_all and not ids and not filters:
            raise typer.BadParameter(
                "Pass --id, --filter or --all",
                param_hint="--id/--filter/--all",
            )

        try:
            collection = collection_for(entity_type)
        except ValueError as exc:
            raise typer.BadParameter(
                str(exc), param_hint="--entity-type"
            ) from exc

        if delete_all and not yes:
            typer.confirm(
                f"Delete every vector in {collection!r}?",
                abort=True,
            )

        try:
            store = _build_store(context)
            try:
                if delete_all:
                    store.delete_all(collection)
                else:
                    store.delete(collection, ids or (), filters=filters or None)
            finally:
                store.close()
        except SiteEmbedError as exc:
            _fail("Purge", exc, logger=context.logger)

        context.logger.info(
            "purge-complete",
            collection=collection,
            all=delete_all,
            ids=len(ids or ()),
            filters=sorted(filters),
        )
        typer.secho(f"Purged {collection}", fg=typer.colors.GREEN)

    return app


__all__ = ["CLIContext", "create_app", "parse_filters"]
