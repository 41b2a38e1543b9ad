"""CLI commands for the knowledge engine."""

import asyncio
import json
import logging
import re
import sys

import click

from knowledge_engine.config import settings


class SecretRedactingFilter(logging.Filter):
    """Filter to redact sensitive information from logs."""

    # Patterns for common secrets
    SECRET_PATTERNS = [
        (re.compile(r"(api[_-]?key[\s:=]+)[\w.-]{20,}", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(token[\s:=]+)[\w.-]{20,}", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(password[\s:=]+)\S+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(bearer\s+)[\w.-]+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"\b(sk-|pat)[\w.-]{16,}"), "[REDACTED]"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact secrets from log messages."""
        if isinstance(record.msg, str):
            for pattern, replacement in self.SECRET_PATTERNS:
                record.msg = pattern.sub(replacement, record.msg)
        return True


logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    """Timestamped console logging with secret redaction."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    root = logging.getLogger()
    # Logger filters skip records propagated from child loggers; handlers see all of them
    for target in [root, *root.handlers]:
        if not any(isinstance(f, SecretRedactingFilter) for f in target.filters):
            target.addFilter(SecretRedactingFilter())
    if verbose:
        root.setLevel(logging.DEBUG)


def _parse_tables(tables: str | None) -> list[str] | None:
    if not tables:
        return None
    return [t.strip() for t in tables.split(",") if t.strip()] or None


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """Notebook knowledge engine CLI."""
    configure_logging(verbose)


@cli.command(name="init-db")
def init_database() -> None:
    """Create database tables."""
    asyncio.run(_init_database())


async def _init_database() -> None:
    from knowledge_engine.db.database import init_db

    await init_db()
    click.echo("Database initialized.")


@cli.command(name="sync-airtable")
@click.option("--tables", "-t", help="Comma-separated table names or ids (defaults to all)")
@click.option("--no-embed", is_flag=True, help="Store records without embeddings")
@click.option("--partner", "-p", help="Tenant that owns the records (defaults to AIRTABLE_PARTNER_ID)")
def sync_airtable(tables: str | None, no_embed: bool, partner: str | None) -> None:
    """Pull Airtable tables into the local store."""
    asyncio.run(_sync_airtable(_parse_tables(tables), not no_embed, partner))


async def _sync_airtable(tables: list[str] | None, embed: bool, partner: str | None) -> None:
    from knowledge_engine.airtable.sync import AirtableSyncEngine
    from knowledge_engine.db.database import init_db
    from knowledge_engine.exceptions import ConfigurationError

    await init_db()
    engine = AirtableSyncEngine(partner_id=partner)
    try:
        result = await engine.sync_all_tables(tables=tables, embed_records=embed)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"\nSync {'complete' if result.success else 'failed'}!")
    for table in result.tables:
        line = f"  {table.name}: {table.synced} synced ({table.status})"
        if table.error:
            line += f" - {table.error}"
        click.echo(line)
    click.echo(f"  Total records: {result.total_records}")
    click.echo(f"  Errors: {len(result.errors)}")
    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument("table_name")
def reembed(table_name: str) -> None:
    """Regenerate embeddings for one synced table."""
    asyncio.run(_reembed(table_name))


async def _reembed(table_name: str) -> None:
    from knowledge_engine.airtable.sync import AirtableSyncEngine
    from knowledge_engine.db.database import init_db

    await init_db()
    result = await AirtableSyncEngine().reembed_table(table_name)
    click.echo(f"Re-embedded {result.updated} records in {table_name}")
    for error in result.errors:
        click.echo(f"  {error}", err=True)


@cli.command(name="delete-table")
@click.argument("table_name")
@click.confirmation_option(prompt="Delete every synced record of this table?")
def delete_table(table_name: str) -> None:
    """Remove all locally synced records of one table."""
    asyncio.run(_delete_table(table_name))


async def _delete_table(table_name: str) -> None:
    from knowledge_engine.airtable.sync import AirtableSyncEngine
    from knowledge_engine.db.database import init_db

    await init_db()
    result = await AirtableSyncEngine().delete_synced_records(table_name)
    if result.error:
        click.echo(f"Error: {result.error}", err=True)
        sys.exit(1)
    click.echo(f"Deleted {result.deleted} records from {table_name}")


@cli.command(name="sync-status")
def sync_status() -> None:
    """Show the last Airtable sync and per-table record counts."""
    asyncio.run(_sync_status())


async def _sync_status() -> None:
    from knowledge_engine.airtable.sync import AirtableSyncEngine
    from knowledge_engine.db.database import init_db

    await init_db()
    status = await AirtableSyncEngine().get_sync_status()

    click.echo(f"Airtable configured: {'yes' if status.configured else 'no'}")
    if status.status:
        click.echo(f"Last sync: {status.status['last_sync']} ({status.status['status']})")
        click.echo(f"Records: {status.status['item_count']}")
        if status.status.get("last_error"):
            click.echo(f"Last error: {status.status['last_error']}")
    else:
        click.echo("Never synced")
    for table in status.tables:
        click.echo(f"  {table['name']}: {table['count']}")


@cli.command(name="push-record")
@click.argument("table_name")
@click.argument("fields_json")
@click.option("--record-id", "-r", help="Update this record instead of creating one")
def push_record(table_name: str, fields_json: str, record_id: str | None) -> None:
    """Create or update one Airtable record from a JSON object of fields."""
    try:
        fields = json.loads(fields_json)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Invalid JSON: {e}", param_hint="FIELDS_JSON") from e
    if not isinstance(fields, dict):
        raise click.BadParameter("Fields must be a JSON object", param_hint="FIELDS_JSON")
    asyncio.run(_push_record(table_name, record_id, fields))


async def _push_record(table_name: str, record_id: str | None, fields: dict) -> None:
    from knowledge_engine.airtable.sync import AirtableSyncEngine
    from knowledge_engine.db.database import init_db
    from knowledge_engine.webhooks.dispatcher import WebhookDispatcher

    await init_db()
    engine = AirtableSyncEngine(dispatcher=WebhookDispatcher())
    result = await engine.push_record(table_name, record_id, fields)
    if not result.success:
        click.echo(f"Error: {result.error}", err=True)
        sys.exit(1)
    click.echo(f"Pushed record {result.record.id} to {table_name}")


@cli.command()
@click.argument("query")
@click.option("--tenant", "-t", required=True, help="Partner whose sources are searched")
@click.option("--top-k", "-k", type=int, default=None, help="Number of chunks to keep")
@click.option("--threshold", type=float, default=None, help="Minimum similarity")
@click.option("--show-context", is_flag=True, help="Print the assembled context")
def search(
    query: str,
    tenant: str,
    top_k: int | None,
    threshold: float | None,
    show_context: bool,
) -> None:
    """Run a grounded search and print citations."""
    asyncio.run(_search(query, tenant, top_k, threshold, show_context))


async def _search(
    query: str,
    tenant: str,
    top_k: int | None,
    threshold: float | None,
    show_context: bool,
) -> None:
    from knowledge_engine.db.database import init_db
    from knowledge_engine.search.retriever import RetrievalEngine, RetrievalOptions, ground_query
    from knowledge_engine.vectorstore.embeddings import EmbeddingService
    from knowledge_engine.vectorstore.store import KnowledgeStore

    await init_db()
    options = RetrievalOptions(
        tenant_id=tenant,
        top_k=top_k or settings.RAG_TOP_K,
        similarity_threshold=threshold if threshold is not None else settings.RAG_SIMILARITY_THRESHOLD,
    )
    engine = RetrievalEngine(EmbeddingService(), KnowledgeStore())
    grounding = await ground_query(engine, query, options)

    click.echo(f"Confidence: {grounding.confidence.level} ({grounding.confidence.explanation})")
    if not grounding.citations:
        click.echo("No sources found.")
        return
    for i, citation in enumerate(grounding.citations, 1):
        click.echo(
            f"\n{i}. [{citation.type.value}] {citation.source_name} "
            f"({citation.relevance_score:.2f}, {citation.relevance_label})"
        )
        click.echo(f"   {citation.excerpt}")
        if citation.edit_url:
            click.echo(f"   {citation.edit_url}")
    if show_context:
        click.echo(f"\n--- context ---\n{grounding.context}")


if __name__ == "__main__":
    cli()
