"""CLI for kgrecall."""

import asyncio
import json
import logging
from pathlib import Path

import click

from .errors import RecallError
from .graph.neo4j_store import Neo4jGraphStore
from .ingest.run import IngestionRun
from .retrieval.config import DEFAULT_QUERY_OPTIONS, QueryOptions
from .retrieval.explain import DEFAULT_TOP_N, explain, render_trace
from .retrieval.pipeline import ask, prepare_query
from .retrieval.renderer import source_info
from .settings import Settings
from .vector.chunk_store import ChunkStore
from .vector.embedder import Embedder


def _settings() -> Settings:
    try:
        return Settings.from_env()
    except RecallError as e:
        raise click.ClickException(str(e))


def _check_query(query: str, options: QueryOptions) -> None:
    """Reject an empty query or bad options before any model or store is opened."""
    try:
        prepare_query(query, options)
    except RecallError as e:
        raise click.ClickException(str(e))


def _run(coro):
    """Run a coroutine, turning domain errors into CLI errors."""
    try:
        return asyncio.run(coro)
    except RecallError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")


def _query_options(
    top_k: int,
    depth: int,
    limit: int,
    no_boost: bool,
    boost_factor: float,
    docs: tuple[str, ...] = (),
    direct_top_k: int = DEFAULT_QUERY_OPTIONS.direct_top_k,
) -> QueryOptions:
    return QueryOptions(
        similarity_top_k=top_k,
        path_depth=depth,
        limit=limit,
        cross_check_boost=not no_boost,
        cross_check_boost_factor=boost_factor,
        direct_top_k=direct_top_k,
    ).with_filter(docs)


def _graph_options(f):
    f = click.option("--boost-factor", type=float, default=DEFAULT_QUERY_OPTIONS.cross_check_boost_factor, help="Cross-check boost factor")(f)
    f = click.option("--no-boost", is_flag=True, help="Disable cross-check boosting")(f)
    f = click.option("--limit", type=int, default=DEFAULT_QUERY_OPTIONS.limit, help="Max triplets from expansion")(f)
    f = click.option("--depth", type=int, default=DEFAULT_QUERY_OPTIONS.path_depth, help="Graph expansion depth")(f)
    f = click.option("--top-k", "-k", type=int, default=DEFAULT_QUERY_OPTIONS.similarity_top_k, help="Seed entities from vector search")(f)
    return f


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline stages")
def cli(verbose: bool):
    """kgrecall - Graph-augmented recall over uploaded documents."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("ask")
@click.argument("query", type=str)
@_graph_options
@click.option("--doc", "docs", multiple=True, help="Only documents whose id contains this (repeatable)")
@click.option("--direct-top-k", type=int, default=DEFAULT_QUERY_OPTIONS.direct_top_k, help="Direct chunk matches")
def ask_cmd(
    query: str,
    top_k: int,
    depth: int,
    limit: int,
    no_boost: bool,
    boost_factor: float,
    docs: tuple[str, ...],
    direct_top_k: int,
):
    """Retrieve ranked context for a question."""
    settings = _settings()
    options = _query_options(top_k, depth, limit, no_boost, boost_factor, docs, direct_top_k)
    _check_query(query, options)

    async def run():
        embedder = Embedder(settings.embedding_model, retry=settings.retry)
        store = Neo4jGraphStore(
            settings.neo4j_uri,
            settings.neo4j_user,
            settings.neo4j_password,
            embedding_dimensions=embedder.dimensions,
        )
        chunks = ChunkStore(settings.chunk_db, dimensions=embedder.dimensions)
        try:
            return await ask(
                query, store=store, chunks=chunks, embedder=embedder, options=options
            )
        finally:
            await store.close()

    response = _run(run())
    counters = response.counters
    click.echo(f"Query: {response.query}")
    click.echo(
        f"Vector matches: {counters.vector_match_count} | "
        f"semantic triplets: {counters.semantic_triplet_count} | "
        f"metadata triplets: {counters.metadata_triplet_count} | "
        f"direct chunks: {counters.direct_chunk_count} | merged: {counters.merged_count}"
    )
    for warning in response.warnings:
        click.echo(f"Warning: {warning}")

    click.echo(f"\n{len(response.results)} results:\n")
    for i, r in enumerate(response.results, 1):
        click.echo(f"{i}. [{r.score:.3f}] {r.channel} ({source_info(r)})")
        preview = r.text.replace("\n", " ")
        click.echo(f"   {preview[:200]}{'...' if len(preview) > 200 else ''}")


@cli.command("explain")
@click.argument("query", type=str)
@_graph_options
@click.option("--top", "top_n", type=int, default=DEFAULT_TOP_N, help="Facts to show")
def explain_cmd(
    query: str,
    top_k: int,
    depth: int,
    limit: int,
    no_boost: bool,
    boost_factor: float,
    top_n: int,
):
    """Show how the graph path scored and boosted each fact."""
    settings = _settings()
    options = _query_options(top_k, depth, limit, no_boost, boost_factor)
    _check_query(query, options)

    async def run():
        embedder = Embedder(settings.embedding_model, retry=settings.retry)
        store = Neo4jGraphStore(
            settings.neo4j_uri,
            settings.neo4j_user,
            settings.neo4j_password,
            embedding_dimensions=embedder.dimensions,
        )
        try:
            return await explain(
                query, store=store, embedder=embedder, options=options, top_n=top_n
            )
        finally:
            await store.close()

    click.echo(render_trace(_run(run())))


@cli.command("list-docs")
@click.option("--db", "-d", type=click.Path(path_type=Path), default=None, help="Chunk database (default: $KGRECALL_CHUNK_DB)")
def list_docs(db: Path | None):
    """List indexed documents with chunk and image counts."""
    if db is None:
        db = _settings().chunk_db
    if not db.exists():
        raise click.ClickException(f"Chunk database not found: {db}")

    documents = ChunkStore(db).list_documents()
    if not documents:
        click.echo("No documents indexed.")
        return

    click.echo(f"{len(documents)} documents:\n")
    for doc in documents:
        click.echo(f"  {doc['document_id']}: {doc['chunks']} chunks, {doc['images']} images")


@cli.command("index-chunks")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def index_chunks(path: Path):
    """Embed and index chunk records from a JSONL file."""
    settings = _settings()

    records = []
    with path.open(encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise click.ClickException(f"{path}:{line_no}: invalid JSON ({e})")

    async def run():
        embedder = Embedder(settings.embedding_model, retry=settings.retry)
        chunks = ChunkStore(settings.chunk_db, dimensions=embedder.dimensions)
        return await IngestionRun(embedder, chunks, retry=settings.retry).ingest(records)

    click.echo(f"Indexing {len(records)} records -> {settings.chunk_db}")
    stats = _run(run())

    click.echo("\nIndex Complete!")
    click.echo(f"Indexed:  {stats['chunks_indexed']}")
    click.echo(f"Invalid:  {stats['invalid_records']}")
    click.echo(f"Skipped:  {stats['skipped_embeddings']}")
    click.echo(f"Cached:   {stats['cache_hits']}")

    if stats["error_details"]:
        click.echo("\nError Details:")
        for err in stats["error_details"]:
            click.echo(f"  - {err}")


@cli.command("init-indexes")
@click.option("--dimensions", type=int, default=384, help="Entity embedding dimensions")
def init_indexes(dimensions: int):
    """Create the Neo4j constraints and entity vector index."""
    settings = _settings()

    async def run():
        store = Neo4jGraphStore(
            settings.neo4j_uri,
            settings.neo4j_user,
            settings.neo4j_password,
            embedding_dimensions=dimensions,
        )
        try:
            await store.verify()
            await store.ensure_vector_index()
        finally:
            await store.close()

    _run(run())
    click.echo(f"Indexes ready on {settings.neo4j_uri}")


if __name__ == "__main__":
    cli()
