from __future__ import annotations

"""Top-level CLI for running external full-text searches."""

import json
from pathlib import Path
from typing import Any, Iterable, Mapping

import click
from pyparsing import ParseBaseException
from rdflib import Graph, Literal, Variable
from tabulate import tabulate

from ftsBridge import __version__
from ftsBridge.config.settings import get_settings
from ftsBridge.fts.errors import FTSError
from ftsBridge.fts.operator import SearchOperator
from ftsBridge.fts.planner import plan
from ftsBridge.fts.vocabulary import VOCABULARY, EndpointKind, TargetKind
from ftsBridge.kg.sparql_eval import fts_query


def _render(value: Any) -> str:
    return "" if value is None else str(value)


def _echo_rows(rows: Iterable[Mapping[str, Any]], headers: list[str], as_json: bool) -> None:
    rows = list(rows)
    if as_json:
        payload = [{key: _render(row.get(key)) for key in headers if row.get(key) is not None} for row in rows]
        click.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return
    click.echo(tabulate([[_render(row.get(key)) for key in headers] for row in rows], headers=headers))


def _echo_warnings(warnings: Iterable[str]) -> None:
    for warning in warnings:
        click.echo(f"warning: {warning}", err=True)


@click.group()
@click.version_option(__version__)
def cli() -> None:  # pragma: no cover - simple wrapper
    """ftsBridge command line."""


@cli.command()
def vocab() -> None:
    """List the fts: predicates recognised in SPARQL queries."""

    rows = [[p.local_name, str(p.iri), p.obj, p.cardinality] for p in VOCABULARY]
    click.echo(tabulate(rows, headers=["Name", "IRI", "Object", "Cardinality"]))


@cli.command(name="config")
def show_config() -> None:
    """Print the effective process-wide settings."""

    click.echo(json.dumps(get_settings().to_dict(), sort_keys=True, indent=2))


@cli.command()
@click.argument("query")
@click.option("--endpoint", help="Search endpoint URL; defaults to FTS_DEFAULT_ENDPOINT.")
@click.option(
    "--endpoint-type",
    type=click.Choice([k.value for k in EndpointKind], case_sensitive=False),
    help="Endpoint kind.",
)
@click.option("--params", help="Endpoint-native query parameters, e.g. 'defType=dismax'.")
@click.option(
    "--target-type",
    type=click.Choice([k.value for k in TargetKind], case_sensitive=False),
    default=TargetKind.URI.value,
    show_default=True,
)
@click.option("--timeout", "timeout_ms", type=click.IntRange(min=0), help="Deadline in milliseconds.")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of a table.")
def search(
    query: str,
    endpoint: str | None,
    endpoint_type: str | None,
    params: str | None,
    target_type: str,
    timeout_ms: int | None,
    as_json: bool,
) -> None:
    """Run QUERY against a search endpoint and print subject, score and snippet."""

    res, score, snippet = Variable("res"), Variable("score"), Variable("snippet")
    patterns = [
        (res, VOCABULARY.predicate("search"), Literal(query)),
        (res, VOCABULARY.predicate("targetType"), Literal(target_type)),
        (res, VOCABULARY.predicate("score"), score),
        (res, VOCABULARY.predicate("snippet"), snippet),
    ]
    optional = {"endpoint": endpoint, "endpointType": endpoint_type, "params": params, "timeout": timeout_ms}
    for name, value in optional.items():
        if value is not None:
            patterns.append((res, VOCABULARY.predicate(name), Literal(str(value))))
    try:
        (call,) = plan(patterns)
        with SearchOperator(call) as operator:
            rows = [{str(var): value for var, value in row.items()} for row in operator]
    except FTSError as exc:
        raise click.ClickException(f"{exc.kind}: {exc}")
    _echo_rows(rows, ["res", "score", "snippet"], as_json)
    _echo_warnings(operator.warnings)


@cli.command()
@click.option("--query", "query_text", help="SPARQL query text.")
@click.option(
    "--query-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File containing the SPARQL query.",
)
@click.option(
    "--data",
    "data_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="RDF file(s) to load into the local graph.",
)
@click.option("--format", "data_format", default=None, help="rdflib parser format; guessed when omitted.")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of a table.")
def query(
    query_text: str | None,
    query_file: Path | None,
    data_files: tuple[Path, ...],
    data_format: str | None,
    as_json: bool,
) -> None:
    """Evaluate a SPARQL query that may use fts: predicates."""

    if bool(query_text) == bool(query_file):
        raise click.UsageError("Provide exactly one of --query or --query-file")
    sparql = query_text or query_file.read_text(encoding="utf-8")  # type: ignore[union-attr]
    graph = Graph()
    for path in data_files:
        graph.parse(path, format=data_format)
    try:
        result = fts_query(graph, sparql)
    except FTSError as exc:
        raise click.ClickException(f"{exc.kind}: {exc}")
    except ParseBaseException as exc:
        raise click.ClickException(f"SPARQL syntax error: {exc}")
    except ValueError as exc:
        raise click.ClickException(str(exc))
    if result.type == "ASK":
        click.echo(json.dumps({"boolean": result.boolean, "partial": result.partial}))
    else:
        _echo_rows(result.rows, result.vars, as_json)
    _echo_warnings(result.warnings)


def main() -> None:  # pragma: no cover - console entry point
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
