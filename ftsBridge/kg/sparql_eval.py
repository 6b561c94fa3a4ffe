from __future__ import annotations

"""rdflib integration for the external full-text search vocabulary.

:func:`register` installs a custom evaluation function into rdflib's SPARQL
engine. Basic graph patterns that contain ``fts:`` predicates are split into
search calls and ordinary patterns; each call is evaluated by a
:class:`~ftsBridge.fts.operator.SearchOperator` and its rows are joined with
the remaining patterns. ``SERVICE <http://www.bigdata.com/rdf/fts#search>``
blocks are planned on their own.
"""

import contextlib
import itertools
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Sequence

import requests
from rdflib import BNode, Graph, Variable
from rdflib.plugins.sparql import CUSTOM_EVALS
from rdflib.plugins.sparql.algebra import translateGroupGraphPattern
from rdflib.plugins.sparql.evaluate import evalBGP, evalPart
from rdflib.plugins.sparql.sparql import AlreadyBound, FrozenBindings, QueryContext
from rdflib.term import Identifier, Node

from ftsBridge.config.settings import FTSSettings, get_settings
from ftsBridge.fts.deadline import CancellationToken, Clock
from ftsBridge.fts.errors import InvalidVocabularyError
from ftsBridge.fts.operator import SearchOperator
from ftsBridge.fts.planner import SearchCall, Triple, plan, plan_service, split_patterns
from ftsBridge.fts.projector import BindingRow
from ftsBridge.fts.vocabulary import SERVICE_IRI, VOCABULARY

EVAL_NAME = "ftsBridge.search"

# Objects of these predicates are produced by the operator, never substituted.
_OUTPUT_PREDICATES = frozenset({"score", "snippet"})


@dataclass
class _Runtime:
    settings: FTSSettings
    session: requests.Session | None = None
    token: CancellationToken = field(default_factory=CancellationToken)
    operators: list[SearchOperator] = field(default_factory=list)
    clock: Clock = time.monotonic


_RUNTIME: ContextVar[_Runtime | None] = ContextVar("ftsbridge_runtime", default=None)


def _runtime() -> _Runtime:
    runtime = _RUNTIME.get()
    if runtime is None:
        return _Runtime(settings=get_settings())
    return runtime


def _resolve_objects(ctx: QueryContext, triples: Iterable[Triple]) -> list[Triple]:
    resolved: list[Triple] = []
    for s, p, o in triples:
        local = VOCABULARY.local_name(p)
        if local is not None and local not in _OUTPUT_PREDICATES and isinstance(o, Variable):
            value = ctx[o]
            if value is not None:
                o = value
        resolved.append((s, p, o))
    return resolved


def _bound_terms(ctx: QueryContext, triples: Iterable[Triple]) -> set[Node]:
    return {
        term
        for triple in triples
        for term in triple
        if isinstance(term, (Variable, BNode)) and ctx[term] is not None
    }


def _open_operator(call: SearchCall, runtime: _Runtime) -> SearchOperator:
    operator = SearchOperator(
        call,
        settings=runtime.settings,
        session=runtime.session,
        token=runtime.token,
        clock=runtime.clock,
    )
    runtime.operators.append(operator)
    return operator.open()


def _collect_rows(call: SearchCall, runtime: _Runtime) -> list[BindingRow]:
    with _open_operator(call, runtime) as operator:
        return list(operator)


def _extend(ctx: QueryContext, rows: Sequence[BindingRow]) -> QueryContext | None:
    child = ctx.push()
    try:
        for row in rows:
            for var, value in row.items():
                child[var] = value
    except AlreadyBound:
        return None
    return child


def _evaluate_calls(
    ctx: QueryContext,
    calls: Sequence[SearchCall],
    rest: list[Triple],
) -> Iterator[FrozenBindings]:
    runtime = _runtime()
    first, others = calls[0], calls[1:]
    # Only the first call streams; the others are independent and fetched once.
    fetched = [_collect_rows(call, runtime) for call in others]
    with _open_operator(first, runtime) as operator:
        for row in operator:
            for combo in itertools.product(*fetched):
                child = _extend(ctx, (row, *combo))
                if child is None:
                    continue
                yield from evalBGP(child, rest)


def _eval_bgp(ctx: QueryContext, triples: list[Triple]) -> Iterator[FrozenBindings]:
    search, rest = split_patterns(triples)
    search = _resolve_objects(ctx, search)
    calls = plan(
        [*search, *rest],
        bound=_bound_terms(ctx, [*search, *rest]),
        settings=_runtime().settings,
    )
    yield from _evaluate_calls(ctx, calls, rest)


def _collect_triples(pattern: Any, found: list[Triple]) -> None:
    name = getattr(pattern, "name", None)
    if name == "BGP":
        found.extend(tuple(t) for t in pattern.triples)  # type: ignore[misc]
    elif name == "Join":
        _collect_triples(pattern.p1, found)
        _collect_triples(pattern.p2, found)
    else:
        raise InvalidVocabularyError(f"SERVICE fts:search blocks only support triple patterns, found {name}")


def _service_triples(graph: Any) -> list[Triple]:
    pattern = graph
    # Depending on the rdflib release the block arrives in either group form.
    if getattr(pattern, "name", None) in ("GroupGraphPattern", "GroupGraphPatternSub"):
        pattern = translateGroupGraphPattern(pattern)
    found: list[Triple] = []
    _collect_triples(pattern, found)
    return found


def _eval_service(ctx: QueryContext, part: Any) -> Iterator[FrozenBindings]:
    triples = _resolve_objects(ctx, _service_triples(part.get("graph")))
    call = plan_service(triples, bound=_bound_terms(ctx, triples), settings=_runtime().settings)
    yield from _evaluate_calls(ctx, [call], [])


def _search_triples(part: Any) -> list[Triple] | None:
    name = getattr(part, "name", None)
    if name == "BGP":
        triples = [tuple(t) for t in part.triples]
        if any(VOCABULARY.in_namespace(p) for _s, p, _o in triples):
            return triples  # type: ignore[return-value]
    elif name == "ServiceGraphPattern" and part.get("term") == SERVICE_IRI:
        return _service_triples(part.get("graph"))
    return None


def _search_inputs(triples: Iterable[Triple]) -> set[Variable]:
    inputs = set()
    for _s, p, o in triples:
        local = VOCABULARY.local_name(p)
        if local is not None and local not in _OUTPUT_PREDICATES and isinstance(o, Variable):
            inputs.add(o)
    return inputs


def _eval_search_first(ctx: QueryContext, part: Any) -> Iterator[FrozenBindings]:
    # The left side is evaluated once, without the search rows, so any search
    # nested in it also starts from an unbound subject.
    left = list(evalPart(ctx, part.p1))
    for searched in evalPart(ctx, part.p2):
        for row in left:
            if row.compatible(searched):
                yield row.merge(searched)


def _is_search_tree(part: Any) -> bool:
    if getattr(part, "name", None) == "Join":
        return _is_search_tree(part.p1) and _is_search_tree(part.p2)
    return _search_triples(part) is not None


def _eval_independent(ctx: QueryContext, part: Any) -> Iterator[FrozenBindings]:
    fetched = list(evalPart(ctx, part.p2))
    for left in evalPart(ctx, part.p1):
        for right in fetched:
            if left.compatible(right):
                yield left.merge(right)


def evaluate_search(ctx: QueryContext, part: Any):
    """Custom evaluation hook; defers to rdflib for anything else."""

    if part.name == "Join":
        if _is_search_tree(part.p1) and _is_search_tree(part.p2):
            # Two searches never see each other's subjects; join their rows afterwards.
            return _eval_independent(ctx, part)
        # rdflib's lazy join would bind the search subject from the left side.
        # Join the two sides afterwards unless the search reads variables the left side binds.
        triples = _search_triples(part.p2)
        left_vars = part.p1.get("_vars")
        if triples is not None and left_vars is not None and not (_search_inputs(triples) & left_vars):
            return _eval_search_first(ctx, part)
    elif part.name == "BGP":
        triples = [tuple(t) for t in part.triples]
        if any(VOCABULARY.in_namespace(p) for _s, p, _o in triples):
            return _eval_bgp(ctx, triples)  # type: ignore[arg-type]
    elif part.name == "ServiceGraphPattern" and part.get("term") == SERVICE_IRI:
        return _eval_service(ctx, part)
    raise NotImplementedError()


def register() -> None:
    CUSTOM_EVALS[EVAL_NAME] = evaluate_search


def unregister() -> None:
    CUSTOM_EVALS.pop(EVAL_NAME, None)


def is_registered() -> bool:
    return CUSTOM_EVALS.get(EVAL_NAME) is evaluate_search


@contextlib.contextmanager
def enabled():
    """Register the evaluator for the duration of the block."""

    already = is_registered()
    if not already:
        register()
    try:
        yield
    finally:
        if not already:
            unregister()


@dataclass
class FTSQueryResult:
    """Materialised query result plus search-call metadata."""

    type: str
    vars: list[str] = field(default_factory=list)
    rows: list[dict[str, Identifier]] = field(default_factory=list)
    boolean: bool | None = None
    calls: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return any(call["partial"] for call in self.calls)


def _call_report(operator: SearchOperator) -> dict[str, Any]:
    report = operator.call.describe()
    report.update(
        state=operator.state.value,
        partial=operator.partial,
        hits_received=operator.hits_received,
        rows_emitted=operator.rows_emitted,
    )
    return report


def fts_query(
    graph: Graph,
    sparql: str,
    *,
    settings: FTSSettings | None = None,
    session: requests.Session | None = None,
    token: CancellationToken | None = None,
    init_bindings: Mapping[str, Identifier] | None = None,
    init_ns: Mapping[str, Any] | None = None,
    clock: Clock = time.monotonic,
) -> FTSQueryResult:
    """Run ``sparql`` against ``graph`` with the search vocabulary enabled.

    Rows are materialised inside the call so that every search operator is
    closed before returning; partial-result warnings are collected from them.
    """

    runtime = _Runtime(
        settings=settings or get_settings(),
        session=session,
        token=token or CancellationToken(),
        clock=clock,
    )
    reset_token = _RUNTIME.set(runtime)
    try:
        with enabled():
            result = graph.query(sparql, initBindings=init_bindings, initNs=init_ns or {})
            outcome = FTSQueryResult(type=result.type)
            if result.type == "SELECT":
                outcome.vars = [str(v) for v in result.vars or []]
                outcome.rows = [row.asdict() for row in result]  # type: ignore[union-attr]
            elif result.type == "ASK":
                outcome.boolean = bool(result.askAnswer)
            else:
                raise ValueError(f"Unsupported query form for fts_query: {result.type}")
    finally:
        _RUNTIME.reset(reset_token)
        for operator in runtime.operators:
            operator.close()
    outcome.calls = [_call_report(op) for op in runtime.operators]
    outcome.warnings = [w for op in runtime.operators for w in op.warnings]
    return outcome


__all__ = [
    "EVAL_NAME",
    "evaluate_search",
    "register",
    "unregister",
    "is_registered",
    "enabled",
    "FTSQueryResult",
    "fts_query",
]
