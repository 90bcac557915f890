"""Query text parser.

Turns a SQL subset into a QueryRequest. sqlglot does the tokenizing and
grammar work; this module walks its tree and keeps only the constructs the
executor supports:

    SELECT <items> FROM <table> [alias]
    [LEFT [OUTER] JOIN <table> [alias] ON <col> = <col>]
    [WHERE <col> <op> <literal>]
    [ORDER BY <col> [ASC|DESC]]
    [LIMIT <n>]

Anything else raises ParseError. Names are not resolved here; that is the
planner's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from ..errors import ParseError

_ALLOWED_CLAUSES = {"expressions", "from", "from_", "joins", "where", "order", "limit"}

_COMPARISONS = {
    exp.GT: ">",
    exp.GTE: ">=",
    exp.LT: "<",
    exp.LTE: "<=",
    exp.EQ: "=",
    exp.NEQ: "!=",
}
# Operator to use when the literal is written on the left
_FLIPPED = {">": "<", ">=": "<=", "<": ">", "<=": ">=", "=": "=", "!=": "!="}


@dataclass(frozen=True)
class ColumnRef:
    name: str
    qualifier: Optional[str] = None

    def display(self) -> str:
        return f"{self.qualifier}.{self.name}" if self.qualifier else self.name


@dataclass(frozen=True)
class FunctionCall:
    """A call by name.

    sqlglot folds some spellings into one node (``len`` and ``length`` both
    parse as LENGTH), so ``aliases`` lists every other name the call may
    have been written with; the planner takes the first one registered.
    """

    name: str
    args: Tuple["Expr", ...]
    aliases: Tuple[str, ...] = ()

    @property
    def candidates(self) -> Tuple[str, ...]:
        return (self.name,) + tuple(a for a in self.aliases if a != self.name)

    def display(self) -> str:
        return f"{self.name}({', '.join(a.display() for a in self.args)})"


Expr = Union[ColumnRef, FunctionCall]


@dataclass(frozen=True)
class Star:
    qualifier: Optional[str] = None


@dataclass(frozen=True)
class SelectItem:
    expr: Union[ColumnRef, FunctionCall, Star]
    alias: Optional[str] = None


@dataclass(frozen=True)
class TableRef:
    name: str
    alias: Optional[str] = None

    @property
    def ref(self) -> str:
        """Name the rest of the query uses to qualify this table's columns."""
        return self.alias or self.name


@dataclass(frozen=True)
class JoinClause:
    table: TableRef
    left_key: ColumnRef
    right_key: ColumnRef


@dataclass(frozen=True)
class Predicate:
    column: ColumnRef
    op: str
    value: Union[int, float, str]


@dataclass(frozen=True)
class SortKey:
    key: ColumnRef
    descending: bool = False


@dataclass(frozen=True)
class QueryRequest:
    text: str
    projection: Tuple[SelectItem, ...]
    source: TableRef
    join: Optional[JoinClause] = None
    predicate: Optional[Predicate] = None
    sort: Optional[SortKey] = None
    limit: Optional[int] = None

    @property
    def tables(self) -> Tuple[TableRef, ...]:
        if self.join is None:
            return (self.source,)
        return (self.source, self.join.table)


def _arg(node: exp.Expression, *keys: str) -> Any:
    for key in keys:
        value = node.args.get(key)
        if value:
            return value
    return None


def _column(node: exp.Expression) -> ColumnRef:
    if not isinstance(node, exp.Column) or isinstance(node.this, exp.Star):
        raise ParseError(f"Expected a column reference, got: {node.sql()}")
    if node.args.get("db") or node.args.get("catalog"):
        raise ParseError(f"Column references may have at most one qualifier: {node.sql()}")
    return ColumnRef(name=node.name, qualifier=node.table or None)


def _expression(node: exp.Expression) -> Expr:
    if isinstance(node, exp.Column):
        return _column(node)
    if isinstance(node, exp.AggFunc):
        raise ParseError(f"Aggregate functions are not supported: {node.sql()}")
    if isinstance(node, exp.Anonymous):
        return FunctionCall(
            name=node.name.lower(), args=tuple(_expression(a) for a in node.expressions)
        )
    if isinstance(node, exp.Func):
        args = []
        for key in node.arg_types:
            value = node.args.get(key)
            if isinstance(value, list):
                args.extend(value)
            elif isinstance(value, exp.Expression):
                args.append(value)
        names = [type(node).sql_name().lower()]
        names.extend(n.lower() for n in getattr(type(node), "_sql_names", ()) or ())
        return FunctionCall(
            name=names[0],
            args=tuple(_expression(a) for a in args),
            aliases=tuple(dict.fromkeys(names[1:])),
        )
    raise ParseError(f"Unsupported expression: {node.sql()}")


def _select_item(node: exp.Expression) -> SelectItem:
    alias = None
    if isinstance(node, exp.Alias):
        alias = node.alias
        node = node.this
    if isinstance(node, exp.Star):
        item: Union[ColumnRef, FunctionCall, Star] = Star()
    elif isinstance(node, exp.Column) and isinstance(node.this, exp.Star):
        item = Star(qualifier=node.table or None)
    else:
        item = _expression(node)
    if alias and isinstance(item, Star):
        raise ParseError("A star projection cannot be aliased")
    return SelectItem(expr=item, alias=alias or None)


def _table(node: Any) -> TableRef:
    if not isinstance(node, exp.Table) or not node.name:
        sql = node.sql() if isinstance(node, exp.Expression) else node
        raise ParseError(f"Expected a table name, got: {sql}")
    if node.args.get("db") or node.args.get("catalog"):
        raise ParseError(f"Qualified table names are not supported: {node.sql()}")
    return TableRef(name=node.name, alias=node.alias or None)


def _join(node: exp.Join) -> JoinClause:
    side = (node.side or "").upper()
    kind = (node.kind or "").upper()
    if side != "LEFT" or kind not in ("", "OUTER"):
        raise ParseError(f"Only LEFT [OUTER] JOIN is supported, got: {node.sql()}")
    if node.args.get("using"):
        raise ParseError("JOIN ... USING is not supported; use ON a.key = b.key")
    on = node.args.get("on")
    while isinstance(on, exp.Paren):
        on = on.this
    if not isinstance(on, exp.EQ):
        raise ParseError("JOIN requires an ON clause of the form a.key = b.key")
    return JoinClause(
        table=_table(node.this), left_key=_column(on.this), right_key=_column(on.expression)
    )


def _literal(node: exp.Expression) -> Optional[Union[int, float, str]]:
    negate = False
    if isinstance(node, exp.Neg):
        negate = True
        node = node.this
    if not isinstance(node, exp.Literal):
        return None
    if node.is_string:
        if negate:
            raise ParseError(f"Cannot negate a string literal: {node.sql()}")
        return str(node.this)
    text = str(node.this)
    try:
        value: Union[int, float] = int(text)
    except ValueError:
        try:
            value = float(text)
        except ValueError as e:
            raise ParseError(f"Invalid numeric literal: {text}") from e
    return -value if negate else value


def _predicate(node: exp.Expression) -> Predicate:
    while isinstance(node, exp.Paren):
        node = node.this
    op = _COMPARISONS.get(type(node))
    if op is None:
        raise ParseError(
            f"WHERE supports a single comparison (>, >=, <, <=, =, !=), got: {node.sql()}"
        )
    left, right = node.this, node.expression
    if isinstance(left, exp.Column):
        value = _literal(right)
        column = _column(left)
    elif isinstance(right, exp.Column):
        value = _literal(left)
        column = _column(right)
        op = _FLIPPED[op]
    else:
        raise ParseError(f"WHERE must compare a column with a literal: {node.sql()}")
    if value is None:
        raise ParseError(f"WHERE must compare a column with a literal: {node.sql()}")
    return Predicate(column=column, op=op, value=value)


def _sort(node: exp.Order) -> SortKey:
    keys = node.expressions
    if len(keys) != 1:
        raise ParseError(f"ORDER BY supports exactly one key, got {len(keys)}")
    ordered = keys[0]
    target = ordered.this if isinstance(ordered, exp.Ordered) else ordered
    if not isinstance(target, exp.Column):
        raise ParseError(f"ORDER BY key must be a column or output name: {target.sql()}")
    return SortKey(key=_column(target), descending=bool(ordered.args.get("desc")))


def _limit(node: exp.Expression) -> int:
    if node.args.get("offset"):
        raise ParseError("OFFSET is not supported")
    value = node.args.get("expression") or node.args.get("this")
    if not isinstance(value, exp.Literal) or value.is_string:
        raise ParseError(f"LIMIT must be a non-negative integer: {node.sql()}")
    try:
        n = int(str(value.this))
    except ValueError as e:
        raise ParseError(f"LIMIT must be a non-negative integer: {value.this}") from e
    if n < 0:
        raise ParseError(f"LIMIT must be a non-negative integer: {n}")
    return n


def parse_query(text: str) -> QueryRequest:
    """Parse query text into a QueryRequest.

    Raises:
        ParseError: If the text is empty, malformed, not a single SELECT, or
            uses a construct outside the supported subset.

    Examples:
        >>> req = parse_query("SELECT id FROM transactions WHERE amount > 1000 LIMIT 5")
        >>> req.source.name, req.predicate.op, req.limit
        ('transactions', '>', 5)
    """
    if not isinstance(text, str) or not text.strip():
        raise ParseError("Query text is empty")
    try:
        statements = [s for s in sqlglot.parse(text) if s is not None]
    except SqlglotError as e:
        raise ParseError(f"Malformed query: {e}") from e
    if len(statements) != 1:
        raise ParseError(f"Expected exactly one statement, got {len(statements)}")
    tree = statements[0]
    if not isinstance(tree, exp.Select):
        raise ParseError(f"Only SELECT queries are supported, got {tree.key.upper()}")

    for key, value in tree.args.items():
        if value and key not in _ALLOWED_CLAUSES:
            raise ParseError(f"Unsupported clause: {key.upper()}")
    if tree.find(exp.Subquery) is not None:
        raise ParseError("Subqueries are not supported")

    from_node = _arg(tree, "from", "from_")
    if from_node is None:
        raise ParseError("Query must have a FROM clause")
    if from_node.expressions:
        raise ParseError("FROM supports a single table; use LEFT JOIN for a second one")
    source = _table(from_node.this)

    joins = tree.args.get("joins") or []
    if len(joins) > 1:
        raise ParseError("At most one JOIN is supported")
    join = _join(joins[0]) if joins else None

    projection = tuple(_select_item(e) for e in tree.expressions)
    if not projection:
        raise ParseError("SELECT list is empty")

    where = tree.args.get("where")
    order = tree.args.get("order")
    limit = tree.args.get("limit")
    return QueryRequest(
        text=text,
        projection=projection,
        source=source,
        join=join,
        predicate=_predicate(where.this) if where is not None else None,
        sort=_sort(order) if order is not None else None,
        limit=_limit(limit) if limit is not None else None,
    )
