"""Validation for ad-hoc read-only queries against the transaction store.

Query text is tokenized and reduced to a ``ParsedQuery``: a single statement,
its kind, and every table it references. Anything that is not a single
``SELECT`` (optionally behind ``WITH``) or an introspection ``PRAGMA`` on an
allowed table is rejected with a human-readable reason.

The store additionally executes accepted statements under a SQLite
authorizer (``sandbox_authorizer``), so a statement that slips past the
lexical checks still cannot read other tables or write anything.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
import re
from typing import Literal, cast

from asher.adapters.db.models import ALLOWED_TABLES
from asher.core.errors import QueryRejected

# SQLite authorizer codes (sqlite3.h); identical across sqlite3 builds
SQLITE_OK = 0
SQLITE_DENY = 1
SQLITE_PRAGMA = 19
SQLITE_READ = 20
SQLITE_SELECT = 21
SQLITE_FUNCTION = 31
SQLITE_RECURSIVE = 33

SANDBOX_PRAGMAS = frozenset(
    {"table_info", "table_xinfo", "index_list", "foreign_key_list"}
)

_FORBIDDEN_KEYWORDS = frozenset(
    {
        "INSERT",
        "UPDATE",
        "DELETE",
        "CREATE",
        "DROP",
        "ALTER",
        "ATTACH",
        "DETACH",
        "PRAGMA",
        "VACUUM",
        "REINDEX",
        "ANALYZE",
    }
)

# Words that end a table reference instead of naming its alias
_CLAUSE_KEYWORDS = frozenset(
    {
        "WHERE",
        "JOIN",
        "LEFT",
        "RIGHT",
        "FULL",
        "INNER",
        "OUTER",
        "CROSS",
        "NATURAL",
        "ON",
        "USING",
        "GROUP",
        "ORDER",
        "LIMIT",
        "OFFSET",
        "HAVING",
        "WINDOW",
        "UNION",
        "EXCEPT",
        "INTERSECT",
        "INDEXED",
        "NOT",
        "AS",
    }
)

_TOKEN_RE = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<line_comment>--[^\n]*)
    | (?P<block_comment>/\*.*?(?:\*/|\Z))
    | (?P<string>'(?:[^']|'')*')
    | (?P<qident>"(?:[^"]|"")*"|`(?:[^`]|``)*`|\[[^\]]*\])
    | (?P<number>\d+(?:\.\d*)?(?:[eE][+-]?\d+)?|\.\d+)
    | (?P<word>[A-Za-z_][A-Za-z0-9_$]*)
    | (?P<param>[?:@$][A-Za-z0-9_]*)
    | (?P<op>\|\||<<|>>|<=|>=|==|!=|<>|[-+*/%&|~<>=(),.;])
    """,
    re.VERBOSE | re.DOTALL,
)

TokenKind = Literal["string", "qident", "number", "word", "param", "op"]


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    text: str
    start: int
    end: int

    @property
    def upper(self) -> str:
        return self.text.upper() if self.kind == "word" else ""

    @property
    def name(self) -> str:
        """Identifier value with quoting removed."""
        if self.kind == "qident":
            inner = self.text[1:-1]
            quote = self.text[0]
            if quote in "\"`":
                return inner.replace(quote * 2, quote)
            return inner
        if self.kind == "string":
            return self.text[1:-1].replace("''", "'")
        return self.text

    def is_op(self, value: str) -> bool:
        return self.kind == "op" and self.text == value

    def is_identifier(self) -> bool:
        return self.kind in ("word", "qident")


@dataclass(frozen=True, slots=True)
class ParsedQuery:
    """A validated single statement, ready for execution."""

    kind: Literal["select", "pragma"]
    sql: str
    tables: tuple[str, ...]


def tokenize(sql: str) -> list[Token]:
    """Split SQL into tokens, dropping whitespace and comments."""
    tokens: list[Token] = []
    pos = 0
    while pos < len(sql):
        match = _TOKEN_RE.match(sql, pos)
        if match is None:
            raise QueryRejected(f"Invalid SQL syntax near position {pos}")
        kind = match.lastgroup
        if kind not in ("ws", "line_comment", "block_comment"):
            token_kind = cast(TokenKind, kind)
            tokens.append(Token(token_kind, match.group(), match.start(), match.end()))
        pos = match.end()
    return tokens


def _split_statements(tokens: list[Token]) -> list[list[Token]]:
    statements: list[list[Token]] = [[]]
    for token in tokens:
        if token.is_op(";"):
            statements.append([])
        else:
            statements[-1].append(token)
    return [stmt for stmt in statements if stmt]


def _skip_parens(tokens: list[Token], index: int) -> int:
    """Return the index just past the parenthesized group opening at index."""
    depth = 0
    for i in range(index, len(tokens)):
        if tokens[i].is_op("("):
            depth += 1
        elif tokens[i].is_op(")"):
            depth -= 1
            if depth == 0:
                return i + 1
    raise QueryRejected("Invalid SQL syntax: unbalanced parentheses")


def _collect_cte_names(tokens: list[Token]) -> set[str]:
    if not tokens or tokens[0].upper != "WITH":
        return set()

    names: set[str] = set()
    i = 1
    if i < len(tokens) and tokens[i].upper == "RECURSIVE":
        i += 1
    while i < len(tokens) and tokens[i].is_identifier():
        names.add(tokens[i].name.lower())
        i += 1
        if i < len(tokens) and tokens[i].is_op("("):
            i = _skip_parens(tokens, i)
        if i < len(tokens) and tokens[i].upper == "AS":
            i += 1
        while i < len(tokens) and tokens[i].upper in ("NOT", "MATERIALIZED"):
            i += 1
        if i < len(tokens) and tokens[i].is_op("("):
            i = _skip_parens(tokens, i)
        if i < len(tokens) and tokens[i].is_op(","):
            i += 1
            continue
        break
    return names


def _read_table_ref(tokens: list[Token], i: int) -> tuple[str | None, int]:
    """Read one FROM/JOIN item; returns (table name or None, next index)."""
    if i >= len(tokens):
        raise QueryRejected("Invalid SQL syntax: missing table name")

    token = tokens[i]
    if token.is_op("("):
        # Subquery or parenthesized join; inner FROMs are scanned separately
        return None, _skip_parens(tokens, i)
    if not token.is_identifier():
        raise QueryRejected(f"Invalid SQL syntax near '{token.text}'")

    name = token.name
    i += 1
    if i + 1 < len(tokens) and tokens[i].is_op(".") and tokens[i + 1].is_identifier():
        schema = name
        name = tokens[i + 1].name
        i += 2
        if schema.lower() != "main":
            name = f"{schema}.{name}"
    if i < len(tokens) and tokens[i].is_op("("):
        # Table-valued function; its name is checked like a table
        i = _skip_parens(tokens, i)
    return name, i


def _skip_alias(tokens: list[Token], i: int) -> int:
    if i < len(tokens) and tokens[i].upper == "AS":
        return i + 2
    if i < len(tokens):
        token = tokens[i]
        if token.kind == "qident":
            return i + 1
        if token.kind == "word" and token.upper not in _CLAUSE_KEYWORDS:
            return i + 1
    return i


def _is_distinct_from(tokens: list[Token], i: int) -> bool:
    # The FROM in "a IS [NOT] DISTINCT FROM b" is a comparison operator
    if i < 2 or tokens[i - 1].upper != "DISTINCT":
        return False
    return tokens[i - 2].upper in ("IS", "NOT")


def _referenced_tables(tokens: list[Token]) -> list[str]:
    tables: list[str] = []
    for i, token in enumerate(tokens):
        if token.upper not in ("FROM", "JOIN"):
            continue
        if _is_distinct_from(tokens, i):
            continue
        j = i + 1
        while True:
            name, j = _read_table_ref(tokens, j)
            if name is not None:
                tables.append(name)
            j = _skip_alias(tokens, j)
            if token.upper == "FROM" and j < len(tokens) and tokens[j].is_op(","):
                j += 1
                continue
            break
    return tables


def _uses_forbidden_keyword(tokens: list[Token]) -> bool:
    for i, token in enumerate(tokens):
        if token.upper in _FORBIDDEN_KEYWORDS:
            return True
        # REPLACE is also a scalar function; only REPLACE INTO writes
        if (
            token.upper == "REPLACE"
            and i + 1 < len(tokens)
            and tokens[i + 1].upper == "INTO"
        ):
            return True
    return False


def _canonical_table(name: str, allowed: Iterable[str]) -> str | None:
    lowered = name.lower()
    for table in allowed:
        if table == lowered:
            return table
    return None


def _parse_pragma(tokens: list[Token], allowed: frozenset[str]) -> ParsedQuery:
    i = 1
    if i + 1 < len(tokens) and tokens[i + 1].is_op("."):
        # Schema-qualified pragma, e.g. PRAGMA main.table_info(...)
        if tokens[i].name.lower() != "main":
            raise QueryRejected("PRAGMA on attached databases is not allowed")
        i += 2
    if i >= len(tokens) or tokens[i].kind != "word":
        raise QueryRejected("Invalid SQL syntax: missing PRAGMA name")

    pragma = tokens[i].text.lower()
    if pragma not in SANDBOX_PRAGMAS:
        raise QueryRejected(f"PRAGMA {pragma} is not allowed")
    i += 1

    if i < len(tokens) and tokens[i].is_op("("):
        closing = _skip_parens(tokens, i)
        args = tokens[i + 1 : closing - 1]
        rest = tokens[closing:]
    elif i < len(tokens) and tokens[i].is_op("="):
        args = tokens[i + 1 : i + 2]
        rest = tokens[i + 2 :]
    else:
        raise QueryRejected(f"PRAGMA {pragma} requires a table name")

    if len(args) != 1 or args[0].kind not in ("word", "qident", "string") or rest:
        raise QueryRejected(f"Invalid SQL syntax in PRAGMA {pragma}")

    table = args[0].name
    canonical = _canonical_table(table, allowed)
    if canonical is None:
        raise QueryRejected(f"Access to table not allowed in PRAGMA: {table}")

    return ParsedQuery(
        kind="pragma",
        sql=f'PRAGMA {pragma}("{canonical}")',
        tables=(canonical,),
    )


def parse_read_only_query(
    sql: str, allowed_tables: frozenset[str] = ALLOWED_TABLES
) -> ParsedQuery:
    """
    Validate query text and reduce it to a single executable statement.

    Args:
        sql: Untrusted query text
        allowed_tables: Lowercase names of the tables the query may touch

    Returns:
        ParsedQuery describing the one statement to run

    Raises:
        QueryRejected: With a human-readable reason when the query is not a
            single read-only statement over the allowed tables
    """
    if not isinstance(sql, str):
        raise QueryRejected("Query must be a string")

    tokens = tokenize(sql)
    statements = _split_statements(tokens)
    if not statements:
        raise QueryRejected("Empty query")
    if len(statements) > 1:
        raise QueryRejected("Multiple statements are not allowed")

    stmt = statements[0]
    head = stmt[0].upper
    if head == "PRAGMA":
        return _parse_pragma(stmt, allowed_tables)
    if head not in ("SELECT", "WITH") or _uses_forbidden_keyword(stmt):
        raise QueryRejected("Only SELECT statements are allowed")

    cte_names = _collect_cte_names(stmt)
    tables: list[str] = []
    disallowed: list[str] = []
    for name in _referenced_tables(stmt):
        lowered = name.lower()
        if lowered in cte_names:
            continue
        canonical = _canonical_table(name, allowed_tables)
        if canonical is None:
            if name not in disallowed:
                disallowed.append(name)
        elif canonical not in tables:
            tables.append(canonical)

    if disallowed:
        raise QueryRejected(
            f"Access to table(s) not allowed: {', '.join(disallowed)}"
        )

    return ParsedQuery(
        kind="select",
        sql=sql[stmt[0].start : stmt[-1].end],
        tables=tuple(tables),
    )


def sandbox_authorizer(
    allowed_tables: frozenset[str] = ALLOWED_TABLES,
) -> Callable[[int, str | None, str | None, str | None, str | None], int]:
    """Build a SQLite authorizer that only permits reads of allowed tables."""

    def authorize(
        action: int,
        arg1: str | None,
        arg2: str | None,
        db_name: str | None,
        trigger: str | None,
    ) -> int:
        if action in (SQLITE_SELECT, SQLITE_FUNCTION, SQLITE_RECURSIVE):
            return SQLITE_OK
        if action == SQLITE_READ:
            if arg1 is not None and arg1.lower() in allowed_tables:
                return SQLITE_OK
            return SQLITE_DENY
        if action == SQLITE_PRAGMA:
            if (
                arg1 is not None
                and arg1.lower() in SANDBOX_PRAGMAS
                and arg2 is not None
                and arg2.lower() in allowed_tables
            ):
                return SQLITE_OK
            return SQLITE_DENY
        return SQLITE_DENY

    return authorize
