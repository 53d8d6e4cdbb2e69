"""
Portable SQL constructs used by the aggregation queries.

Each construct compiles to the native form of the dialects the dashboard runs
against (PostgreSQL and MySQL in production, SQLite in tests).
"""

from sqlalchemy.exc import CompileError
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.expression import FunctionElement
from sqlalchemy.types import Float, Integer


class text_position(FunctionElement):
    """
    1-based position of needle in haystack, 0 when absent.

    Case sensitivity follows the column collation on MySQL; PostgreSQL and
    SQLite compare byte-wise.
    """
    type = Integer()
    name = "text_position"
    inherit_cache = True


@compiles(text_position)
def _text_position_default(element, compiler, **kw):
    haystack, needle = list(element.clauses)
    return "instr(%s, %s)" % (compiler.process(haystack, **kw), compiler.process(needle, **kw))


@compiles(text_position, "postgresql")
def _text_position_pg(element, compiler, **kw):
    haystack, needle = list(element.clauses)
    return "strpos(%s, %s)" % (compiler.process(haystack, **kw), compiler.process(needle, **kw))


class minutes_between(FunctionElement):
    """Elapsed minutes from the first timestamp to the second (NULL if either is NULL)"""
    type = Float()
    name = "minutes_between"
    inherit_cache = True


@compiles(minutes_between)
def _minutes_between_default(element, compiler, **kw):
    raise CompileError(
        f"minutes_between is not supported on dialect {compiler.dialect.name!r}"
    )


@compiles(minutes_between, "postgresql")
def _minutes_between_pg(element, compiler, **kw):
    start, end = list(element.clauses)
    return "(EXTRACT(EPOCH FROM (%s - %s)) / 60.0)" % (
        compiler.process(end, **kw),
        compiler.process(start, **kw),
    )


@compiles(minutes_between, "mysql")
def _minutes_between_mysql(element, compiler, **kw):
    start, end = list(element.clauses)
    return "(TIMESTAMPDIFF(SECOND, %s, %s) / 60.0)" % (
        compiler.process(start, **kw),
        compiler.process(end, **kw),
    )


@compiles(minutes_between, "sqlite")
def _minutes_between_sqlite(element, compiler, **kw):
    start, end = list(element.clauses)
    return "((julianday(%s) - julianday(%s)) * 1440.0)" % (
        compiler.process(end, **kw),
        compiler.process(start, **kw),
    )
