"""
SQL expressions that bucket ``occurred_at`` values.

Each expression compiles to PostgreSQL by default and has a SQLite variant
used by the in-memory test store. Labels are strings so both dialects return
the same values:

    day    2025-01-31
    week   2025-W05   (ISO year and ISO week number)
    month  2025-01

``hour_of_day`` yields 0-23 and ``day_of_week`` yields 1 (Monday) to
7 (Sunday).
"""

from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.expression import FunctionElement
from sqlalchemy.types import Integer, String

from backend.app.errors import ValidationError
from shared.enums import Granularity


class day_bucket(FunctionElement):
    type = String()
    name = "day_bucket"
    inherit_cache = True


class week_bucket(FunctionElement):
    type = String()
    name = "week_bucket"
    inherit_cache = True


class month_bucket(FunctionElement):
    type = String()
    name = "month_bucket"
    inherit_cache = True


class hour_of_day(FunctionElement):
    type = Integer()
    name = "hour_of_day"
    inherit_cache = True


class day_of_week(FunctionElement):
    type = Integer()
    name = "day_of_week"
    inherit_cache = True


@compiles(day_bucket)
def _day_bucket(element, compiler, **kw):
    return "to_char(%s, 'YYYY-MM-DD')" % compiler.process(element.clauses, **kw)


@compiles(day_bucket, "sqlite")
def _day_bucket_sqlite(element, compiler, **kw):
    return "strftime('%%Y-%%m-%%d', %s)" % compiler.process(element.clauses, **kw)


@compiles(week_bucket)
def _week_bucket(element, compiler, **kw):
    return "to_char(%s, 'IYYY-\"W\"IW')" % compiler.process(element.clauses, **kw)


@compiles(week_bucket, "sqlite")
def _week_bucket_sqlite(element, compiler, **kw):
    # The Thursday of an ISO week decides both its year and its week number.
    thursday = "date(%s, '-3 days', 'weekday 4')" % compiler.process(element.clauses, **kw)
    return (
        "printf('%s-W%02d', strftime('%Y', {t}), "
        "(CAST(strftime('%j', {t}) AS INTEGER) - 1) / 7 + 1)"
    ).format(t=thursday)


@compiles(month_bucket)
def _month_bucket(element, compiler, **kw):
    return "to_char(%s, 'YYYY-MM')" % compiler.process(element.clauses, **kw)


@compiles(month_bucket, "sqlite")
def _month_bucket_sqlite(element, compiler, **kw):
    return "strftime('%%Y-%%m', %s)" % compiler.process(element.clauses, **kw)


@compiles(hour_of_day)
def _hour_of_day(element, compiler, **kw):
    return "CAST(EXTRACT(HOUR FROM %s) AS INTEGER)" % compiler.process(element.clauses, **kw)


@compiles(hour_of_day, "sqlite")
def _hour_of_day_sqlite(element, compiler, **kw):
    return "CAST(strftime('%%H', %s) AS INTEGER)" % compiler.process(element.clauses, **kw)


@compiles(day_of_week)
def _day_of_week(element, compiler, **kw):
    return "CAST(EXTRACT(ISODOW FROM %s) AS INTEGER)" % compiler.process(element.clauses, **kw)


@compiles(day_of_week, "sqlite")
def _day_of_week_sqlite(element, compiler, **kw):
    return "((CAST(strftime('%%w', %s) AS INTEGER) + 6) %% 7 + 1)" % compiler.process(
        element.clauses, **kw
    )


_BUCKETS = {
    Granularity.DAY: day_bucket,
    Granularity.WEEK: week_bucket,
    Granularity.MONTH: month_bucket,
}


def parse_granularity(value) -> Granularity:
    try:
        return Granularity(value)
    except ValueError:
        raise ValidationError(f"Unsupported granularity: {value}")


def time_bucket(granularity: Granularity, column):
    return _BUCKETS[parse_granularity(granularity)](column)
