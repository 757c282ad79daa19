# queries.py - statement templates and positional parameters for the applications table
#
# Every builder is pure: it takes the immutable Settings and request intent and
# returns a Statement. Caller-supplied values only ever travel in ``params``;
# the SQL text holds the configured table name, allow-listed column names and
# already-validated integers.
import math
from typing import Any, Mapping, NamedTuple, Optional, Tuple

from errors import ClientInputError
from models import COLUMN_NAMES, KEY_COLUMN, VALID_STATUSES

DEFAULT_LIMIT = 100
DEFAULT_OFFSET = 0
SEARCH_MIN_LENGTH = 2
SEARCH_MAX_ROWS = 50
SEARCH_COLUMNS = (
    "CUST_FIRST_NAME",
    "CUST_LAST_NAME",
    "CUST_EMAIL",
    "CIS_CUSTOMER_NUMBER",
    "APP_REF",
)

_LIMIT_OFFSET_BACKENDS = {"sqlite"}


class Statement(NamedTuple):
    sql: str
    params: Tuple[Any, ...] = ()


def _window(settings, limit: int, offset: int = 0) -> str:
    if settings.backend in _LIMIT_OFFSET_BACKENDS:
        return f" LIMIT {int(limit)} OFFSET {int(offset)}"
    if offset:
        return f" OFFSET {int(offset)} ROWS FETCH FIRST {int(limit)} ROWS ONLY"
    return f" FETCH FIRST {int(limit)} ROWS ONLY"


def _parse_int(name: str, value, default: int, minimum: int) -> int:
    if value is None or value == "":
        return default
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise ClientInputError(f"{name} must be an integer", {name: value})
    if parsed < minimum:
        raise ClientInputError(f"{name} must be >= {minimum}", {name: value})
    return parsed


def parse_pagination(limit=None, offset=None) -> Tuple[int, int]:
    """Coerce limit/offset; non-numeric or out-of-range input is rejected."""
    return (
        _parse_int("limit", limit, DEFAULT_LIMIT, 1),
        _parse_int("offset", offset, DEFAULT_OFFSET, 0),
    )


def parse_amount(name: str, value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        amount = float(str(value).strip())
    except ValueError:
        raise ClientInputError(f"{name} must be a number", {name: value})
    if not math.isfinite(amount):
        raise ClientInputError(f"{name} must be a finite number", {name: value})
    return amount


def normalize_status(status) -> str:
    if not status or not isinstance(status, str):
        raise ClientInputError("Missing required field: status")
    normalized = status.strip().upper()
    if normalized not in VALID_STATUSES:
        raise ClientInputError(
            f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}",
            {"status": status},
        )
    return normalized


# ---------------------------------------------------------------------------
# reads
# ---------------------------------------------------------------------------

def build_probe_query(settings) -> Statement:
    if settings.backend == "db2":
        return Statement("SELECT 1 AS TEST FROM SYSIBM.SYSDUMMY1")
    return Statement("SELECT 1 AS TEST")


def build_count_query(settings) -> Statement:
    return Statement(f"SELECT COUNT(*) AS TOTAL FROM {settings.qualified_table}")


def build_list_query(
    settings,
    status: Optional[str] = None,
    customer_id: Optional[str] = None,
    product_code: Optional[str] = None,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = DEFAULT_OFFSET,
) -> Statement:
    clauses = []
    params = []

    for column, value in (
        ("APP_STATUS", status),
        ("CIS_CUSTOMER_NUMBER", customer_id),
        ("REQ_PRODUCT_CODE", product_code),
    ):
        if value:
            clauses.append(f"{column} = ?")
            params.append(value.upper())

    if min_amount is not None:
        clauses.append("REQ_AMOUNT >= ?")
        params.append(min_amount)
    if max_amount is not None:
        clauses.append("REQ_AMOUNT <= ?")
        params.append(max_amount)

    sql = f"SELECT * FROM {settings.qualified_table}"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY APP_SUBMITTED_AT DESC"
    sql += _window(settings, limit, offset)
    return Statement(sql, tuple(params))


def build_get_query(settings, app_ref: str) -> Statement:
    return Statement(
        f"SELECT * FROM {settings.qualified_table} WHERE {KEY_COLUMN} = ?", (app_ref,)
    )


def build_exists_query(settings, app_ref: str) -> Statement:
    return Statement(
        f"SELECT {KEY_COLUMN} FROM {settings.qualified_table} WHERE {KEY_COLUMN} = ?",
        (app_ref,),
    )


def build_customer_query(settings, cis_number: str) -> Statement:
    return Statement(
        f"SELECT * FROM {settings.qualified_table} "
        "WHERE CIS_CUSTOMER_NUMBER = ? ORDER BY APP_SUBMITTED_AT DESC",
        (cis_number.upper(),),
    )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_search_query(settings, term) -> Statement:
    term = (term or "").strip()
    if len(term) < SEARCH_MIN_LENGTH:
        raise ClientInputError(
            f"Search query must be at least {SEARCH_MIN_LENGTH} characters"
        )
    pattern = f"%{_escape_like(term.upper())}%"
    where = " OR ".join(f"UPPER({column}) LIKE ? ESCAPE '\\'" for column in SEARCH_COLUMNS)
    sql = (
        f"SELECT * FROM {settings.qualified_table} WHERE {where} "
        "ORDER BY APP_SUBMITTED_AT DESC"
    )
    sql += _window(settings, SEARCH_MAX_ROWS)
    return Statement(sql, (pattern,) * len(SEARCH_COLUMNS))


# ---------------------------------------------------------------------------
# writes
# ---------------------------------------------------------------------------

def build_insert_query(settings, values: Mapping[str, Any]) -> Statement:
    unknown = [key for key in values if key not in COLUMN_NAMES]
    if unknown:
        raise ClientInputError(f"Unknown fields: {', '.join(unknown)}", {"fields": unknown})
    columns = ", ".join(COLUMN_NAMES)
    placeholders = ", ".join("?" for _ in COLUMN_NAMES)
    return Statement(
        f"INSERT INTO {settings.qualified_table} ({columns}) VALUES ({placeholders})",
        tuple(values.get(column) for column in COLUMN_NAMES),
    )


def build_status_update_query(
    settings, app_ref: str, status: str, reason: Optional[str] = None
) -> Statement:
    status = normalize_status(status)
    assignments = ["APP_STATUS = ?"]
    params = [status]
    if reason and status == "REJECTED":
        assignments.append("ELIG_FAIL_REASONS = ?")
        params.append(reason)
    params.append(app_ref)
    return Statement(
        f"UPDATE {settings.qualified_table} SET {', '.join(assignments)} "
        f"WHERE {KEY_COLUMN} = ?",
        tuple(params),
    )


def update_fields_of(updates: Mapping[str, Any]) -> list:
    """Column names an update touches, in the order supplied, key excluded."""
    fields = [key for key in updates if key != KEY_COLUMN]
    if not fields:
        raise ClientInputError("No fields to update")
    unknown = [key for key in fields if key not in COLUMN_NAMES]
    if unknown:
        raise ClientInputError(f"Unknown fields: {', '.join(unknown)}", {"fields": unknown})
    return fields


def build_update_fields_query(settings, app_ref: str, updates: Mapping[str, Any]) -> Statement:
    fields = update_fields_of(updates)
    set_clause = ", ".join(f"{field} = ?" for field in fields)
    params = [updates[field] for field in fields]
    params.append(app_ref)
    return Statement(
        f"UPDATE {settings.qualified_table} SET {set_clause} WHERE {KEY_COLUMN} = ?",
        tuple(params),
    )


def build_delete_query(settings, app_ref: str) -> Statement:
    return Statement(
        f"DELETE FROM {settings.qualified_table} WHERE {KEY_COLUMN} = ?", (app_ref,)
    )


# ---------------------------------------------------------------------------
# aggregates
# ---------------------------------------------------------------------------

def _status_count(status: str, alias: str) -> str:
    return f"COALESCE(SUM(CASE WHEN APP_STATUS = '{status}' THEN 1 ELSE 0 END), 0) AS {alias}"


def build_customer_summary_query(settings, cis_number: str) -> Statement:
    # contact columns may differ between a customer's applications; one row per CIS
    sql = f"""
        SELECT
            CIS_CUSTOMER_NUMBER,
            MAX(CUST_FIRST_NAME) AS CUST_FIRST_NAME,
            MAX(CUST_LAST_NAME) AS CUST_LAST_NAME,
            MAX(CUST_EMAIL) AS CUST_EMAIL,
            MAX(CUST_PHONE) AS CUST_PHONE,
            COUNT(*) AS TOTAL_APPLICATIONS,
            {_status_count('APPROVED', 'APPROVED_COUNT')},
            {_status_count('REJECTED', 'REJECTED_COUNT')},
            {_status_count('IN_REVIEW', 'IN_REVIEW_COUNT')},
            {_status_count('PENDING', 'PENDING_COUNT')},
            SUM(REQ_AMOUNT) AS TOTAL_REQUESTED,
            AVG(REQ_AMOUNT) AS AVG_REQUESTED
        FROM {settings.qualified_table}
        WHERE CIS_CUSTOMER_NUMBER = ?
        GROUP BY CIS_CUSTOMER_NUMBER
    """
    return Statement(sql, (cis_number.upper(),))


def build_overview_query(settings) -> Statement:
    sql = f"""
        SELECT
            COUNT(*) AS TOTAL_APPLICATIONS,
            {_status_count('APPROVED', 'APPROVED')},
            {_status_count('REJECTED', 'REJECTED')},
            {_status_count('IN_REVIEW', 'IN_REVIEW')},
            {_status_count('PENDING', 'PENDING')},
            AVG(REQ_AMOUNT) AS AVG_AMOUNT,
            SUM(REQ_AMOUNT) AS TOTAL_AMOUNT,
            MIN(REQ_AMOUNT) AS MIN_AMOUNT,
            MAX(REQ_AMOUNT) AS MAX_AMOUNT,
            COUNT(DISTINCT CIS_CUSTOMER_NUMBER) AS UNIQUE_CUSTOMERS
        FROM {settings.qualified_table}
    """
    return Statement(sql)


def build_stats_by_status_query(settings) -> Statement:
    sql = f"""
        SELECT
            APP_STATUS,
            COUNT(*) AS COUNT,
            AVG(REQ_AMOUNT) AS AVG_AMOUNT,
            SUM(REQ_AMOUNT) AS TOTAL_AMOUNT,
            MIN(REQ_AMOUNT) AS MIN_AMOUNT,
            MAX(REQ_AMOUNT) AS MAX_AMOUNT
        FROM {settings.qualified_table}
        GROUP BY APP_STATUS
        ORDER BY COUNT(*) DESC
    """
    return Statement(sql)


def build_stats_by_product_query(settings) -> Statement:
    sql = f"""
        SELECT
            REQ_PRODUCT_CODE,
            REQ_PRODUCT_NAME,
            COUNT(*) AS COUNT,
            AVG(REQ_AMOUNT) AS AVG_AMOUNT,
            SUM(REQ_AMOUNT) AS TOTAL_AMOUNT
        FROM {settings.qualified_table}
        WHERE REQ_PRODUCT_CODE IS NOT NULL
        GROUP BY REQ_PRODUCT_CODE, REQ_PRODUCT_NAME
        ORDER BY COUNT(*) DESC
    """
    return Statement(sql)
