# operations.py - one function per use case: validate, build, execute, shape
import logging
from datetime import datetime, timezone

import queries
import schemas
from errors import ClientInputError, ConflictError, NotFoundError, StoreIntegrityError
from models import DEFAULT_CURRENCY, KEY_COLUMN

logger = logging.getLogger("credit-api.operations")

REQUIRED_CREATE_FIELDS = (KEY_COLUMN, "APP_STATUS", "CIS_CUSTOMER_NUMBER")


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _application_not_found(app_ref):
    return NotFoundError("Application not found", {"app_ref": app_ref})


def _require_existing(store, app_ref):
    rows = store.execute(queries.build_exists_query(store.settings, app_ref))
    if not rows:
        raise _application_not_found(app_ref)


def _normalize_values(values):
    if "APP_STATUS" in values:
        values["APP_STATUS"] = queries.normalize_status(values["APP_STATUS"])
    if values.get("CIS_CUSTOMER_NUMBER") is not None:
        values["CIS_CUSTOMER_NUMBER"] = values["CIS_CUSTOMER_NUMBER"].upper()
    return values


# ---------------------------------------------------------------------------
# connectivity
# ---------------------------------------------------------------------------

def probe_connection(store):
    settings = store.settings
    result = store.execute(queries.build_probe_query(settings))
    return {
        "message": "DB2 connection successful",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": settings.database_name,
        "schema": settings.db_schema,
        "result": result,
    }


def database_info(store):
    settings = store.settings
    rows = store.execute(queries.build_count_query(settings))
    return {
        "database": settings.database_name,
        "schema": settings.db_schema,
        "table": settings.db_table,
        "total_records": rows[0]["TOTAL"] if rows else 0,
    }


# ---------------------------------------------------------------------------
# reads
# ---------------------------------------------------------------------------

def list_applications(
    store,
    status=None,
    customer_id=None,
    product_code=None,
    min_amount=None,
    max_amount=None,
    limit=None,
    offset=None,
):
    parsed_min = queries.parse_amount("min_amount", min_amount)
    parsed_max = queries.parse_amount("max_amount", max_amount)
    parsed_limit, parsed_offset = queries.parse_pagination(limit, offset)

    statement = queries.build_list_query(
        store.settings,
        status=status,
        customer_id=customer_id,
        product_code=product_code,
        min_amount=parsed_min,
        max_amount=parsed_max,
        limit=parsed_limit,
        offset=parsed_offset,
    )
    rows = store.execute(statement)
    return {
        "count": len(rows),
        "filters": {
            "status": status,
            "customer_id": customer_id,
            "product_code": product_code,
            "min_amount": min_amount,
            "max_amount": max_amount,
        },
        "pagination": {"limit": parsed_limit, "offset": parsed_offset},
        "data": rows,
    }


def get_application(store, app_ref):
    rows = store.execute(queries.build_get_query(store.settings, app_ref))
    if not rows:
        raise _application_not_found(app_ref)
    return {"data": rows[0]}


def get_customer_applications(store, cis_number):
    customer = cis_number.upper()
    rows = store.execute(queries.build_customer_query(store.settings, customer))
    if not rows:
        raise NotFoundError("No applications found for customer", {"cis_number": cis_number})
    return {"customer": customer, "count": len(rows), "applications": rows}


def get_customer_summary(store, cis_number):
    rows = store.execute(queries.build_customer_summary_query(store.settings, cis_number))
    if not rows:
        raise NotFoundError("Customer not found", {"cis_number": cis_number})
    return {"customer_summary": rows[0]}


def search_applications(store, query):
    statement = queries.build_search_query(store.settings, query)
    rows = store.execute(statement)
    return {"query": query, "count": len(rows), "results": rows}


# ---------------------------------------------------------------------------
# writes
# ---------------------------------------------------------------------------

def create_application(store, payload):
    if not isinstance(payload, dict):
        raise ClientInputError("Request body must be a JSON object")
    for field in REQUIRED_CREATE_FIELDS:
        if not payload.get(field):
            raise ClientInputError(f"Missing required field: {field}")

    values = _normalize_values(schemas.validate_fields(payload))
    if not values.get("APP_SUBMITTED_AT"):
        values["APP_SUBMITTED_AT"] = _now()
    if not values.get("REQ_CCY"):
        values["REQ_CCY"] = DEFAULT_CURRENCY

    app_ref = values[KEY_COLUMN]
    statement = queries.build_insert_query(store.settings, values)

    existing = store.execute(queries.build_exists_query(store.settings, app_ref))
    if existing:
        raise ConflictError("Application reference already exists", {"app_ref": app_ref})

    try:
        store.execute_write(statement)
    except StoreIntegrityError as e:
        # the key was taken between the check and the insert
        raise ConflictError("Application reference already exists", {"app_ref": app_ref}) from e

    logger.info("Created application %s for customer %s", app_ref, values["CIS_CUSTOMER_NUMBER"])
    return {
        "message": "Application created successfully",
        "app_ref": app_ref,
        "customer": values["CIS_CUSTOMER_NUMBER"],
    }


def update_status(store, app_ref, status, reason=None):
    statement = queries.build_status_update_query(store.settings, app_ref, status, reason)
    _require_existing(store, app_ref)

    if store.execute_write(statement) == 0:
        raise _application_not_found(app_ref)

    new_status = queries.normalize_status(status)
    logger.info("Application %s status -> %s", app_ref, new_status)
    return {
        "message": "Application status updated",
        "app_ref": app_ref,
        "new_status": new_status,
    }


def update_fields(store, app_ref, updates):
    if not isinstance(updates, dict):
        raise ClientInputError("Request body must be a JSON object")
    # allow-list and emptiness first so the error names the real problem
    fields = queries.update_fields_of(updates)
    values = _normalize_values(schemas.validate_fields({f: updates[f] for f in fields}))
    statement = queries.build_update_fields_query(store.settings, app_ref, values)

    _require_existing(store, app_ref)
    if store.execute_write(statement) == 0:
        raise _application_not_found(app_ref)

    logger.info("Application %s updated fields %s", app_ref, fields)
    return {
        "message": "Application updated successfully",
        "app_ref": app_ref,
        "updated_fields": fields,
    }


def delete_application(store, app_ref):
    statement = queries.build_delete_query(store.settings, app_ref)
    _require_existing(store, app_ref)

    if store.execute_write(statement) == 0:
        raise _application_not_found(app_ref)

    logger.info("Deleted application %s", app_ref)
    return {"message": "Application deleted successfully", "app_ref": app_ref}


# ---------------------------------------------------------------------------
# statistics
# ---------------------------------------------------------------------------

def stats_overview(store):
    rows = store.execute(queries.build_overview_query(store.settings))
    return {"statistics": rows[0] if rows else {}}


def stats_by_status(store):
    return {"statistics_by_status": store.execute(queries.build_stats_by_status_query(store.settings))}


def stats_by_product(store):
    return {"statistics_by_product": store.execute(queries.build_stats_by_product_query(store.settings))}
