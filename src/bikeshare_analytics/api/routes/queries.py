"""Query API routes.

Endpoints:
- POST /api/query - Translate a question to SQL and run it
- GET /api/schema - Cataloged tables and columns
- GET /api/test-cases - Reference questions with known answers
"""

from datetime import date
from decimal import Decimal
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from bikeshare_analytics.api.dependencies import CatalogDep, DataStoreDep, TranslatorDep
from bikeshare_analytics.api.models import schemas
from bikeshare_analytics.core.errors import InvalidQuestionError, QueryExecutionError, TranslationError

logger = structlog.get_logger()

router = APIRouter()

REFERENCE_QUESTIONS = [
    schemas.TestCase(
        id="T-1",
        question="What was the average ride time for journeys that started at Congress Avenue in June 2025?",
        expected="25 minutes",
    ),
    schemas.TestCase(
        id="T-2",
        question="Which docking point saw the most departures during the first week of June 2025?",
        expected="Congress Avenue",
    ),
    schemas.TestCase(
        id="T-3",
        question="How many kilometres were ridden by women on rainy days in June 2025?",
        expected="6.8 km",
    ),
]


def _json_value(value: Any) -> Any:
    """Make a parameter or cell JSON-friendly (dates as ISO strings, decimals as floats)."""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, list):
        return [_json_value(v) for v in value]
    return value


def _error_response(status_code: int, message: str, query: str | None = None) -> JSONResponse:
    body = schemas.QueryResponse(query=query, parameters=[], result=None, error=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


# ============================================================================
# POST /api/query - Translate and Execute
# ============================================================================


@router.post("/query", response_model=schemas.QueryResponse)
def run_query(
    request: schemas.QueryRequest,
    translator: TranslatorDep,
    datastore: DataStoreDep,
) -> schemas.QueryResponse | JSONResponse:
    """Translate a natural language question and execute the generated SQL.

    Args:
        request: Question payload
        translator: Query translator (injected)
        datastore: Data store for execution (injected)

    Returns:
        QueryResponse: Generated SQL, parameters and result rows

    Example:
        POST /api/query
        {"question": "Which docking point saw the most departures during the first week of June 2025?"}

        Response (200):
        {
            "query": "SELECT s.station_name, COUNT(*) AS departure_count FROM trips t ...",
            "parameters": ["2025-06-01", "2025-06-08"],
            "result": {"station_name": "Congress Avenue", "departure_count": 12},
            "error": null
        }
    """
    try:
        plan = translator.translate(request.question)
    except InvalidQuestionError as e:
        logger.info("query_rejected", error=e.message)
        return _error_response(status.HTTP_400_BAD_REQUEST, e.message)
    except TranslationError as e:
        logger.info("query_translation_failed", error=e.message, error_type=type(e).__name__)
        return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, e.message)

    try:
        rows = datastore.execute(plan.query_text, list(plan.parameters))
    except QueryExecutionError as e:
        logger.error("query_execution_failed", error=e.message, query=plan.query_text)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, e.message, query=plan.query_text)

    json_rows = [{key: _json_value(value) for key, value in row.items()} for row in rows]
    logger.info("query_executed", rows=len(json_rows), primary_table=plan.primary_table)
    return schemas.QueryResponse(
        query=plan.query_text,
        parameters=[_json_value(p) for p in plan.parameters],
        result=json_rows[0] if len(json_rows) == 1 else json_rows,
        error=None,
    )


# ============================================================================
# GET /api/schema - Catalog Introspection
# ============================================================================


@router.get("/schema", response_model=schemas.SchemaResponse)
def get_schema(catalog: CatalogDep) -> schemas.SchemaResponse:
    """Return the cataloged tables and their columns.

    Populates the catalog on first use.

    Raises:
        HTTPException: 503 if the database cannot be reached
    """
    try:
        catalog.refresh_if_empty()
    except SQLAlchemyError as e:
        logger.error("schema_catalog_unavailable", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database schema is unavailable",
        ) from e
    tables = {
        table: [schemas.ColumnInfo(column=c.column_name, data_type=c.data_type) for c in catalog.columns_for(table)]
        for table in catalog.tables()
    }
    return schemas.SchemaResponse(tables=tables)


# ============================================================================
# GET /api/test-cases - Reference Questions
# ============================================================================


@router.get("/test-cases", response_model=schemas.TestCasesResponse)
def get_test_cases() -> schemas.TestCasesResponse:
    """Reference questions and the answers expected on the reference dataset."""
    return schemas.TestCasesResponse(test_cases=REFERENCE_QUESTIONS)
