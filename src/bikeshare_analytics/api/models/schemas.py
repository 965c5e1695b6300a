"""Pydantic models for API request/response schemas.

These models define the API contracts between clients and the translator.
All models use Pydantic v2 with strict validation.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Query Schemas
# ============================================================================


class QueryRequest(BaseModel):
    """Request to translate and run a natural language question."""

    model_config = ConfigDict(extra="forbid")

    question: str = Field(..., description="Natural language question about the bike-share data")


class QueryResponse(BaseModel):
    """Outcome of one question: generated SQL, its parameters, and the rows (or an error)."""

    model_config = ConfigDict(extra="forbid")

    query: str | None = Field(None, description="Generated SQL with $1..$n placeholders")
    parameters: list[Any] = Field(default_factory=list, description="Positional values for the placeholders")
    result: dict[str, Any] | list[dict[str, Any]] | None = Field(
        None, description="Single row object when exactly one row is returned, else the list of rows"
    )
    error: str | None = Field(None, description="Error message when translation or execution failed")


# ============================================================================
# Schema Introspection Schemas
# ============================================================================


class ColumnInfo(BaseModel):
    """One cataloged column."""

    model_config = ConfigDict(extra="forbid")

    column: str = Field(..., description="Column name")
    data_type: str = Field(..., description="Declared PostgreSQL type")


class SchemaResponse(BaseModel):
    """Cataloged tables and their columns."""

    model_config = ConfigDict(extra="forbid")

    tables: dict[str, list[ColumnInfo]] = Field(..., description="Table name -> columns in ordinal order")


# ============================================================================
# Reference Question Schemas
# ============================================================================


class TestCase(BaseModel):
    """Reference question with its known answer."""

    __test__ = False  # Not a pytest class

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Reference identifier (T-1, T-2, ...)")
    question: str = Field(..., description="Reference question")
    expected: str = Field(..., description="Expected answer on the reference dataset")


class TestCasesResponse(BaseModel):
    """All reference questions."""

    __test__ = False

    model_config = ConfigDict(extra="forbid")

    test_cases: list[TestCase] = Field(..., description="Reference questions and answers")
