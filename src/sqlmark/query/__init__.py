"""Exchange format, schema validation and the execution backend client."""

from .client import ClientSettings, QueryExecutionClient
from .models import (
    ExecuteQueryRequest,
    ExecuteQueryResponse,
    GenericDataType,
    QueryArgument,
    QueryDocument,
    QueryParameter,
    ResultColumn,
    SourceDto,
    arguments_to_dict,
)
from .schema import validate_document

__all__ = [
    "ClientSettings",
    "ExecuteQueryRequest",
    "ExecuteQueryResponse",
    "GenericDataType",
    "QueryArgument",
    "QueryDocument",
    "QueryExecutionClient",
    "QueryParameter",
    "ResultColumn",
    "SourceDto",
    "arguments_to_dict",
    "validate_document",
]
