"""Async HTTP client for the query execution backend."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import MalformedDocumentError, QueryExecutionError
from .models import (
    DEFAULT_ERROR_MESSAGE,
    ExecuteQueryRequest,
    ExecuteQueryResponse,
    QueryArgument,
    QueryDocument,
)

LOGGER = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network error or server unavailable"


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to reach the execution backend."""

    base_url: str = "http://localhost:5053"
    execute_path: str = "/dqry/queries/execute"
    request_timeout: float | None = 30.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    debug_logging: bool = False

    @property
    def execute_url(self) -> str:
        return self.base_url.rstrip("/") + "/" + self.execute_path.lstrip("/")


class QueryExecutionClient:
    """POSTs canonical query documents and parses the tabular reply.

    Transport failures are retried with exponential backoff; once retries
    are exhausted they surface as :class:`QueryExecutionError` with the
    generic network message. HTTP error statuses are not retried.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or ClientSettings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._settings.request_timeout)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def __aenter__(self) -> QueryExecutionClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def execute(
        self,
        document: QueryDocument,
        arguments: Iterable[QueryArgument] = (),
    ) -> ExecuteQueryResponse:
        request = ExecuteQueryRequest.from_document(document, arguments)
        return await self.send(request)

    async def send(self, request: ExecuteQueryRequest) -> ExecuteQueryResponse:
        payload = request.to_dict()
        url = self._settings.execute_url
        LOGGER.debug(
            "Executing query via %s with %d source(s), %d argument(s)",
            url,
            len(request.sources),
            len(request.arguments),
        )
        if self._settings.debug_logging:
            LOGGER.debug("Execute payload: %s", json.dumps(payload, ensure_ascii=False, default=str))

        try:
            response = await self._post(url, payload)
        except httpx.TransportError as exc:
            LOGGER.warning("Query execution failed to reach %s: %s", url, exc)
            raise QueryExecutionError(message=NETWORK_ERROR_MESSAGE, details={"url": url}) from exc

        data = _decode_body(response)
        if response.is_success:
            if not isinstance(data, dict):
                raise QueryExecutionError(
                    message="Execution backend returned a non-JSON body",
                    status_code=response.status_code,
                )
            try:
                result = ExecuteQueryResponse.from_dict(data)
            except MalformedDocumentError as exc:
                raise QueryExecutionError(
                    message=exc.message,
                    details=dict(exc.details),
                    status_code=response.status_code,
                ) from exc
            LOGGER.info(
                "Query executed: %d row(s), %d column(s)",
                result.row_count,
                len(result.columns),
            )
            return result

        message = DEFAULT_ERROR_MESSAGE
        if isinstance(data, dict) and data.get("message"):
            message = str(data["message"])
        LOGGER.warning("Query execution rejected with HTTP %s: %s", response.status_code, message)
        raise QueryExecutionError(message=message, status_code=response.status_code)

    async def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        async for attempt in self._retrying():
            with attempt:
                return await self._client.post(url, json=payload)
        raise AssertionError("unreachable")  # pragma: no cover

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(httpx.TransportError),
        )


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


__all__ = ["ClientSettings", "NETWORK_ERROR_MESSAGE", "QueryExecutionClient"]
