"""docplanner/integrations/engine_client.py
Document Engine client wrapper over its REST API.

Responsibilities:
- Provide an auth interface used by the client (get_auth_headers)
- TokenAuth reads `DOCUMENT_ENGINE_API_AUTH_TOKEN` from env/settings
- EngineClient executes EndpointSelector values produced by the resolver,
  plus the few calls that are not scoped to one document (create, list, health)

Notes:
- Retries and backoff are intentionally NOT implemented here; every call is
  a single request/response.
- Non-2xx responses raise EngineError carrying the engine's own message.
- Empty or non-JSON success bodies decode to None; transport errors never
  echo request headers.
"""
from __future__ import annotations

from typing import Protocol, Dict, Any, Optional, List, Union, Awaitable
import asyncio
import json
import aiohttp
from urllib.parse import quote
from docplanner.config import settings
from docplanner.core.errors import EngineError
from docplanner.core.models import DocumentFingerprint
from docplanner.core.resolver import EndpointSelector, EngineOperation, resolve
from docplanner.monitoring.logger import log


class EngineAuth(Protocol):
    """Auth interface providing headers for requests.

    Implementations may provide either a synchronous `get_auth_headers()` or
    an async `get_auth_headers()` coroutine. The client helper `_get_session`
    will handle both.
    """

    def get_auth_headers(self) -> Union[Dict[str, str], Awaitable[Dict[str, str]]]:
        ...


class TokenAuth:
    """Static API token auth for the Document Engine."""

    def __init__(self, token: Optional[str] = None):
        self.token = token or settings.DOCUMENT_ENGINE_API_AUTH_TOKEN

    def get_auth_headers(self) -> Dict[str, str]:
        if not self.token:
            raise RuntimeError("DOCUMENT_ENGINE_API_AUTH_TOKEN not provided for TokenAuth")
        return {"Authorization": f'Token token="{self.token}"'}


def _unwrap(payload: Any) -> Any:
    # Most engine responses wrap their body as {"data": ...}
    if isinstance(payload, dict) and set(payload.keys()) == {"data"}:
        return payload["data"]
    return payload


def _error_message(status: int, body: Any, text: str) -> str:
    if isinstance(body, dict):
        for key in ("message", "error", "reason"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
    return text or f"Document Engine returned HTTP {status}"


_MALFORMED = object()


def _parse_json(raw: bytes, default: Any = None) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return default


def _describe_transport_error(exc: BaseException) -> str:
    # Never format request_info: it carries the Authorization header
    if isinstance(exc, aiohttp.ClientResponseError):
        return f"{type(exc).__name__}: HTTP {exc.status} {exc.message}".rstrip()
    detail = str(exc)
    return f"{type(exc).__name__}: {detail}" if detail else type(exc).__name__


class EngineClient:
    """Thin async client for the Document Engine.

    All document-scoped calls go through `call(selector)`; the selector is
    produced by `docplanner.core.resolver.resolve`, so this class never
    decides between base and layer endpoints itself.
    """

    def __init__(self, auth: EngineAuth | None = None, session: aiohttp.ClientSession | None = None, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.auth = auth if auth is not None else TokenAuth()
        self.base_url = (base_url or settings.DOCUMENT_ENGINE_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.CONNECTION_TIMEOUT
        self._external_session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._external_session is not None:
            return self._external_session
        # Support auth providers that return headers either synchronously or
        # asynchronously.
        headers = self.auth.get_auth_headers()
        if asyncio.iscoroutine(headers):
            headers = await headers
        return aiohttp.ClientSession(
            headers={**headers, "Accept": "application/json"},
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        expect: str = "json",
    ) -> Any:
        """Issue one HTTP request against the engine.

        Args:
            method: HTTP verb
            path: Absolute API path, e.g. /api/documents
            json: Optional JSON body
            params: Optional query parameters (None values are dropped)
            expect: "json" (unwrapped body), "bytes" or "text"

        Raises:
            EngineError: On non-2xx status or transport failure
        """
        url = f"{self.base_url}{path}"
        query = {k: _query_value(v) for k, v in (params or {}).items() if v is not None}
        kwargs: Dict[str, Any] = {}
        if json is not None:
            kwargs["json"] = json
        if query:
            kwargs["params"] = query
        log("DEBUG", f"Engine request {method} {path}", module="engine_client", params=query or None)
        session = await self._get_session()
        try:
            async with session.request(method, url, **kwargs) as resp:
                status = resp.status
                content_type = resp.content_type or ""
                raw = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            reason = _describe_transport_error(exc)
            log("ERROR", f"Engine transport error: {method} {path}: {reason}", module="engine_client")
            raise EngineError(f"Document Engine unreachable: {reason}", code="TRANSPORT_ERROR") from exc
        finally:
            if self._external_session is None:
                await session.close()

        if status >= 400:
            text = raw.decode("utf-8", errors="replace")
            body = _parse_json(raw)
            message = _error_message(status, body, text)
            log("ERROR", f"Engine request failed: {method} {path} -> {status}", module="engine_client", status=status)
            raise EngineError.from_status(status, message, details=body)
        log("DEBUG", f"Engine response {status} for {method} {path}", module="engine_client", bytes=len(raw))
        if expect == "bytes":
            return raw
        if expect == "text":
            return raw.decode("utf-8", errors="replace")
        # DELETE and the commit endpoints may answer 200 with no body
        if not raw.strip():
            return None
        if "json" not in content_type:
            log("DEBUG", f"Ignoring non-JSON {content_type or 'untyped'} body for {method} {path}", module="engine_client")
            return None
        body = _parse_json(raw, default=_MALFORMED)
        if body is _MALFORMED:
            raise EngineError(
                f"Invalid response from Document Engine API: malformed JSON for {method} {path}",
                code="API_ERROR",
                status=status,
            )
        return _unwrap(body)

    async def call(self, selector: EndpointSelector, json: Any = None, params: Optional[Dict[str, Any]] = None, expect: str = "json") -> Any:
        """Execute a resolver-selected endpoint."""
        return await self.request(selector.method, selector.path, json=json, params=params, expect=expect)

    # ------------------------------------------------------------------
    # Calls used by more than one tool
    # ------------------------------------------------------------------

    async def document_info(self, fingerprint: DocumentFingerprint) -> Dict[str, Any]:
        """Fetch document info (page count, title, ...) for base or layer."""
        data = await self.call(resolve(fingerprint, EngineOperation.DOCUMENT_INFO))
        if not data:
            layer = f", layer name: {fingerprint.layer}" if fingerprint.layer else ""
            raise EngineError(f"No document info returned for document ID: {fingerprint.document_id}{layer}", code="NOT_FOUND")
        return data

    async def page_count(self, fingerprint: DocumentFingerprint) -> int:
        info = await self.document_info(fingerprint)
        return int(info.get("pageCount", 0))

    async def apply_instructions(self, fingerprint: DocumentFingerprint, instructions: Dict[str, Any]) -> Any:
        return await self.call(resolve(fingerprint, EngineOperation.APPLY_INSTRUCTIONS), json=instructions)

    async def copy_document(self, fingerprint: DocumentFingerprint) -> str:
        """Duplicate a document; layered sources keep their layer state.

        Returns:
            The new document id (always a base document)
        """
        selector = resolve(fingerprint, EngineOperation.COPY_DOCUMENT)
        body = None if fingerprint.layer else {"document_id": fingerprint.document_id}
        data = await self.call(selector, json=body)
        new_id = None
        if isinstance(data, dict):
            new_id = data.get("document_id") or data.get("documentId")
        if not new_id:
            raise EngineError("Invalid response from Document Engine API: missing copied document id")
        return new_id

    async def create_document(self, instructions: Dict[str, Any], title: Optional[str] = None) -> str:
        """Create a new document from instructions; returns its id."""
        body: Dict[str, Any] = {"instructions": instructions}
        if title:
            body["title"] = title
        data = await self.request("POST", "/api/documents", json=body)
        document_id = data.get("document_id") if isinstance(data, dict) else None
        if not document_id:
            raise EngineError("Invalid response from Document Engine API: missing document_id")
        return document_id

    async def build_document(self, instructions: Dict[str, Any]) -> Dict[str, Any]:
        """Run build instructions without storing a result.

        Used with `json-content` output to read tables and key-value pairs.
        Document parts carry their own layer reference.
        """
        data = await self.request("POST", "/api/build", json=instructions)
        if not isinstance(data, dict):
            raise EngineError("Invalid response from Document Engine API: build returned no content")
        return data

    async def list_documents(self, **params: Any) -> Dict[str, Any]:
        """List documents; returns the page of documents plus pagination cursors."""
        data = await self.request("GET", "/api/documents", params=params)
        if isinstance(data, list):
            return {"data": data}
        return data or {"data": []}

    async def list_layers(self, document_id: str) -> List[str]:
        data = await self.request("GET", f"/api/documents/{quote(document_id, safe='')}/layers")
        return list(data or [])

    async def health_check(self) -> Dict[str, Any]:
        """Check engine reachability; never raises."""
        try:
            await self.request("GET", "/healthcheck", expect="text")
            return {"healthy": True, "base_url": self.base_url, "message": "Document Engine reachable"}
        except EngineError as exc:
            return {"healthy": False, "base_url": self.base_url, "message": str(exc), "code": exc.code}


def _query_value(value: Any) -> Any:
    # aiohttp only accepts str/int/float query values
    if isinstance(value, bool):
        return "true" if value else "false"
    return value
