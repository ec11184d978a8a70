import asyncio

import aiohttp
import pytest

from docplanner.core.errors import EngineError
from docplanner.core.models import DocumentFingerprint
from docplanner.core.resolver import EngineOperation, resolve
from docplanner.integrations.engine_client import EngineClient, TokenAuth

from conftest import ENGINE_URL, FakeResp, data, empty, ok


def test_token_auth_header():
    assert TokenAuth("abc").get_auth_headers() == {"Authorization": 'Token token="abc"'}


def test_token_auth_requires_token(monkeypatch):
    from docplanner.config import settings

    monkeypatch.setattr(settings, "DOCUMENT_ENGINE_API_AUTH_TOKEN", "")
    with pytest.raises(RuntimeError):
        TokenAuth().get_auth_headers()


@pytest.mark.asyncio
async def test_data_envelope_is_unwrapped(make_engine):
    engine, session = make_engine({
        "GET /api/documents/doc-1/document_info": data({"pageCount": 3, "title": "a.pdf"}),
    })
    info = await engine.document_info(DocumentFingerprint(document_id="doc-1"))
    assert info == {"pageCount": 3, "title": "a.pdf"}
    assert await engine.page_count(DocumentFingerprint(document_id="doc-1")) == 3


@pytest.mark.asyncio
async def test_envelope_with_extra_keys_is_kept(make_engine):
    page = {"data": [{"id": "d1"}], "next_cursor": "c2"}
    engine, _ = make_engine({"GET /api/documents": ok(page)})
    assert await engine.list_documents(page_size=5) == page


@pytest.mark.asyncio
async def test_list_documents_accepts_bare_list(make_engine):
    engine, session = make_engine({"GET /api/documents": ok([{"id": "d1"}])})
    assert await engine.list_documents(count_remaining=True, cursor=None) == {"data": [{"id": "d1"}]}
    # None params are dropped, booleans lowered
    assert session.calls[0][2]["params"] == {"count_remaining": "true"}


@pytest.mark.asyncio
async def test_layered_document_info_uses_layer_endpoint(make_engine):
    engine, session = make_engine({
        "GET /layers/review/document_info": data({"pageCount": 2}),
    })
    await engine.document_info(DocumentFingerprint(document_id="doc-1", layer="review"))
    assert session.paths() == ["/api/documents/doc-1/layers/review/document_info"]


@pytest.mark.asyncio
async def test_empty_document_info_is_not_found(make_engine):
    engine, _ = make_engine({"GET /document_info": data({})})
    with pytest.raises(EngineError) as exc:
        await engine.document_info(DocumentFingerprint(document_id="doc-1", layer="x"))
    assert exc.value.code == "NOT_FOUND"
    assert "layer name: x" in str(exc.value)


@pytest.mark.parametrize("status,code", [
    (400, "BAD_REQUEST"),
    (401, "AUTHENTICATION_FAILED"),
    (404, "NOT_FOUND"),
    (429, "RATE_LIMIT_EXCEEDED"),
    (503, "SERVER_ERROR"),
    (418, "API_ERROR"),
])
@pytest.mark.asyncio
async def test_error_status_mapping_keeps_engine_message(make_engine, status, code):
    engine, _ = make_engine({"GET /document_info": ok({"message": "engine says no"}, status=status)})
    with pytest.raises(EngineError) as exc:
        await engine.document_info(DocumentFingerprint(document_id="doc-1"))
    assert exc.value.code == code
    assert exc.value.status == status
    assert str(exc.value) == "engine says no"


@pytest.mark.asyncio
async def test_error_without_json_uses_text(make_engine):
    engine, _ = make_engine({"GET /document_info": FakeResp(status=500, text_payload="upstream exploded")})
    with pytest.raises(EngineError) as exc:
        await engine.document_info(DocumentFingerprint(document_id="doc-1"))
    assert str(exc.value) == "upstream exploded"


@pytest.mark.asyncio
async def test_transport_error_is_wrapped():
    class BrokenSession:
        def request(self, method, url, **kwargs):
            raise aiohttp.ClientConnectionError("connection refused")

    engine = EngineClient(auth=TokenAuth("t"), session=BrokenSession(), base_url=ENGINE_URL)
    with pytest.raises(EngineError) as exc:
        await engine.request("GET", "/healthcheck")
    assert exc.value.code == "TRANSPORT_ERROR"


@pytest.mark.asyncio
async def test_timeout_is_wrapped():
    class SlowSession:
        def request(self, method, url, **kwargs):
            raise asyncio.TimeoutError()

    engine = EngineClient(auth=TokenAuth("t"), session=SlowSession(), base_url=ENGINE_URL)
    result = await engine.health_check()
    assert result["healthy"] is False
    assert result["code"] == "TRANSPORT_ERROR"


@pytest.mark.asyncio
async def test_bytes_response(make_engine):
    engine, _ = make_engine({"GET /pages/0/image": FakeResp(body=b"\x89PNG")})
    selector = resolve(DocumentFingerprint(document_id="doc-1"), EngineOperation.RENDER_PAGE, page_index=0)
    assert await engine.call(selector, params={"width": 800}, expect="bytes") == b"\x89PNG"


@pytest.mark.asyncio
async def test_no_content_returns_none(make_engine):
    engine, _ = make_engine({"DELETE /annotations/a1": FakeResp(status=204)})
    selector = resolve(DocumentFingerprint(document_id="doc-1"), EngineOperation.DELETE_ANNOTATION, annotation_id="a1")
    assert await engine.call(selector) is None


@pytest.mark.asyncio
async def test_copy_base_document_posts_id(make_engine):
    engine, session = make_engine({"POST /api/copy_document": data({"document_id": "copy-1"})})
    assert await engine.copy_document(DocumentFingerprint(document_id="doc-1")) == "copy-1"
    assert session.bodies("POST", "/api/copy_document") == [{"document_id": "doc-1"}]


@pytest.mark.asyncio
async def test_copy_layered_document_keeps_layer_state(make_engine):
    engine, session = make_engine({"POST /copy_with_instant_json": data({"documentId": "copy-2"})})
    new_id = await engine.copy_document(DocumentFingerprint(document_id="doc-1", layer="review"))
    assert new_id == "copy-2"
    assert session.paths() == ["/api/documents/doc-1/layers/review/copy_with_instant_json"]
    assert "json" not in session.calls[0][2]


@pytest.mark.asyncio
async def test_copy_without_id_is_engine_error(make_engine):
    engine, _ = make_engine({"POST /api/copy_document": data({})})
    with pytest.raises(EngineError):
        await engine.copy_document(DocumentFingerprint(document_id="doc-1"))


@pytest.mark.asyncio
async def test_create_document(make_engine):
    engine, session = make_engine({"POST /api/documents": data({"document_id": "new-1"})})
    assert await engine.create_document({"parts": []}, title="Merged") == "new-1"
    assert session.bodies("POST", "/api/documents") == [{"instructions": {"parts": []}, "title": "Merged"}]


@pytest.mark.asyncio
async def test_health_check(make_engine):
    engine, _ = make_engine({"GET /healthcheck": FakeResp(text_payload="OK")})
    result = await engine.health_check()
    assert result["healthy"] is True
    assert result["base_url"] == ENGINE_URL


@pytest.mark.asyncio
async def test_external_session_is_not_closed(make_engine):
    engine, session = make_engine({"GET /api/documents/doc-1/layers": data(["review"])})
    assert await engine.list_layers("doc-1") == ["review"]
    assert session.closed is False


@pytest.mark.asyncio
async def test_empty_success_body_returns_none(make_engine):
    engine, _ = make_engine({"DELETE /annotations/a1": empty()})
    selector = resolve(DocumentFingerprint(document_id="doc-1"), EngineOperation.DELETE_ANNOTATION, annotation_id="a1")
    assert await engine.call(selector) is None


@pytest.mark.asyncio
async def test_non_json_success_body_returns_none(make_engine):
    engine, _ = make_engine({"POST /redact": FakeResp(text_payload="OK", content_type="text/plain")})
    selector = resolve(DocumentFingerprint(document_id="doc-1"), EngineOperation.APPLY_REDACTIONS)
    assert await engine.call(selector) is None


@pytest.mark.asyncio
async def test_malformed_json_success_is_api_error(make_engine):
    engine, _ = make_engine({"GET /document_info": FakeResp(body=b"{not json", content_type="application/json")})
    with pytest.raises(EngineError) as exc:
        await engine.document_info(DocumentFingerprint(document_id="doc-1"))
    assert exc.value.code == "API_ERROR"
    assert exc.value.status == 200


@pytest.mark.asyncio
async def test_transport_error_never_echoes_auth_header(caplog):
    secret = 'Token token="live-secret-123"'

    class RejectingSession:
        def request(self, method, url, **kwargs):
            info = aiohttp.RequestInfo(url, method, {"Authorization": secret}, url)
            raise aiohttp.ClientResponseError(info, (), status=502, message="Bad Gateway")

    engine = EngineClient(auth=TokenAuth("live-secret-123"), session=RejectingSession(), base_url=ENGINE_URL)
    with caplog.at_level("ERROR", logger="docplanner"):
        with pytest.raises(EngineError) as exc:
            await engine.request("GET", "/api/documents")
    assert exc.value.code == "TRANSPORT_ERROR"
    assert "Bad Gateway" in str(exc.value)
    assert "live-secret-123" not in str(exc.value)
    assert "live-secret-123" not in repr(exc.value.to_dict())
    assert "live-secret-123" not in caplog.text


@pytest.mark.asyncio
async def test_build_document_posts_instructions(make_engine):
    engine, session = make_engine({"POST /api/build": ok({"pages": [{"pageIndex": 0}]})})
    instructions = {"parts": [{"document": {"id": "doc-1"}}], "output": {"type": "json-content"}}
    assert await engine.build_document(instructions) == {"pages": [{"pageIndex": 0}]}
    assert session.bodies("POST", "/api/build") == [instructions]


@pytest.mark.asyncio
async def test_build_document_without_content_is_engine_error(make_engine):
    engine, _ = make_engine({"POST /api/build": empty()})
    with pytest.raises(EngineError):
        await engine.build_document({"parts": []})
