import base64

import pytest

from docplanner.config import settings
from docplanner.monitoring.context import get_request_context
from docplanner.tools.registry import TOOL_REGISTRY, get_tool, get_tool_info, list_tools, register_tool, run_tool

from conftest import FakeResp, data, empty, ok

DOC = {"document_id": "doc-1"}
LAYERED = {"document_id": "doc-1", "layer": "review"}


@pytest.fixture(autouse=True)
def no_slack(monkeypatch):
    monkeypatch.setattr(settings, "SLACK_WEBHOOK_URL", None)


def _info(page_count, title="report.pdf", **extra):
    return data({"pageCount": page_count, "title": title, **extra})


def test_registry_lists_every_tool():
    assert len(list_tools()) == 21
    assert "split_document" in list_tools()
    with pytest.raises(ValueError):
        get_tool("explode_document")


def test_tool_info_exposes_input_schema():
    info = get_tool_info("search")
    assert info["name"] == "search"
    assert "query" in info["input_schema"]["properties"]


def test_register_tool_rejects_non_callable(monkeypatch):
    monkeypatch.setattr("docplanner.tools.registry.TOOL_REGISTRY", dict(TOOL_REGISTRY))
    with pytest.raises(ValueError):
        register_tool("broken", "not a function")


@pytest.mark.asyncio
async def test_list_documents_with_layers(make_engine):
    engine, session = make_engine({
        "GET /api/documents": ok({
            "data": [{"id": "d1", "title": "One", "byteSize": 2048}, {"id": "d2", "title": "Two"}],
            "next_cursor": "c-next",
        }),
        "GET /api/documents/d1/layers": data(["review", "draft"]),
        "GET /api/documents/d2/layers": ok({"message": "boom"}, status=500),
    })
    result = await run_tool("list_documents", engine, {"limit": 2})

    assert result.success
    assert result.details["documents"] == [
        {"id": "d1", "title": "One", "layers": ["review", "draft"]},
        {"id": "d2", "title": "Two", "layers": None},
    ]
    assert result.details["next_cursor"] == "c-next"
    assert "2.00 KB" in result.markdown
    assert "Error fetching layers" in result.markdown
    assert session.calls[0][2]["params"]["page_size"] == 2


@pytest.mark.asyncio
async def test_read_document_info_with_metadata(make_engine):
    engine, _ = make_engine({
        "GET /document_info": _info(2, metadata={"author": "Ada"}, permissions={"print": False}),
    })
    result = await run_tool("read_document_info", engine, {"document_fingerprint": DOC, "include_metadata": True})
    assert result.success
    assert "**Pages:** 2" in result.markdown
    assert "**Author:** Ada" in result.markdown
    assert "**Print:** Not Allowed" in result.markdown


@pytest.mark.asyncio
async def test_read_document_info_unknown_layer(make_engine):
    engine, session = make_engine({"GET /api/documents/doc-1/layers": data(["draft"])})
    result = await run_tool("read_document_info", engine, {"document_fingerprint": LAYERED})
    assert not result.success
    assert "Available layers: draft" in result.markdown
    assert result.error["field"] == "layer"


@pytest.mark.asyncio
async def test_extract_text_range_with_ocr(make_engine):
    engine, session = make_engine({
        "GET /document_info": _info(4),
        "GET /pages/1/text": data({"textLines": [{"contents": "hello world"}]}),
        "GET /pages/2/text": data({"textLines": [{"contents": "third page here"}]}),
    })
    result = await run_tool("extract_text", engine, {
        "document_fingerprint": DOC, "page_range": {"start": 1, "end": 2}, "ocr_enabled": True,
    })
    assert result.success
    assert result.details["pages"] == [1, 2]
    assert result.details["total_words"] == 5
    assert all(kw["params"] == {"ocr": "true"} for m, p, kw in session.calls if "/text" in p)
    assert "### Coordinates for Page 2" in result.markdown


@pytest.mark.asyncio
async def test_extract_text_out_of_range(make_engine):
    engine, session = make_engine({"GET /document_info": _info(2)})
    result = await run_tool("extract_text", engine, {"document_fingerprint": DOC, "page_range": {"start": 0, "end": 5}})
    assert not result.success
    assert "out of bounds" in result.markdown
    assert not any("/text" in p for p in session.paths())


@pytest.mark.asyncio
async def test_search_on_layer_is_served_by_base(make_engine):
    engine, session = make_engine({
        "GET /api/documents/doc-1/document_info": _info(3),
        "GET /api/documents/doc-1/search": data([
            {"pageIndex": 1, "previewText": "the secret code", "rangeInPreview": [4, 6]},
        ]),
    })
    result = await run_tool("search", engine, {"document_fingerprint": LAYERED, "query": "secret"})

    assert result.success, result.markdown
    assert result.details["forced_base"] is True
    assert result.details["requested_layer"] == "review"
    assert result.details["matches_per_page"] == {1: 1}
    assert "**Layer:** review" in result.markdown
    assert "search does not support layers" in result.markdown
    assert '"the **secret** code"' in result.markdown
    assert not any("/layers/" in p for p in session.paths())
    params = session.calls[-1][2]["params"]
    assert params["q"] == "secret"
    assert params["limit"] == 3


@pytest.mark.asyncio
async def test_search_without_results(make_engine):
    engine, _ = make_engine({
        "GET /document_info": _info(3),
        "GET /search": data([]),
    })
    result = await run_tool("search", engine, {"document_fingerprint": DOC, "query": "absent"})
    assert result.success
    assert result.details["forced_base"] is False
    assert "## No Results Found" in result.markdown


@pytest.mark.asyncio
async def test_render_document_page(make_engine):
    engine, session = make_engine({
        "GET /document_info": _info(2, pages=[{"width": 612, "height": 792}]),
        "GET /pages/0/image": FakeResp(body=b"png-bytes"),
    })
    result = await run_tool("render_document_page", engine, {"document_fingerprint": DOC, "pages": [0], "height": 300})
    assert result.success
    image = result.details["images"][0]
    assert base64.b64decode(image["base64"]) == b"png-bytes"
    assert session.calls[-1][2]["params"] == {"height": 300}
    assert "612 x 792 points" in result.markdown


@pytest.mark.asyncio
async def test_render_defaults_to_width(make_engine):
    engine, session = make_engine({
        "GET /document_info": _info(1),
        "GET /pages/0/image": FakeResp(body=b"x"),
    })
    await run_tool("render_document_page", engine, {"document_fingerprint": DOC, "pages": [0]})
    assert session.calls[-1][2]["params"] == {"width": 800}


@pytest.mark.asyncio
async def test_extract_tables_fills_missing_cells(make_engine):
    engine, session = make_engine({
        "GET /layers/review/document_info": _info(4),
        "POST /api/build": ok({"pages": [
            {"pageIndex": 1, "tables": [{"cells": [
                {"rowIndex": 0, "columnIndex": 0, "text": "Item"},
                {"rowIndex": 0, "columnIndex": 2, "text": "Price"},
                {"rowIndex": 1, "columnIndex": 0, "text": "Pen | blue"},
                {"rowIndex": 1, "columnIndex": 1, "text": "2"},
                {"rowIndex": 1, "columnIndex": 2, "text": "1.50"},
            ]}]},
            {"pageIndex": 2, "tables": [{"cells": []}]},
        ]}),
    })
    result = await run_tool("extract_tables", engine, {
        "document_fingerprint": LAYERED, "page_range": {"start": 1, "end": 2},
    })
    assert result.success
    assert result.details["table_count"] == 2
    assert result.details["tables"][0] == {"page_index": 1, "rows": [["Item", "", "Price"], ["Pen | blue", "2", "1.50"]]}
    assert "### Table 1 (Page 2)" in result.markdown
    assert "| Column 1 | Column 2 | Column 3 |" in result.markdown
    assert "| Item |  | Price |" in result.markdown
    assert "| Pen \\| blue | 2 | 1.50 |" in result.markdown
    assert "no cells were found" in result.markdown
    assert session.bodies("POST", "/api/build") == [{
        "parts": [{"document": {"id": "doc-1", "layer": "review"}, "pages": {"start": 1, "end": 2}}],
        "output": {"type": "json-content", "plainText": False, "structuredText": False,
                   "keyValuePairs": False, "tables": True},
    }]


@pytest.mark.asyncio
async def test_extract_tables_none_found(make_engine):
    engine, _ = make_engine({"GET /document_info": _info(2), "POST /api/build": ok({"pages": [{"pageIndex": 0}]})})
    result = await run_tool("extract_tables", engine, {"document_fingerprint": DOC})
    assert result.success
    assert result.details["table_count"] == 0
    assert "## No Tables Found" in result.markdown


@pytest.mark.asyncio
async def test_extract_tables_range_out_of_bounds(make_engine):
    engine, session = make_engine({"GET /document_info": _info(2)})
    result = await run_tool("extract_tables", engine, {"document_fingerprint": DOC, "page_range": {"end": 5}})
    assert not result.success
    assert result.error["kind"] == "validation_error"
    assert session.paths("POST") == []


@pytest.mark.asyncio
async def test_extract_key_value_pairs(make_engine):
    engine, session = make_engine({
        "GET /document_info": _info(3, title="invoice.pdf"),
        "POST /api/build": ok({"pages": [
            {"pageIndex": 0, "keyValuePairs": [
                {"key": {"content": "Invoice No"}, "value": {"content": "A|17"}},
                {"key": {"content": "Total"}, "value": {}},
            ]},
            {"pageIndex": 2, "keyValuePairs": [{"key": {"content": "Due"}, "value": {"content": "2024-05-01"}}]},
        ]}),
    })
    result = await run_tool("extract_key_value_pairs", engine, {"document_fingerprint": DOC})
    assert result.success
    assert result.details["pair_count"] == 3
    assert result.details["pairs"][1] == {"key": "Total", "value": "", "page_index": 0}
    assert "| Invoice No | A\\|17 | 1 |" in result.markdown
    assert "| Due | 2024-05-01 | 3 |" in result.markdown
    assert "**Document:** invoice.pdf" in result.markdown
    body = session.bodies("POST", "/api/build")[0]
    assert body["parts"] == [{"document": {"id": "doc-1"}}]
    assert body["output"]["keyValuePairs"] is True
    assert body["output"]["tables"] is False


@pytest.mark.asyncio
async def test_extract_key_value_pairs_empty(make_engine):
    engine, _ = make_engine({"GET /document_info": _info(1), "POST /api/build": ok({"pages": []})})
    result = await run_tool("extract_key_value_pairs", engine, {"document_fingerprint": DOC})
    assert result.success
    assert result.details["pairs"] == []
    assert "No key-value pairs were extracted" in result.markdown


@pytest.mark.asyncio
async def test_add_annotation(make_engine):
    engine, session = make_engine({
        "GET /document_info": _info(3),
        "POST /annotations": data([{"id": "ann-1"}]),
    })
    result = await run_tool("add_annotation", engine, {
        "document_fingerprint": DOC,
        "page_number": 1,
        "annotation_type": "highlight",
        "content": "important",
        "coordinates": {"left": 10, "top": 20, "width": 100, "height": 12},
        "author": "alice",
    })
    assert result.success
    assert result.details["annotation_id"] == "ann-1"
    body = session.bodies("POST", "/annotations")[0]
    assert body["content"]["type"] == "pspdfkit/markup/highlight"
    assert body["content"]["rects"] == [[10.0, 20.0, 110.0, 32.0]]
    assert body["user_id"] == "alice"


@pytest.mark.asyncio
async def test_add_annotation_with_unexpected_list_response(make_engine):
    engine, _ = make_engine({
        "GET /document_info": _info(3),
        "POST /annotations": data(["ann-1"]),
    })
    result = await run_tool("add_annotation", engine, {
        "document_fingerprint": DOC, "page_number": 0, "annotation_type": "note", "content": "x",
        "coordinates": {"left": 0, "top": 0, "width": 10, "height": 10},
    })
    assert result.success
    assert result.details["annotation_id"] == "Unknown"


@pytest.mark.asyncio
async def test_document_context_does_not_leak_between_calls(make_engine):
    engine, _ = make_engine({"GET /document_info": _info(2)})
    seen = []

    async def recording_list_documents(**params):
        seen.append(get_request_context())
        return {"data": []}

    engine.list_documents = recording_list_documents
    before = get_request_context()
    assert (await run_tool("read_document_info", engine, {"document_fingerprint": DOC})).success
    assert (await run_tool("list_documents", engine, {})).success

    assert seen[0]["tool"] == "list_documents"
    assert seen[0]["document_id"] is None
    assert get_request_context() == before


@pytest.mark.asyncio
async def test_add_annotation_missing_coordinates(make_engine):
    engine, session = make_engine()
    result = await run_tool("add_annotation", engine, {
        "document_fingerprint": DOC, "page_number": 0, "annotation_type": "note", "content": "x",
    })
    assert not result.success
    assert result.error["kind"] == "validation_error"
    assert result.markdown.startswith("# Error Adding Annotation")
    assert session.calls == []


@pytest.mark.asyncio
async def test_add_annotation_page_out_of_range(make_engine):
    engine, session = make_engine({"GET /document_info": _info(2)})
    result = await run_tool("add_annotation", engine, {
        "document_fingerprint": DOC, "page_number": 5, "annotation_type": "note", "content": "x",
        "coordinates": {"left": 0, "top": 0, "width": 1, "height": 1},
    })
    assert not result.success
    assert session.paths("POST") == []


@pytest.mark.asyncio
async def test_read_annotations_filters(make_engine):
    engine, _ = make_engine({
        "GET /annotations": data({"annotations": [
            {"id": "a1", "createdBy": "alice", "content": {"type": "pspdfkit/note", "pageIndex": 0}},
            {"id": "a2", "createdBy": "bob", "content": {"type": "pspdfkit/markup/highlight", "pageIndex": 2}},
            {"id": "a3", "createdBy": "alice", "content": {"type": "pspdfkit/markup/highlight", "pageIndex": 2}},
        ]}),
    })
    result = await run_tool("read_annotations", engine, {"document_fingerprint": DOC, "annotation_type": "highlight"})
    assert result.details["annotations"] == ["a2", "a3"]
    assert result.details["pages"] == [2]

    result = await run_tool("read_annotations", engine, {"document_fingerprint": DOC, "author": "carol"})
    assert result.details["annotations"] == []
    assert "none match the specified filters" in result.markdown


@pytest.mark.asyncio
async def test_delete_annotations_cancelled(make_engine):
    engine, session = make_engine()
    result = await run_tool("delete_annotations", engine, {
        "document_fingerprint": DOC, "annotation_ids": ["a1"], "confirm_deletion": False,
    })
    assert result.success
    assert result.details == {"deleted": [], "cancelled": True}
    assert session.calls == []


@pytest.mark.asyncio
async def test_delete_annotations_checks_all_ids_first(make_engine):
    engine, session = make_engine({
        "GET /annotations/a1": data({"id": "a1", "content": {"type": "pspdfkit/note", "pageIndex": 0}}),
        "GET /annotations/a2": ok({"message": "not found"}, status=404),
        "DELETE /annotations/a1": FakeResp(status=204),
    })
    result = await run_tool("delete_annotations", engine, {"document_fingerprint": DOC, "annotation_ids": ["a1", "a2"]})
    assert not result.success
    assert "Annotation a2 not found" in result.markdown
    assert session.paths("DELETE") == []


@pytest.mark.asyncio
async def test_delete_annotations_on_layer(make_engine):
    engine, session = make_engine({
        "GET /layers/review/annotations/a1": data({"id": "a1", "content": {"pageIndex": 0}}),
        "DELETE /layers/review/annotations/a1": FakeResp(status=204),
    })
    result = await run_tool("delete_annotations", engine, {"document_fingerprint": LAYERED, "annotation_ids": ["a1"]})
    assert result.success
    assert session.paths("DELETE") == ["/api/documents/doc-1/layers/review/annotations/a1"]


@pytest.mark.asyncio
async def test_create_redaction_tool_preview(make_engine):
    engine, session = make_engine({
        "POST /redactions": data({"annotations": [
            {"id": "r1", "content": {"pageIndex": 0}},
            {"id": "r2", "content": {"pageIndex": 2}},
            {"id": "r3", "content": {"pageIndex": 2}},
        ]}),
    })
    result = await run_tool("create_redaction", engine, {
        "document_fingerprint": DOC, "redaction_type": "preset", "preset": "email-address",
    })
    assert result.success
    assert result.details["ids"] == ["r1", "r2", "r3"]
    assert result.details["matches_per_page"] == {0: 1, 2: 2}
    assert "Preset: Email Address" in result.markdown
    assert "**Page 3:** 2 matches detected" in result.markdown
    assert not any(p.endswith("/redact") for p in session.paths())


@pytest.mark.asyncio
async def test_create_redaction_tool_rejects_mismatched_fields(make_engine):
    engine, session = make_engine()
    result = await run_tool("create_redaction", engine, {
        "document_fingerprint": DOC, "redaction_type": "regex", "text": "abc",
    })
    assert not result.success
    assert result.error["field"] == "pattern"
    assert session.calls == []


@pytest.mark.asyncio
async def test_apply_redactions_tool(make_engine):
    engine, session = make_engine({
        "GET /document_info": _info(3),
        "GET /annotations/r1": data({"id": "r1", "content": {"type": "pspdfkit/markup/redaction", "pageIndex": 0}}),
        "GET /api/documents/doc-1/annotations": data({"annotations": [
            {"id": "r1", "content": {"type": "pspdfkit/markup/redaction", "pageIndex": 0}},
        ]}),
        "POST /redact": empty(),
    })
    result = await run_tool("apply_redactions", engine, {"document_fingerprint": DOC, "redaction_ids": ["r1"]})
    assert result.success
    assert result.details == {"applied": ["r1"]}
    assert "**Redactions Applied:** 1" in result.markdown


@pytest.mark.asyncio
async def test_apply_redactions_tool_refuses_partial_commit(make_engine):
    redaction = {"type": "pspdfkit/markup/redaction", "pageIndex": 0}
    engine, session = make_engine({
        "GET /document_info": _info(3),
        "GET /annotations/r1": data({"id": "r1", "content": redaction}),
        "GET /api/documents/doc-1/annotations": data({"annotations": [
            {"id": "r1", "content": redaction},
            {"id": "r2", "content": redaction},
        ]}),
        "POST /redact": empty(),
    })
    result = await run_tool("apply_redactions", engine, {"document_fingerprint": DOC, "redaction_ids": ["r1"]})
    assert not result.success
    assert result.error["kind"] == "validation_error"
    assert "r2" in result.markdown
    assert session.paths("POST") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [{}, {"redaction_ids": []}, {"redaction_ids": ["r1"], "all": True}])
async def test_apply_redactions_tool_needs_ids_or_all(make_engine, params):
    engine, session = make_engine()
    result = await run_tool("apply_redactions", engine, {"document_fingerprint": DOC, **params})
    assert not result.success
    assert result.error["kind"] == "validation_error"
    assert session.calls == []


FORM_FIELDS = [
    {"content": {"name": "name", "type": "pspdfkit/form-field/text", "flags": ["required"]},
     "widgetAnnotations": [{"content": {"pageIndex": 0}}]},
    {"content": {"name": "agree", "type": "pspdfkit/form-field/checkbox"},
     "widgetAnnotations": [{"content": {"pageIndex": 1}}]},
]


@pytest.mark.asyncio
async def test_extract_form_data(make_engine):
    engine, _ = make_engine({
        "GET /document_info": _info(2),
        "GET /form-fields": data(FORM_FIELDS),
        "GET /form-field-values": ok({"formFieldValues": [{"name": "name", "value": "Ada"}]}),
    })
    result = await run_tool("extract_form_data", engine, {"document_fingerprint": DOC})
    fields = result.details["fields"]
    assert fields[0] == {"name": "name", "type": "pspdfkit/form-field/text", "value": "Ada", "required": True, "page_index": 0}
    assert fields[1]["value"] is None
    assert "| agree | Empty | 2 |" in result.markdown

    result = await run_tool("extract_form_data", engine, {"document_fingerprint": DOC, "include_empty_fields": False})
    assert [f["name"] for f in result.details["fields"]] == ["name"]


@pytest.mark.asyncio
async def test_fill_form_fields(make_engine):
    engine, session = make_engine({
        "GET /document_info": _info(2),
        "GET /form-fields": data(FORM_FIELDS),
        "POST /form-field-values": ok(),
    })
    result = await run_tool("fill_form_fields", engine, {
        "document_fingerprint": DOC,
        "field_values": [{"fieldName": "name", "value": "Grace"}, {"fieldName": "agree", "value": True}],
    })
    assert result.success
    records = session.bodies("POST", "/form-field-values")[0]["formFieldValues"]
    assert [(r["name"], r["value"]) for r in records] == [("name", "Grace"), ("agree", "True")]
    assert all(r["type"] == "pspdfkit/form-field-value" for r in records)


@pytest.mark.asyncio
async def test_fill_form_fields_unknown_field(make_engine):
    engine, session = make_engine({
        "GET /document_info": _info(2),
        "GET /form-fields": data(FORM_FIELDS),
        "POST /form-field-values": ok(),
    })
    result = await run_tool("fill_form_fields", engine, {
        "document_fingerprint": DOC, "field_values": [{"fieldName": "nmae", "value": "x"}],
    })
    assert not result.success
    assert 'Field "nmae" does not exist' in result.markdown
    assert session.paths("POST") == []


@pytest.mark.asyncio
async def test_health_check_tool_degraded(make_engine):
    engine, _ = make_engine({"GET /healthcheck": FakeResp(status=503, text_payload="down")})
    result = await run_tool("health_check", engine, {})
    assert result.success
    assert result.details["status"] == "degraded"
    assert "Error: down" in result.markdown


@pytest.mark.asyncio
async def test_health_check_tool_operational(make_engine):
    engine, _ = make_engine({"GET /healthcheck": FakeResp(text_payload="OK")})
    result = await run_tool("health_check", engine, {})
    assert result.details["status"] == "operational"
    assert "**Document Engine API**: Operational" in result.markdown
