# docplanner/tools/forms.py
"""
Form tools: read field values, fill fields.
"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from docplanner.core.errors import ValidationError
from docplanner.core.resolver import EngineOperation, resolve
from docplanner.tools.base import FingerprintInput, ToolResult, fingerprint_lines, tool_handler

FORM_FIELD_VALUE_TYPE = "pspdfkit/form-field-value"


def format_field_value(value: Any) -> str:
    if value is None or value == "" or value == []:
        return "Empty"
    if isinstance(value, list):
        return ", ".join(str(v) for v in value if v not in (None, ""))
    return str(value)


def _is_empty(value: Any) -> bool:
    if isinstance(value, list):
        return not any(v not in (None, "") for v in value)
    return value in (None, "")


def _field_page(field: Dict[str, Any]) -> Optional[int]:
    widgets = field.get("widgetAnnotations") or []
    if widgets and (widgets[0].get("content") or {}).get("pageIndex") is not None:
        return widgets[0]["content"]["pageIndex"]
    return None


class ExtractFormDataInput(FingerprintInput):
    field_names: Optional[List[str]] = Field(None, description="List of specific form field names to extract")
    include_empty_fields: bool = True


@tool_handler("extract_form_data", ExtractFormDataInput, "Error Extracting Form Data", "extract form data")
async def extract_form_data(engine, data: ExtractFormDataInput) -> ToolResult:
    fp = data.document_fingerprint
    info = await engine.document_info(fp)
    fields = await engine.call(resolve(fp, EngineOperation.FORM_FIELDS)) or []
    values = await engine.call(resolve(fp, EngineOperation.FORM_FIELD_VALUES)) or {}
    value_map = {v["name"]: v.get("value") for v in values.get("formFieldValues") or [] if v.get("name")}

    selected = []
    for field in fields:
        content = field.get("content") or {}
        name = content.get("name")
        if not name:
            continue
        if data.field_names and name not in data.field_names:
            continue
        if not data.include_empty_fields and _is_empty(value_map.get(name)):
            continue
        selected.append({
            "name": name,
            "type": content.get("type", "unknown"),
            "value": value_map.get(name),
            "required": "required" in (content.get("flags") or []),
            "page_index": _field_page(field),
        })

    markdown = "# Form Data Extraction\n\n"
    markdown += f"**Document:** {info.get('title') or 'Untitled Document'}  \n"
    markdown += fingerprint_lines(fp)
    markdown += f"**Form Fields Found:** {len(selected)}  \n"
    if not selected:
        markdown += "\nNo form fields found in this document.\n"
        return ToolResult(success=True, markdown=markdown, details={"fields": []})

    by_type: Dict[str, List[Dict[str, Any]]] = {}
    for entry in selected:
        by_type.setdefault(entry["type"], []).append(entry)

    markdown += "\n---\n\n"
    for kind, entries in by_type.items():
        markdown += f"## {kind.removeprefix('pspdfkit/form-field/').capitalize()} Fields\n\n"
        markdown += "| Field Name | Value | Page | Required |\n|---|---|---|---|\n"
        for entry in entries:
            page = entry["page_index"] + 1 if entry["page_index"] is not None else "N/A"
            markdown += f"| {entry['name']} | {format_field_value(entry['value'])} | {page} | {'yes' if entry['required'] else ''} |\n"
        markdown += "\n"

    return ToolResult(success=True, markdown=markdown, details={"fields": selected})


class FieldValue(BaseModel):
    fieldName: str
    value: Union[str, int, float, bool, None]


class FillFormFieldsInput(FingerprintInput):
    field_values: List[FieldValue] = Field(..., min_length=1)
    validate_required: bool = Field(True, description="Whether to validate that form fields exist before updating")


@tool_handler("fill_form_fields", FillFormFieldsInput, "Error Filling Form Fields", "fill form fields",
              tips=["Use `extract_form_data` to list the field names of the document"])
async def fill_form_fields(engine, data: FillFormFieldsInput) -> ToolResult:
    fp = data.document_fingerprint
    info = await engine.document_info(fp)
    records = [
        {
            "name": fv.fieldName,
            "value": "" if fv.value is None else str(fv.value),
            "type": FORM_FIELD_VALUE_TYPE,
            "v": 1,
            "createdBy": None,
            "updatedBy": None,
        }
        for fv in data.field_values
    ]

    if data.validate_required:
        fields = await engine.call(resolve(fp, EngineOperation.FORM_FIELDS)) or []
        existing = {(f.get("content") or {}).get("name") for f in fields}
        missing = [r["name"] for r in records if r["name"] not in existing]
        if missing:
            raise ValidationError(
                "; ".join(f'Field "{name}" does not exist in the document' for name in missing),
                field="field_values",
            )

    await engine.call(resolve(fp, EngineOperation.UPDATE_FORM_FIELD_VALUES), json={"formFieldValues": records})

    markdown = "# Form Filling Complete\n\n"
    markdown += f"**Document:** {info.get('title') or 'Untitled Document'}  \n"
    markdown += fingerprint_lines(fp)
    markdown += "**Status:** Successfully updated  \n"
    markdown += f"**Fields Updated:** {len(records)}  \n\n---\n\n"
    markdown += "## Successfully Updated Fields\n\n"
    for record in records:
        shown = record["value"] if len(record["value"]) <= 50 else record["value"][:47] + "..."
        markdown += f'- **{record["name"]}:** Updated to "{shown}"\n'

    return ToolResult(success=True, markdown=markdown, details={"updated": [r["name"] for r in records]})
