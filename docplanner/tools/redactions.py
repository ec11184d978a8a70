# docplanner/tools/redactions.py
"""
Redaction tools. `create_redaction` only previews; `apply_redactions` is the
single place content is removed for good.
"""
from typing import List, Optional

from pydantic import Field, model_validator

from docplanner.core import redactions
from docplanner.core.redactions import RedactionRequest
from docplanner.tools.base import FingerprintInput, ToolResult, fingerprint_lines, tool_handler


class CreateRedactionInput(FingerprintInput, RedactionRequest):
    pass


@tool_handler("create_redaction", CreateRedactionInput, "Error Creating Redaction", "create redaction analysis",
              tips=["Verify the document ID is correct",
                    "For regex patterns, ensure the pattern syntax is valid",
                    "Check that the document contains extractable text"])
async def create_redaction(engine, data: CreateRedactionInput) -> ToolResult:
    fp = data.document_fingerprint
    preview = await redactions.create_redaction(engine, fp, data)
    ids = ", ".join(preview.ids)
    count = len(preview.matches)

    markdown = "# Redaction Creation Complete\n\n"
    markdown += f"**Redaction IDs:** [{ids}]  \n"
    markdown += f"**Matches Found:** {count} instances  \n"
    markdown += f"**Pages Affected:** {', '.join(str(p + 1) for p in preview.pages) or 'None'}  \n"
    markdown += "**Preview Available:** Yes  \n\n---\n\n"

    if count:
        markdown += "## Redaction Summary\n\n"
        markdown += f"### Pattern: {data.describe()}\n"
        markdown += f"- **Matches:** {count} instances\n\n"
        markdown += "### Locations Found\n"
        for page, hits in preview.matches_per_page.items():
            markdown += f"- **Page {page + 1}:** {hits} {'match' if hits == 1 else 'matches'} detected\n"
        markdown += "\n"
    else:
        markdown += "## No Matches Found\n\n"
        markdown += f"**Pattern:** {data.describe()}\n"
        markdown += "**Suggestion:** Try adjusting your pattern or using a different redaction type\n\n"

    markdown += "---\n\n## Important Notes\n"
    markdown += "- **Preview mode:** No content has been permanently redacted yet\n"
    if count:
        markdown += "- **Backup recommended:** Create document backup before applying redactions with `duplicate_document`\n"
    markdown += "\n## Processing Summary\n"
    markdown += "- **Status:** Creation complete\n"
    markdown += fingerprint_lines(fp, bullet="- ")
    markdown += f"- **Redaction IDs:** [{ids}]\n"

    return ToolResult(success=True, markdown=markdown, details=preview.to_dict())


class ApplyRedactionsInput(FingerprintInput):
    redaction_ids: Optional[List[str]] = Field(None, description="IDs returned by create_redaction")
    all: bool = Field(False, description="Apply every pending redaction of the document")

    @model_validator(mode="after")
    def _ids_or_all(self):
        if self.all and self.redaction_ids:
            raise ValueError("Pass either redaction_ids or all=true, not both")
        if not self.all and not self.redaction_ids:
            raise ValueError("At least one redaction ID is required (or all=true)")
        return self


@tool_handler("apply_redactions", ApplyRedactionsInput, "Error Applying Redactions", "apply redactions",
              tips=["Ensure all redaction IDs are valid and exist",
                    "Check that redactions were properly created first using `create_redaction`",
                    "Consider creating a document backup before retrying"])
async def apply_redactions(engine, data: ApplyRedactionsInput) -> ToolResult:
    fp = data.document_fingerprint
    info = await engine.document_info(fp)
    applied = await redactions.apply_redactions(
        engine, fp, redactions.APPLY_ALL if data.all else data.redaction_ids
    )
    count = "all pending" if applied == redactions.APPLY_ALL else str(len(applied))

    markdown = "# Redactions Applied Successfully\n\n"
    markdown += "**Status:** Redactions applied permanently  \n"
    markdown += fingerprint_lines(fp)
    markdown += f"**Redactions Applied:** {count}  \n\n---\n\n"
    markdown += "## Processing Details\n"
    markdown += f"- **Original Document:** {info.get('title') or f'Document {fp.document_id}'}\n"
    markdown += f"- **Pages Processed:** {info.get('pageCount', 0)}\n"
    markdown += "- **Processing Status:** Complete\n"

    return ToolResult(success=True, markdown=markdown, details={"applied": applied})
