"""Small one-off script to exercise a live Document Engine through the tools.

Usage (from repo root):
  set -o allexport; source .env; set +o allexport
  PYTHONPATH=. .venv/bin/python scripts/engine_smoke.py [document_id]

This script will NOT print your API token. It checks engine health, lists
documents, reads info for one document, and previews (never applies) an
email-address redaction on it.
"""
from __future__ import annotations

import asyncio
import sys

from docplanner.config import settings
from docplanner.integrations.engine_client import EngineClient, TokenAuth
from docplanner.tools.registry import run_tool


async def main(document_id: str | None = None) -> None:
    print("Document Engine smoke test starting...")
    # Do not print secrets
    engine = EngineClient(auth=TokenAuth())
    print(f"Using DOCUMENT_ENGINE_BASE_URL: {settings.DOCUMENT_ENGINE_BASE_URL}")

    health = await run_tool("health_check", engine, {})
    print(f"Engine status: {health.details.get('status')}")
    if health.details.get("status") != "operational":
        print(health.markdown)
        return

    listing = await run_tool("list_documents", engine, {"limit": 5})
    if not listing.success:
        print("List failed:", listing.error)
        return
    documents = listing.details.get("documents", [])
    print(f"Listed {len(documents)} documents")

    document_id = document_id or (documents[0]["id"] if documents else None)
    if not document_id:
        print("No document to inspect; upload one and pass its id")
        return

    fingerprint = {"document_id": document_id}
    info = await run_tool("read_document_info", engine, {"document_fingerprint": fingerprint})
    print(info.markdown if info.success else f"Info failed: {info.error}")

    preview = await run_tool(
        "create_redaction",
        engine,
        {"document_fingerprint": fingerprint, "redaction_type": "preset", "preset": "email-address"},
    )
    if preview.success:
        print(f"Redaction preview: {preview.details['match_count']} matches on pages {preview.details['pages']}")
        print("Pending redactions were NOT applied; delete them with delete_annotations if unwanted")
    else:
        print("Redaction preview failed:", preview.error)


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
