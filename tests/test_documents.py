#!/usr/bin/env python3
"""Tests for document tools and uploads."""

import base64

import httpx
import pytest

from portfolio_mcp.errors import (
    ArgumentValidationError,
    NotFoundError,
    RequestTimeoutError,
    ToolValidationError,
    UpstreamError,
)
from portfolio_mcp.handlers.documents import (
    MAX_CONTENT_CHARS,
    derive_file_type,
    register_upload,
    truncate_content,
)


def serve(text, status_code=200):
    def handler(request):
        return httpx.Response(status_code, text=text)
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHelpers:
    def test_file_type_from_name(self):
        assert derive_file_type("Agent Handbook.MD") == "md"

    def test_file_type_falls_back_to_url(self):
        assert derive_file_type("Handbook", "https://files.test/docs/handbook.pdf?dl=1") == "pdf"

    def test_file_type_unknown(self):
        assert derive_file_type("README", None) is None

    def test_truncation_marker(self):
        result = truncate_content("x" * 120, limit=100)
        assert result["truncated"] is True
        assert result["total_chars"] == 120
        assert result["content"].startswith("x" * 100)
        assert "[... truncated, showing first 100 of 120 characters]" in result["content"]

    def test_short_text_untouched(self):
        assert truncate_content("hello") == {"content": "hello", "truncated": False, "total_chars": 5}


class TestDocumentContent:
    """get_document_content only fetches allow-listed text types."""

    @pytest.mark.asyncio
    async def test_binary_type_returns_pointer_without_fetching(self, ctx, registry, fake_db, dtiq):
        requests_seen = []

        def handler(request):
            requests_seen.append(request)
            return httpx.Response(200, content=b"MZ")

        ctx.http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        doc = fake_db.add(
            "documents", company_id=dtiq["id"], name="setup.exe", file_type="exe", url="https://files.test/setup.exe"
        )

        result = await registry.invoke(ctx, "get_document_content", {"document_id": doc["id"]})

        assert result["content"] is None
        assert result["url"] == "https://files.test/setup.exe"
        assert requests_seen == []

    @pytest.mark.asyncio
    async def test_markdown_is_fetched(self, ctx, registry, fake_db, dtiq):
        ctx.http = serve("# Handbook\n\nStep one.")
        doc = fake_db.add("documents", company_id=dtiq["id"], name="handbook.md", file_type="md", url="https://files.test/h.md")

        result = await registry.invoke(ctx, "get_document_content", {"document_id": doc["id"]})

        assert result["content"] == "# Handbook\n\nStep one."
        assert result["truncated"] is False

    @pytest.mark.asyncio
    async def test_large_markdown_truncated_with_marker(self, ctx, registry, fake_db, dtiq):
        ctx.http = serve("a" * (MAX_CONTENT_CHARS + 10))
        doc = fake_db.add("documents", company_id=dtiq["id"], name="big.md", file_type="md", url="https://files.test/big.md")

        result = await registry.invoke(ctx, "get_document_content", {"document_id": doc["id"]})

        assert result["truncated"] is True
        assert result["total_chars"] == MAX_CONTENT_CHARS + 10
        assert result["content"].endswith(
            f"[... truncated, showing first {MAX_CONTENT_CHARS} of {MAX_CONTENT_CHARS + 10} characters]"
        )

    @pytest.mark.asyncio
    async def test_file_type_derived_when_missing(self, ctx, registry, fake_db):
        ctx.http = serve("a,b\n1,2")
        doc = fake_db.add("documents", name="export.csv", url="https://files.test/export.csv")
        result = await registry.invoke(ctx, "get_document_content", {"document_id": doc["id"]})
        assert result["file_type"] == "csv"
        assert result["content"] == "a,b\n1,2"

    @pytest.mark.asyncio
    async def test_fetch_http_error(self, ctx, registry, fake_db):
        ctx.http = serve("gone", status_code=410)
        doc = fake_db.add("documents", name="notes.txt", file_type="txt", url="https://files.test/notes.txt")
        with pytest.raises(UpstreamError, match="HTTP 410"):
            await registry.invoke(ctx, "get_document_content", {"document_id": doc["id"]})

    @pytest.mark.asyncio
    async def test_fetch_timeout(self, ctx, registry, fake_db):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        ctx.http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        doc = fake_db.add("documents", name="notes.txt", file_type="txt", url="https://files.test/notes.txt")
        with pytest.raises(RequestTimeoutError):
            await registry.invoke(ctx, "get_document_content", {"document_id": doc["id"]})

    @pytest.mark.asyncio
    async def test_text_document_without_url(self, ctx, registry, fake_db):
        doc = fake_db.add("documents", name="notes.txt", file_type="txt")
        with pytest.raises(ToolValidationError, match="no URL"):
            await registry.invoke(ctx, "get_document_content", {"document_id": doc["id"]})

    @pytest.mark.asyncio
    async def test_unknown_document(self, ctx, registry):
        with pytest.raises(NotFoundError, match="Document not found"):
            await registry.invoke(ctx, "get_document_content", {"document_id": "missing"})


class TestDocumentRegistry:
    """Company and platform documents."""

    @pytest.mark.asyncio
    async def test_add_company_document_logs_activity(self, ctx, registry, fake_db, dtiq):
        result = await registry.invoke(
            ctx, "add_document", {"slug": "dtiq", "name": "Tickets.CSV", "url": "https://files.test/t.csv"}
        )
        assert result["document"]["file_type"] == "csv"
        assert result["document"]["company_id"] == dtiq["id"]
        activity = fake_db.rows("activity")
        assert len(activity) == 1
        assert activity[0]["type"] == "document"

    @pytest.mark.asyncio
    async def test_platform_documents(self, ctx, registry, fake_db, dtiq):
        await registry.invoke(ctx, "add_document", {"name": "Playbook.md"})
        await registry.invoke(ctx, "add_document", {"slug": "dtiq", "name": "Company.md"})

        platform = await registry.invoke(ctx, "list_platform_documents", {})
        company = await registry.invoke(ctx, "list_documents", {"slug": "dtiq"})

        assert [d["name"] for d in platform] == ["Playbook.md"]
        assert [d["name"] for d in company] == ["Company.md"]
        # platform documents have no company to log against
        assert len(fake_db.rows("activity")) == 1


class TestUpload:
    """register_upload backs POST /upload."""

    @pytest.mark.asyncio
    async def test_upload_stores_and_registers(self, ctx, fake_db, dtiq):
        content = base64.b64encode(b"hello world").decode()

        result = await register_upload(ctx, "dtiq", "notes v1.txt", content, "text/plain", category="guide")

        upload = fake_db.uploads[0]
        assert upload["bucket"] == "documents"
        assert upload["data"] == b"hello world"
        assert upload["path"].startswith("dtiq/")
        assert upload["path"].endswith("-notes_v1.txt")
        assert result["url"] == f"https://storage.example.test/documents/{upload['path']}"
        assert result["document"]["storage_path"] == upload["path"]
        assert result["document"]["file_type"] == "txt"
        assert fake_db.rows("activity")[0]["content"] == "Uploaded document: notes v1.txt"

    @pytest.mark.asyncio
    async def test_invalid_base64(self, ctx, fake_db, dtiq):
        with pytest.raises(ArgumentValidationError, match="not valid base64"):
            await register_upload(ctx, "dtiq", "a.txt", "***", "text/plain")
        assert fake_db.uploads == []

    @pytest.mark.asyncio
    async def test_unknown_company(self, ctx, fake_db):
        with pytest.raises(NotFoundError):
            await register_upload(ctx, "nope", "a.txt", "aGk=", "text/plain")
        assert fake_db.uploads == []
