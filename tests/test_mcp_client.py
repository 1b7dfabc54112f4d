import httpx
import pytest
from readsync.mcp.client import ReadSyncClient


@pytest.mark.asyncio
async def test_client_get_success(client):
    """Client.get returns parsed JSON for a successful response."""
    await client.post("/api/books", json={"title": "Dune", "author": "Frank Herbert"})

    rs = ReadSyncClient(client)
    result = await rs.get("/api/books")
    assert isinstance(result, list)
    assert len(result) == 1
    assert result[0]["title"] == "Dune"


@pytest.mark.asyncio
async def test_client_get_404(client):
    """Client.get returns error dict for 404."""
    rs = ReadSyncClient(client)
    result = await rs.get("/api/sessions/active")
    assert result["error"] is True
    assert result["status"] == 404


@pytest.mark.asyncio
async def test_client_post_409_keeps_structured_detail(client):
    """Client.post passes a conflict's detail through unchanged."""
    rs = ReadSyncClient(client)
    dune = await rs.post("/api/books", json={
        "title": "Dune", "author": "Frank Herbert", "reading_status": "currently_reading",
    })
    emma = await rs.post("/api/books", json={
        "title": "Emma", "author": "Jane Austen", "reading_status": "currently_reading",
    })
    await rs.post("/api/sessions/active", json={"book_id": dune["id"]})

    result = await rs.post("/api/sessions/active", json={"book_id": emma["id"]})
    assert result["error"] is True
    assert result["status"] == 409
    assert result["detail"]["book_title"] == "Dune"


@pytest.mark.asyncio
async def test_client_delete_no_content(client):
    rs = ReadSyncClient(client)
    book = await rs.post("/api/books", json={"title": "Temp", "author": "Nobody"})
    assert await rs.delete(f"/api/books/{book['id']}") == {"ok": True}


@pytest.mark.asyncio
async def test_client_server_error_raises():
    """Client raises on 5xx instead of returning an error dict."""
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="database is locked"))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        rs = ReadSyncClient(http)
        with pytest.raises(RuntimeError, match="500"):
            await rs.put("/api/profile/settings", json={"page_increment_amount": 2})


@pytest.mark.asyncio
async def test_client_error_without_json_body():
    """Client falls back to the response text when a 4xx body is not JSON."""
    transport = httpx.MockTransport(lambda request: httpx.Response(404, text="no route"))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        result = await ReadSyncClient(http).get("/api/nowhere")
    assert result == {"error": True, "status": 404, "detail": "no route"}
