from readsync.id import make_uuid
from readsync.mcp.client import ReadSyncClient


async def start_session(
    client: ReadSyncClient,
    title: str,
    author: str,
    start_page: int | None = None,
    replace: bool = False,
) -> dict:
    body: dict = {"book_id": str(make_uuid(title, author)), "replace": replace}
    if start_page is not None:
        body["start_page"] = start_page
    return await client.post("/api/sessions/active", json=body)


async def pause_session(client: ReadSyncClient) -> dict:
    return await client.post("/api/sessions/active/pause")


async def resume_session(client: ReadSyncClient) -> dict:
    return await client.post("/api/sessions/active/resume")


async def finish_session(client: ReadSyncClient, end_page: int | None = None) -> dict:
    body = {"end_page": end_page} if end_page is not None else {}
    return await client.post("/api/sessions/active/complete", json=body)


async def log_pages(client: ReadSyncClient, title: str, author: str, pages: int) -> dict:
    """Quick +N / -N progress outside a timed session."""
    return await client.post(
        "/api/sessions/quick-progress",
        json={"book_id": str(make_uuid(title, author)), "delta": pages},
    )
