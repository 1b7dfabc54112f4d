import asyncio
from pathlib import Path

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from readsync.app import create_app, startup
from readsync.config import DB_PATH
from readsync.database import engine
from readsync.mcp.client import ReadSyncClient
from readsync.mcp.server import create_mcp_server


async def prepare(app: FastAPI) -> None:
    """Run startup outside the server loop; ASGITransport skips lifespan events."""
    await startup(app)
    # Pooled aiosqlite connections are bound to this loop
    await engine.dispose()


def main():
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)

    app = create_app()
    asyncio.run(prepare(app))

    transport = ASGITransport(app=app)
    http = AsyncClient(transport=transport, base_url="http://localhost")
    client = ReadSyncClient(http)
    mcp = create_mcp_server(client)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
