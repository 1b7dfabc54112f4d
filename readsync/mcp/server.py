from fastmcp import FastMCP

from readsync.mcp.client import ReadSyncClient
from readsync.mcp.tools.session import (
    finish_session as _finish_session,
    log_pages as _log_pages,
    pause_session as _pause_session,
    resume_session as _resume_session,
    start_session as _start_session,
)
from readsync.mcp.tools.streak import streak_status as _streak_status, use_pardon as _use_pardon


def create_mcp_server(client: ReadSyncClient) -> FastMCP:
    mcp = FastMCP(
        name="readsync",
        instructions=(
            "ReadSync tracks timed reading sessions, reading streaks and XP on this "
            "device and keeps them in step with the paired device. Books are "
            "identified by title and author."
        ),
    )

    @mcp.tool()
    async def start_session(
        title: str,
        author: str,
        start_page: int | None = None,
        replace: bool = False,
    ) -> dict:
        """Start a timed reading session. If another session is running (on
        either device) this returns a conflict; call again with replace=true to
        end it and start the new one."""
        return await _start_session(client, title=title, author=author, start_page=start_page, replace=replace)

    @mcp.tool()
    async def pause_session() -> dict:
        """Pause the running reading session."""
        return await _pause_session(client)

    @mcp.tool()
    async def resume_session() -> dict:
        """Resume the paused reading session."""
        return await _resume_session(client)

    @mcp.tool()
    async def finish_session(end_page: int | None = None) -> dict:
        """Finish the active session, optionally at a given page. A session
        with no pages read is discarded instead of saved."""
        return await _finish_session(client, end_page=end_page)

    @mcp.tool()
    async def log_pages(title: str, author: str, pages: int) -> dict:
        """Record pages read without a timer (negative to correct an
        over-count)."""
        return await _log_pages(client, title=title, author=author, pages=pages)

    @mcp.tool()
    async def streak_status() -> dict:
        """Current and longest streak, today's deadline, pardon availability,
        level and XP."""
        return await _streak_status(client)

    @mcp.tool()
    async def use_pardon() -> dict:
        """Save a streak broken by exactly one missed day, if a pardon is
        available."""
        return await _use_pardon(client)

    return mcp
