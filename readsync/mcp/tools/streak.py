from readsync.mcp.client import ReadSyncClient


async def streak_status(client: ReadSyncClient) -> dict:
    status = await client.get("/api/profile/streak")
    if isinstance(status, dict) and status.get("error"):
        return status

    profile = await client.get("/api/profile")
    if isinstance(profile, dict) and not profile.get("error"):
        status["level"] = profile["current_level"]
        status["total_xp"] = profile["total_xp"]
    return status


async def use_pardon(client: ReadSyncClient) -> dict:
    result = await client.post("/api/profile/streak/pardon")
    if isinstance(result, dict) and result.get("error"):
        return result
    return {
        "current_streak": result["current_streak"],
        "longest_streak": result["longest_streak"],
        "last_pardon_date": result["last_pardon_date"],
    }
