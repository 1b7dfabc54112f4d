from httpx import AsyncClient, Response


class ReadSyncClient:
    """Calls the device API for the MCP tools.

    A 4xx answer comes back as ``{"error": True, "status": ..., "detail": ...}``
    where ``detail`` is the API's message or, for a session conflict or an
    unavailable pardon, its structured detail dict. A 204 becomes
    ``{"ok": True}``. 5xx answers raise RuntimeError.
    """

    def __init__(self, http: AsyncClient) -> None:
        self.http = http

    async def request(self, method: str, path: str, **kwargs) -> dict | list:
        return _decode(await self.http.request(method, path, **kwargs))

    async def get(self, path: str, **kwargs) -> dict | list:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> dict | list:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> dict | list:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> dict | list:
        return await self.request("DELETE", path, **kwargs)


def _decode(resp: Response) -> dict | list:
    if resp.status_code == 204:
        return {"ok": True}
    if resp.is_server_error:
        raise RuntimeError(f"ReadSync API error {resp.status_code}: {resp.text}")
    if resp.is_client_error:
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        return {"error": True, "status": resp.status_code, "detail": detail}
    return resp.json()
