"""FastAPI HTTP gateway for the auth server."""

from fastapi import FastAPI, HTTPException
from typing import Optional, Tuple
from .client_async import AsyncAuthClient, AuthError
from .messages import HashedCode, PhoneNumber


app = FastAPI(title="GSM Auth API", version="1.0.0")
server_address: Optional[Tuple[str, int]] = None


def set_server_address(host: str, port: int):
    """Point the gateway at an auth server."""
    global server_address
    server_address = (host, port)


def _client() -> AsyncAuthClient:
    if not server_address:
        raise HTTPException(status_code=503, detail="Auth server not configured")
    host, port = server_address
    return AsyncAuthClient(host=host, port=port)


@app.get("/health")
async def health():
    """Health check endpoint."""
    reachable = False
    if server_address:
        reachable = await _client().ping()
    return {"status": "healthy", "auth_server_reachable": reachable}


@app.post("/api/hash", response_model=HashedCode)
async def hash_and_store(phone: PhoneNumber):
    """Issue a hashed code for a phone number."""
    client = _client()
    try:
        code = await client.hash_and_store(phone.number)
    except AuthError as e:
        raise HTTPException(status_code=502, detail=f"Failed to issue code: {e}")
    return HashedCode(code=code)


@app.get("/api/metrics")
async def get_metrics():
    """Get auth server statistics."""
    client = _client()
    try:
        return await client.stats()
    except AuthError as e:
        raise HTTPException(status_code=502, detail=f"Failed to fetch stats: {e}")
