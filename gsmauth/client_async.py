"""Async client for the auth server."""

import asyncio
import json
import os
from typing import Optional

from .protocol import HASH_AND_STORE, OK, PING, STATS
from .protocol_async import read_message_async, write_message_async


class AuthError(Exception):
    """The auth server returned an error or could not be reached."""


class AsyncAuthClient:
    """Async client issuing one request per connection."""

    def __init__(self, host=None, port=None, timeout: float = 10.0):
        self.host = host or os.getenv('AUTH_HOST', 'localhost')
        self.port = port or int(os.getenv('AUTH_PORT', '44044'))
        self.timeout = timeout

    async def _request(self, command: str, payload=None) -> bytes:
        """Send one command and return the OK payload.

        Raises:
            AuthError: on connection failure, timeout or an ERROR response
        """
        writer = None
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
            await write_message_async(writer, command, payload)
            response_cmd, response = await asyncio.wait_for(read_message_async(reader), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise AuthError(f"Timed out talking to {self.host}:{self.port}") from e
        except OSError as e:
            raise AuthError(f"Connection error: {e}") from e
        finally:
            if writer is not None:
                writer.close()
                try:
                    await writer.wait_closed()
                except (OSError, ConnectionError):
                    pass

        if response_cmd == OK:
            return response or b""
        if response_cmd is None:
            raise AuthError("Connection closed without a response")
        raise AuthError(response.decode('utf-8') if response else "Unknown error")

    async def hash_and_store(self, number: str, timeout: Optional[float] = None) -> str:
        """Issue a hashed code for number.

        Args:
            number: Phone number, passed through unmodified
            timeout: Optional server-side deadline in seconds

        Returns: the 64-character hex code
        """
        request = {"number": number}
        if timeout is not None:
            request["timeout"] = timeout
        response = await self._request(HASH_AND_STORE, request)
        return json.loads(response.decode('utf-8'))["code"]

    async def stats(self) -> dict:
        """Get server statistics."""
        response = await self._request(STATS)
        return json.loads(response.decode('utf-8'))

    async def ping(self) -> bool:
        """Check that the server answers."""
        try:
            await self._request(PING)
            return True
        except AuthError:
            return False
