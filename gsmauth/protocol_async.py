"""Async TCP framing for the auth service."""

import asyncio
from typing import Optional, Tuple

from .protocol import DEFAULT_MAX_MESSAGE_SIZE, decode_message, encode_message, parse_header


async def read_message_async(reader: asyncio.StreamReader,
                             max_size: int = DEFAULT_MAX_MESSAGE_SIZE) -> Tuple[Optional[str], Optional[bytes]]:
    """Read a complete message from async stream.
    
    Args:
        reader: Async stream reader
        max_size: Maximum payload size in bytes
    
    Returns: (command, payload_bytes) or (None, None) on error or EOF
    """
    buffer = b""
    
    while True:
        chunk = await reader.read(4096)
        if not chunk:
            return None, None
        buffer += chunk
        
        try:
            header = parse_header(buffer, max_size)
        except (ValueError, UnicodeDecodeError):
            return None, None
        if header is None:
            continue
        
        header_length, length = header
        missing = header_length + length - len(buffer)
        if missing > 0:
            try:
                buffer += await reader.readexactly(missing)
            except asyncio.IncompleteReadError:
                return None, None
        return decode_message(buffer[:header_length + length])


async def write_message_async(writer: asyncio.StreamWriter, command: str, payload=None):
    """Write a message to async stream.
    
    Args:
        writer: Async stream writer
        command: Command name
        payload: Optional payload (bytes, str or dict)
    """
    writer.write(encode_message(command, payload))
    await writer.drain()
