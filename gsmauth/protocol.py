"""TCP framing for auth service requests and responses."""

import json
from typing import Optional, Tuple


HASH_AND_STORE = "HASH_AND_STORE"
STATS = "STATS"
PING = "PING"
OK = "OK"
ERROR = "ERROR"

DEFAULT_MAX_MESSAGE_SIZE = 64 * 1024


def encode_message(command, payload=None):
    """Encode a protocol message.
    
    Format: <command> <length> <payload>
    """
    if payload is None:
        payload = b""
    elif isinstance(payload, str):
        payload = payload.encode('utf-8')
    elif isinstance(payload, dict):
        payload = json.dumps(payload).encode('utf-8')
    
    return f"{command} {len(payload)} ".encode('utf-8') + payload


def decode_message(data):
    """Decode a protocol message.
    
    Returns: (command, payload_bytes)
    """
    parts = data.split(b" ", 2)
    if len(parts) < 2:
        return None, None
    
    try:
        command = parts[0].decode('utf-8')
        length = int(parts[1])
    except (ValueError, UnicodeDecodeError):
        return None, None
    
    payload = parts[2] if len(parts) == 3 else b""
    if len(payload) != length:
        return None, None
    
    return command, payload


def parse_header(buffer: bytes, max_size: int) -> Optional[Tuple[int, int]]:
    """Locate the end of the header in buffer.
    
    Returns: (header_length, payload_length) once both separators have
    arrived, None while more bytes are needed.
    
    Raises:
        ValueError: if the header is malformed or announces more than max_size bytes
    """
    first_space = buffer.find(b" ")
    if first_space == -1:
        if len(buffer) > max_size:
            raise ValueError("header too long")
        return None
    
    second_space = buffer.find(b" ", first_space + 1)
    if second_space == -1:
        if len(buffer) > max_size:
            raise ValueError("header too long")
        return None
    
    length = int(buffer[first_space + 1:second_space].decode('utf-8'))
    if length < 0 or length > max_size:
        raise ValueError(f"payload length {length} out of range")
    return second_space + 1, length


def read_message(sock, max_size=DEFAULT_MAX_MESSAGE_SIZE):
    """Read a complete message from socket.
    
    Args:
        sock: Socket to read from
        max_size: Maximum payload size in bytes
    
    Returns: (command, payload_bytes) or (None, None) on error
    """
    buffer = b""
    
    while True:
        chunk = sock.recv(4096)
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
        if len(buffer) >= header_length + length:
            return decode_message(buffer[:header_length + length])
