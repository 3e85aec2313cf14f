"""Blocking client and CLI for the auth server."""

import socket
import json
import sys
import os
import argparse
from typing import Optional, Dict, Any
from .client_async import AuthError
from .protocol import HASH_AND_STORE, OK, PING, STATS, encode_message, read_message


class AuthClient:
    """Blocking client issuing one request per connection."""

    def __init__(self, host: str = None, port: int = None, timeout: float = 10.0):
        self.host = host or os.getenv('AUTH_HOST', 'localhost')
        self.port = port or int(os.getenv('AUTH_PORT', '44044'))
        self.timeout = timeout

    def _send_command(self, command: str, payload=None) -> bytes:
        """Send one command and return the OK payload.

        Raises:
            AuthError: on connection failure or an ERROR response
        """
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout) as sock:
                sock.sendall(encode_message(command, payload))
                response_cmd, response = read_message(sock)
        except OSError as e:
            raise AuthError(f"Connection error: {e}") from e

        if response_cmd == OK:
            return response or b""
        if response_cmd is None:
            raise AuthError("Connection closed without a response")
        raise AuthError(response.decode('utf-8') if response else "Unknown error")

    def hash_and_store(self, number: str, timeout: Optional[float] = None) -> str:
        """Issue a hashed code for number and return it."""
        request = {"number": number}
        if timeout is not None:
            request["timeout"] = timeout
        response = self._send_command(HASH_AND_STORE, request)
        return json.loads(response.decode('utf-8'))["code"]

    def stats(self) -> Dict[str, Any]:
        """Get server statistics."""
        return json.loads(self._send_command(STATS).decode('utf-8'))

    def ping(self) -> bool:
        try:
            self._send_command(PING)
            return True
        except AuthError:
            return False


def format_output(data: Dict[str, Any], format_type: str = "pretty") -> str:
    """Format output for display."""
    if format_type == "json":
        return json.dumps(data, indent=2)

    if "error" in data:
        return f"Error: {data['error']}"

    if "status" in data and data["status"] == "ok":
        return "Success"

    if "code" in data:
        return data["code"]

    return json.dumps(data, indent=2)


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="GSM Auth CLI")
    parser.add_argument("--host", default=None, help="Server host (default: localhost or AUTH_HOST env)")
    parser.add_argument("--port", type=int, default=None, help="Server port (default: 44044 or AUTH_PORT env)")
    parser.add_argument("--format", choices=["pretty", "json"], default="pretty", help="Output format")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    hash_cmd = subparsers.add_parser("hash", help="Issue a hashed code for a phone number")
    hash_cmd.add_argument("number", help="Phone number")
    hash_cmd.add_argument("--timeout", type=float, default=None, help="Server-side deadline in seconds")

    subparsers.add_parser("stats", help="Server statistics")
    subparsers.add_parser("ping", help="Check the server answers")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    client = AuthClient(host=args.host, port=args.port)

    try:
        if args.command == "hash":
            result = {"number": args.number, "code": client.hash_and_store(args.number, timeout=args.timeout)}
        elif args.command == "stats":
            result = client.stats()
        else:
            result = {"status": "ok"} if client.ping() else {"error": "server unreachable"}
    except AuthError as e:
        result = {"error": str(e)}

    print(format_output(result, args.format))

    if "error" in result:
        sys.exit(1)


if __name__ == "__main__":
    main()
