"""Auth server - issues hashed codes for phone numbers over TCP."""

import argparse
import asyncio
import json
import math
import signal
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional, Set, Tuple

from pydantic import ValidationError

from .config import Config, ConfigError
from .handler import AuthHandler, DEFAULT_CODE_TTL
from .logger import Loggers, setup_loggers
from .messages import PhoneNumber
from .metrics import Metrics
from .prometheus_metrics import (
    OUTCOME_DEADLINE_EXCEEDED, OUTCOME_INVALID, OUTCOME_STORE_FAILURE, OUTCOME_STORED, PrometheusMetrics
)
from .protocol import ERROR, HASH_AND_STORE, OK, PING, STATS
from .protocol_async import read_message_async, write_message_async
from .store import MemoryStore, RedisStore, StoreError, TimeBoundStore


# Constants
DEFAULT_REQUEST_TIMEOUT = 5.0  # seconds
DEFAULT_DRAIN_TIMEOUT = 30.0  # seconds
DEFAULT_MAX_CONNECTIONS = 1000
DEFAULT_MAX_MESSAGE_SIZE = 64 * 1024
DRAIN_POLL_INTERVAL = 0.1  # seconds


class StartupError(RuntimeError):
    """The service cannot start; nothing has been left running."""


def create_store(config: Config) -> TimeBoundStore:
    """Build the configured store backend without connecting it."""
    backend = config.get("store", "backend", "redis")
    if backend == "memory":
        return MemoryStore()
    if backend == "redis":
        return RedisStore(
            host=config.get("redis", "host", "localhost"),
            port=config.get("redis", "port", 6379),
            db=config.get("redis", "db", 0),
            password=config.get("redis", "password"),
            socket_timeout=config.get("redis", "socket_timeout", 5.0)
        )
    raise StartupError(f"Unknown store backend: {backend}")


@asynccontextmanager
async def open_store(config: Config):
    """Connect the configured store and close it on every exit path.

    Raises:
        StartupError: if the store cannot be reached
    """
    store = create_store(config)
    try:
        await store.connect()
    except StoreError as e:
        await store.close()
        raise StartupError(f"failed to initialize store: {e}") from e
    try:
        yield store
    finally:
        await store.close()


class AuthServer:
    """Serves HASH_AND_STORE, STATS and PING, one request per connection."""

    def __init__(self, handler: AuthHandler, loggers: Loggers, config: Optional[Config] = None,
                 host: Optional[str] = None, port: Optional[int] = None):
        self.config = config or Config()
        self.handler = handler
        self.loggers = loggers

        self.host = host or self.config.get("server", "address", "0.0.0.0")
        self.port = port if port is not None else self.config.get("server", "port", 44044)
        self.request_timeout = self.config.get("server", "request_timeout", DEFAULT_REQUEST_TIMEOUT)
        self.drain_timeout = self.config.get("server", "drain_timeout", DEFAULT_DRAIN_TIMEOUT)
        self.max_connections = self.config.get("server", "max_connections", DEFAULT_MAX_CONNECTIONS)
        self.max_message_size = self.config.get("server", "max_message_size", DEFAULT_MAX_MESSAGE_SIZE)

        self.metrics = Metrics()
        if self.config.get("monitoring", "prometheus_enabled", False):
            self.prometheus_metrics = PrometheusMetrics(self.config.get("monitoring", "prometheus_port", 9090))
        else:
            self.prometheus_metrics = None

        self.active_connections: Set[asyncio.StreamWriter] = set()
        self.connection_lock = None  # Will be asyncio.Lock after start()
        self.shutdown_event = None  # Will be asyncio.Event after start()
        self.server = None
        self.running = False

    async def start(self):
        """Bind the listening socket.

        Raises:
            StartupError: if the configured address cannot be bound
        """
        self.connection_lock = asyncio.Lock()
        self.shutdown_event = asyncio.Event()

        try:
            self.server = await asyncio.start_server(self._handle_client_async, self.host, self.port)
        except OSError as e:
            raise StartupError(f"failed to listen on {self.host}:{self.port}: {e}") from e

        # Port 0 asks the OS for a free port
        self.port = self.server.sockets[0].getsockname()[1]

        if self.prometheus_metrics:
            self.prometheus_metrics.start()
            self.loggers.info.info("Prometheus metrics enabled", port=self.prometheus_metrics.port)

        self.running = True
        self.loggers.info.info("Auth server listening", host=self.host, port=self.port)

    async def serve_forever(self):
        """Serve until request_shutdown() is called, then drain and stop."""
        await self.shutdown_event.wait()
        await self.stop()

    def request_shutdown(self):
        """Ask serve_forever to stop. Safe to call from a signal handler."""
        if self.shutdown_event is not None:
            self.shutdown_event.set()

    async def stop(self):
        """Stop accepting connections and drain the in-flight ones."""
        if not self.running:
            return
        self.loggers.info.info("Shutting down the server gracefully...")
        self.running = False

        if self.server:
            self.server.close()

        await self._graceful_shutdown()

        if self.server:
            await self.server.wait_closed()
        self.loggers.info.info("Auth server stopped")

    async def _graceful_shutdown(self):
        """Wait for open connections to finish, then force close the rest."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.drain_timeout
        while loop.time() < deadline:
            async with self.connection_lock:
                if len(self.active_connections) == 0:
                    return
            await asyncio.sleep(DRAIN_POLL_INTERVAL)

        async with self.connection_lock:
            remaining = list(self.active_connections)
            self.active_connections.clear()

        self.loggers.info.warn("Force closing remaining connections", count=len(remaining))
        for writer in remaining:
            try:
                writer.close()
                await writer.wait_closed()
            except (OSError, ConnectionError, RuntimeError) as e:
                self.loggers.info.debug("Error closing connection during shutdown", error=str(e))

    async def _handle_client_async(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle a single client request.

        Args:
            reader: Async stream reader
            writer: Async stream writer
        """
        address = writer.get_extra_info('peername')

        try:
            async with self.connection_lock:
                if len(self.active_connections) >= self.max_connections:
                    self.loggers.info.warn("Connection limit reached", max=self.max_connections, address=str(address))
                    await self._send_error_async(writer, "Server connection limit reached")
                    return
                self.active_connections.add(writer)
                connection_count = len(self.active_connections)
            if self.prometheus_metrics:
                self.prometheus_metrics.update_active_connections(connection_count)

            try:
                command, payload = await asyncio.wait_for(
                    read_message_async(reader, max_size=self.max_message_size),
                    timeout=self.request_timeout
                )
            except asyncio.TimeoutError:
                self.loggers.info.warn("Request timeout", address=str(address))
                await self._send_error_async(writer, "Request timeout")
                return

            if command is None:
                await self._send_error_async(writer, "Invalid message or message too large")
                return

            if command == HASH_AND_STORE:
                await self._handle_hash_and_store_async(writer, payload, address)
            elif command == STATS:
                await self._handle_stats_async(writer)
            elif command == PING:
                await write_message_async(writer, OK, "pong")
            else:
                await self._send_error_async(writer, "Invalid command")
                self.loggers.info.warn("Invalid command received", command=command, address=str(address))
        except Exception as e:
            self.loggers.error.error("Error handling client", error=str(e), address=str(address))
            await self._send_error_async(writer, "Internal error")
        finally:
            async with self.connection_lock:
                self.active_connections.discard(writer)
                connection_count = len(self.active_connections)
            if self.prometheus_metrics:
                self.prometheus_metrics.update_active_connections(connection_count)
            try:
                writer.close()
                await writer.wait_closed()
            except (OSError, ConnectionError, RuntimeError) as e:
                self.loggers.info.debug("Error closing client connection", error=str(e))

    def _parse_hash_request(self, payload: bytes) -> Tuple[PhoneNumber, float]:
        """Parse a HASH_AND_STORE payload into the request and its deadline.

        Raises:
            ValueError: if the payload is not a valid request
        """
        try:
            data = json.loads(payload.decode('utf-8'))
            request = PhoneNumber.model_validate(data)
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            raise ValueError(str(e)) from e

        timeout = data.get("timeout")
        if timeout is None:
            return request, self.request_timeout
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or not math.isfinite(timeout) or timeout <= 0:
            raise ValueError("timeout must be a positive finite number of seconds")
        return request, timeout

    async def _handle_hash_and_store_async(self, writer: asyncio.StreamWriter, payload: bytes, address):
        """Handle HASH_AND_STORE, bounding the store write by the caller's deadline."""
        try:
            request, timeout = self._parse_hash_request(payload)
        except ValueError as e:
            await self.metrics.record_invalid_request()
            if self.prometheus_metrics:
                self.prometheus_metrics.record_request(OUTCOME_INVALID)
            await self._send_error_async(writer, f"Invalid request: {e}")
            return

        start_time = time.time()
        try:
            result = await asyncio.wait_for(self.handler.hash_and_store(request), timeout=timeout)
        except asyncio.TimeoutError:
            await self.metrics.record_deadline_exceeded()
            if self.prometheus_metrics:
                self.prometheus_metrics.record_request(OUTCOME_DEADLINE_EXCEEDED)
            self.loggers.info.warn("Deadline exceeded", timeout=timeout, address=str(address))
            await self._send_error_async(writer, "Deadline exceeded")
            return
        except StoreError as e:
            duration = time.time() - start_time
            await self.metrics.record_store_failure(duration)
            if self.prometheus_metrics:
                self.prometheus_metrics.record_request(OUTCOME_STORE_FAILURE, duration)
            await self._send_error_async(writer, str(e))
            return

        duration = time.time() - start_time
        await self.metrics.record_success(duration)
        if self.prometheus_metrics:
            self.prometheus_metrics.record_request(OUTCOME_STORED, duration)
        await write_message_async(writer, OK, result.model_dump_json())

    async def _handle_stats_async(self, writer: asyncio.StreamWriter):
        async with self.connection_lock:
            active = len(self.active_connections)
        stats = await self.metrics.get_stats(active_connections=active)
        await write_message_async(writer, OK, stats)

    async def _send_error_async(self, writer: asyncio.StreamWriter, message: str):
        """Send error message to client.

        Args:
            writer: Client stream writer
            message: Error message
        """
        try:
            await write_message_async(writer, ERROR, message)
        except (OSError, ConnectionError, RuntimeError) as e:
            self.loggers.info.debug("Could not send error to client", error=str(e))


async def main_async(config_file: Optional[str] = None):
    """Compose and run the service until SIGINT or SIGTERM.

    Raises:
        StartupError: if configuration, log sinks, store or listener cannot be set up
    """
    try:
        config = Config(config_file)
    except ConfigError as e:
        raise StartupError(str(e)) from e

    is_valid, errors = config.validate()
    if not is_valid:
        raise StartupError(f"Invalid configuration: {errors}")

    try:
        loggers = setup_loggers(config.get("logging", "env", "production"), config.get("logging", "dir", "logs"))
    except OSError as e:
        raise StartupError(f"cannot open log sinks: {e}") from e

    try:
        async with open_store(config) as store:
            handler = AuthHandler(store, loggers, ttl_seconds=config.get("store", "ttl_seconds", DEFAULT_CODE_TTL))
            server = AuthServer(handler, loggers, config)
            await server.start()

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, server.request_shutdown)

            await server.serve_forever()
    finally:
        loggers.close()


def main(argv=None):
    """Run the auth server."""
    parser = argparse.ArgumentParser(description="GSM Auth server")
    parser.add_argument("--config", default=None, help="Config file (default: config.yaml or GSMAUTH_CONFIG env)")
    args = parser.parse_args(argv)

    try:
        asyncio.run(main_async(args.config))
    except StartupError as e:
        print(f"failed to start: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
