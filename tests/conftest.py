"""Shared test doubles for the auth service tests."""

import io
import json
from contextlib import asynccontextmanager

import pytest

from gsmauth.config import Config
from gsmauth.handler import AuthHandler
from gsmauth.logger import Logger, Loggers
from gsmauth.server import AuthServer
from gsmauth.store import MemoryStore, StoreError, TimeBoundStore


class FakeClock:
    """Manually advanced clock for expiry tests."""
    
    def __init__(self, now: float = 1_000_000.0):
        self.now = now
    
    def __call__(self) -> float:
        return self.now
    
    def advance(self, seconds: float):
        self.now += seconds


class FailingStore(TimeBoundStore):
    """Store whose writes always fail with the given error."""
    
    def __init__(self, error: StoreError):
        self.error = error
        self.set_calls = []
    
    async def connect(self):
        pass
    
    async def set(self, key, value, ttl_seconds):
        self.set_calls.append((key, value, ttl_seconds))
        raise self.error
    
    async def get(self, key):
        return None
    
    async def close(self):
        pass


class CapturingLoggers(Loggers):
    """Loggers writing to in-memory buffers."""
    
    def __init__(self):
        self.info_stream = io.StringIO()
        self.error_stream = io.StringIO()
        super().__init__(
            info=Logger("auth", stream=self.info_stream, level="INFO"),
            error=Logger("auth", stream=self.error_stream, level="ERROR")
        )
    
    @staticmethod
    def _events(stream):
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]
    
    def info_events(self):
        return self._events(self.info_stream)
    
    def error_events(self):
        return self._events(self.error_stream)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def loggers():
    return CapturingLoggers()


def make_config(**server_overrides) -> Config:
    """Defaults only, listening on an ephemeral localhost port."""
    config = Config(config_file="does-not-exist.yaml")
    config.set("server", "address", "127.0.0.1")
    config.set("server", "port", 0)
    config.set("server", "drain_timeout", 1.0)
    config.set("monitoring", "prometheus_enabled", False)
    for key, value in server_overrides.items():
        config.set("server", key, value)
    return config


@asynccontextmanager
async def running_server(store, loggers, ttl_seconds=180, **server_overrides):
    """Start an AuthServer on a free port and stop it afterwards."""
    handler = AuthHandler(store, loggers, ttl_seconds=ttl_seconds)
    server = AuthServer(handler, loggers, make_config(**server_overrides))
    await server.start()
    try:
        yield server
    finally:
        await server.stop()
