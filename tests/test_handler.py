"""Tests for the HashAndStore request handler."""

import asyncio

import pytest

from conftest import FailingStore
from gsmauth.handler import AuthHandler, DEFAULT_CODE_TTL
from gsmauth.hashing import generate_hash
from gsmauth.messages import HashedCode, PhoneNumber
from gsmauth.store import StoreTimeout, StoreUnavailable


class TestHashAndStore:
    """Tests for AuthHandler.hash_and_store."""
    
    @pytest.fixture
    def handler(self, memory_store, loggers):
        return AuthHandler(memory_store, loggers)
    
    def test_default_ttl_is_three_minutes(self):
        """Test the code lifetime default."""
        assert DEFAULT_CODE_TTL == 180
    
    @pytest.mark.asyncio
    async def test_returns_hash_of_number(self, handler):
        """Test the response carries the number's hash."""
        result = await handler.hash_and_store(PhoneNumber(number="+15551234567"))
        assert isinstance(result, HashedCode)
        assert result.code == generate_hash("+15551234567")
    
    @pytest.mark.asyncio
    async def test_write_then_expire(self, handler, memory_store, clock):
        """Test the record reads back now and is gone after the TTL."""
        result = await handler.hash_and_store(PhoneNumber(number="+15551234567"))
        assert await memory_store.get("+15551234567") == result.code
        clock.advance(DEFAULT_CODE_TTL - 1)
        assert await memory_store.get("+15551234567") == result.code
        clock.advance(1)
        assert await memory_store.get("+15551234567") is None
    
    @pytest.mark.asyncio
    async def test_custom_ttl(self, memory_store, loggers, clock):
        """Test a short TTL is honoured."""
        handler = AuthHandler(memory_store, loggers, ttl_seconds=2)
        await handler.hash_and_store(PhoneNumber(number="+15551234567"))
        clock.advance(2)
        assert await memory_store.get("+15551234567") is None
    
    @pytest.mark.asyncio
    async def test_success_logs_one_info_event(self, handler, loggers):
        """Test a success writes exactly one info event and no errors."""
        result = await handler.hash_and_store(PhoneNumber(number="+15551234567"))
        events = loggers.info_events()
        assert len(events) == 1
        assert events[0]["level"] == "INFO"
        assert events[0]["number"] == "+15551234567"
        assert events[0]["code"] == result.code
        assert loggers.error_events() == []
    
    @pytest.mark.asyncio
    async def test_empty_number_accepted(self, handler, memory_store):
        """Test empty phone numbers hash and store like any other."""
        result = await handler.hash_and_store(PhoneNumber(number=""))
        assert result.code == generate_hash("")
        assert await memory_store.get("") == result.code
    
    @pytest.mark.asyncio
    async def test_same_number_twice_last_write_wins(self, handler, memory_store, clock):
        """Test resubmission recomputes the same code and overwrites the record."""
        first = await handler.hash_and_store(PhoneNumber(number="+15551234567"))
        clock.advance(100)
        second = await handler.hash_and_store(PhoneNumber(number="+15551234567"))
        assert first.code == second.code
        clock.advance(100)
        assert await memory_store.get("+15551234567") == second.code
    
    @pytest.mark.asyncio
    async def test_concurrent_numbers_independent(self, handler, memory_store):
        """Test concurrent calls each store the hash of their own number."""
        numbers = [f"+1555000{i:04d}" for i in range(1, 101)]
        results = await asyncio.gather(*(handler.hash_and_store(PhoneNumber(number=n)) for n in numbers))
        for number, result in zip(numbers, results):
            assert result.code == generate_hash(number)
            assert await memory_store.get(number) == generate_hash(number)
        assert len(memory_store.entries) == 100


class TestHashAndStoreFailures:
    """Tests for store failures during hash_and_store."""
    
    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [StoreUnavailable("redis unavailable: refused"), StoreTimeout("redis timeout")])
    async def test_store_error_propagates_unchanged(self, loggers, error):
        """Test the store's exception reaches the caller as-is."""
        store = FailingStore(error)
        handler = AuthHandler(store, loggers)
        with pytest.raises(type(error)) as exc_info:
            await handler.hash_and_store(PhoneNumber(number="+15551234567"))
        assert exc_info.value is error
        assert store.set_calls == [("+15551234567", generate_hash("+15551234567"), 180)]
    
    @pytest.mark.asyncio
    async def test_store_error_logs_one_error_event(self, loggers):
        """Test a failure writes exactly one error event and no info event."""
        handler = AuthHandler(FailingStore(StoreUnavailable("refused")), loggers)
        with pytest.raises(StoreUnavailable):
            await handler.hash_and_store(PhoneNumber(number="+15551234567"))
        events = loggers.error_events()
        assert len(events) == 1
        assert events[0]["level"] == "ERROR"
        assert events[0]["number"] == "+15551234567"
        assert events[0]["error"] == "refused"
        assert loggers.info_events() == []
    
    @pytest.mark.asyncio
    async def test_cancellation_skips_logging(self, loggers):
        """Test a cancelled write propagates without log events."""
        class HangingStore(FailingStore):
            async def set(self, key, value, ttl_seconds):
                await asyncio.sleep(3600)
        
        handler = AuthHandler(HangingStore(None), loggers)
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(handler.hash_and_store(PhoneNumber(number="+1")), timeout=0.05)
        assert loggers.info_events() == []
        assert loggers.error_events() == []
