"""In-process request statistics for the auth server."""

import time
import asyncio
from typing import Dict
from collections import deque


class Metrics:
    """Track and report request outcomes."""
    
    def __init__(self):
        self.lock = None
        self.start_time = time.time()
        
        self.requests_total = 0
        self.codes_stored = 0
        self.store_failures = 0
        self.deadline_exceeded = 0
        self.invalid_requests = 0
        
        self.request_times = deque(maxlen=100)
    
    async def _ensure_lock(self):
        """Ensure lock is initialized (must be called from async context)."""
        if self.lock is None:
            self.lock = asyncio.Lock()
    
    async def record_success(self, duration: float):
        """Record a code that was hashed and stored."""
        await self._ensure_lock()
        async with self.lock:
            self.requests_total += 1
            self.codes_stored += 1
            self.request_times.append(duration)
    
    async def record_store_failure(self, duration: float):
        """Record a request that failed on the store write."""
        await self._ensure_lock()
        async with self.lock:
            self.requests_total += 1
            self.store_failures += 1
            self.request_times.append(duration)
    
    async def record_deadline_exceeded(self):
        await self._ensure_lock()
        async with self.lock:
            self.requests_total += 1
            self.deadline_exceeded += 1
    
    async def record_invalid_request(self):
        await self._ensure_lock()
        async with self.lock:
            self.requests_total += 1
            self.invalid_requests += 1
    
    async def get_stats(self, active_connections: int = 0) -> Dict:
        """Get current statistics."""
        await self._ensure_lock()
        async with self.lock:
            uptime = time.time() - self.start_time
            
            avg_request_time = 0.0
            if self.request_times:
                avg_request_time = sum(self.request_times) / len(self.request_times)
            
            return {
                "uptime_seconds": round(uptime, 2),
                "requests_total": self.requests_total,
                "codes_stored": self.codes_stored,
                "store_failures": self.store_failures,
                "deadline_exceeded": self.deadline_exceeded,
                "invalid_requests": self.invalid_requests,
                "active_connections": active_connections,
                "avg_request_time_seconds": round(avg_request_time, 4)
            }
