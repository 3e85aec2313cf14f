"""HashAndStore request handling."""

from .hashing import generate_hash
from .logger import Loggers
from .messages import HashedCode, PhoneNumber
from .store import StoreError, TimeBoundStore


DEFAULT_CODE_TTL = 180  # seconds


class AuthHandler:
    """Issues hashed codes for phone numbers.

    The store and loggers are shared by every request; the handler itself
    keeps no per-request state, so one instance serves concurrent calls.
    """

    def __init__(self, store: TimeBoundStore, loggers: Loggers, ttl_seconds: int = DEFAULT_CODE_TTL):
        self.store = store
        self.loggers = loggers
        self.ttl_seconds = ttl_seconds

    async def hash_and_store(self, request: PhoneNumber) -> HashedCode:
        """Hash the phone number and keep number -> code in the store for ttl_seconds.

        Store failures are logged to the error sink and re-raised unchanged.
        Cancellation while the write is pending propagates without logging.

        Raises:
            StoreError: if the store write fails
        """
        code = generate_hash(request.number)

        try:
            await self.store.set(request.number, code, self.ttl_seconds)
        except StoreError as e:
            self.loggers.error.error("Failed to store hashed code", number=request.number,
                                     error=str(e), error_type=type(e).__name__)
            raise

        self.loggers.info.info("Stored hashed code", number=request.number, code=code)
        return HashedCode(code=code)
