"""
Atomic units for the settlement engine.

Every multi-step ledger operation runs inside one MongoDB multi-document
transaction: snapshot reads, majority writes, primary only. Concurrent
transactions that write the same wallet or debt document conflict in the
storage engine and one of them aborts, so no application-level locking is
needed. Each unit is bounded by a client-side deadline (pymongo.timeout).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import pymongo
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession
from pymongo.errors import PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.read_preferences import ReadPreference
from pymongo.write_concern import WriteConcern

from money_manager.core.config import settings
from money_manager.core.errors import LedgerError, LedgerTimeoutError, StorageError

logger = logging.getLogger(__name__)


def translate_storage_error(exc: PyMongoError) -> LedgerError:
    """Map a driver error onto the ledger taxonomy."""
    if exc.timeout:
        return LedgerTimeoutError(f"Ledger transaction timed out: {exc}")
    return StorageError(f"Ledger storage failure: {exc}")


class TransactionRunner:
    """Opens sessions and transactions on a Motor client."""

    def __init__(self, client: AsyncIOMotorClient, timeout_seconds: Optional[float] = None):
        self.client = client
        self.timeout_seconds = (
            settings.TRANSACTION_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[AsyncIOMotorClientSession]:
        """
        Yield a session bound to a fresh transaction.

        The transaction commits when the block exits normally and aborts
        when it raises. Ledger errors propagate unchanged; driver errors are
        translated to LedgerTimeoutError or StorageError.
        """
        try:
            with pymongo.timeout(self.timeout_seconds):
                async with await self.client.start_session() as session:
                    async with session.start_transaction(
                        read_concern=ReadConcern("snapshot"),
                        write_concern=WriteConcern("majority"),
                        read_preference=ReadPreference.PRIMARY,
                    ):
                        yield session
        except LedgerError:
            raise
        except PyMongoError as exc:
            logger.warning("Transaction aborted by storage layer: %s", exc)
            raise translate_storage_error(exc) from exc
