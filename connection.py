"""Self-healing RCON connection used by the scan loop"""
import functools
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import factorio_console
from errors import RosterQueryError
from models import RosterSnapshot

logger = logging.getLogger(__name__)

MAX_QUERY_ATTEMPTS = 3

# connector(address) -> session with authenticate / query_players / close
Connector = Callable[[str], Awaitable[Any]]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class ConnectionManager:
    """
    Owns the single RCON session and hides reconnects behind get_roster()

    Nothing outside this class touches the session handle.
    """

    def __init__(
        self,
        address: str,
        password: str,
        connector: Optional[Connector] = None,
        timeout: float = 10.0,
    ):
        self.address = address
        self._password = password
        self._connector = connector or functools.partial(factorio_console.connect, timeout=timeout)
        self._session = None
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def connect(self):
        """Open and authenticate a new session"""
        if self._session is not None:
            await self.disconnect()

        session = await self._connector(self.address)
        try:
            await session.authenticate(self._password)
        except Exception:
            try:
                await session.close()
            except Exception as close_error:
                logger.warning(f"⚠️ Could not close rejected session to {self.address}: {close_error}")
            raise

        self._session = session
        self._state = ConnectionState.CONNECTED
        logger.info(f"✓ Connected to RCON server {self.address}")

    async def disconnect(self):
        """Close the session; local state is reset even if closing fails"""
        session, self._session = self._session, None
        self._state = ConnectionState.DISCONNECTED
        if session is None:
            return

        await session.close()
        logger.debug(f"Disconnected from {self.address}")

    async def get_roster(self) -> RosterSnapshot:
        """
        Query the current player roster

        Connects lazily. A failed query is retried on a fresh session, up to
        MAX_QUERY_ATTEMPTS queries in total. Errors from the reconnect itself
        are raised as they are.
        """
        if self._state is ConnectionState.DISCONNECTED:
            await self.connect()

        last_error: Optional[Exception] = None
        for attempt in range(1, MAX_QUERY_ATTEMPTS + 1):
            try:
                statuses = await self._session.query_players()
            except Exception as e:
                last_error = e
                logger.warning(
                    f"⚠️ Roster query on {self.address} failed "
                    f"(attempt {attempt}/{MAX_QUERY_ATTEMPTS}): {e}"
                )
                if attempt < MAX_QUERY_ATTEMPTS:
                    await self.disconnect()
                    await self.connect()
                continue

            if attempt > 1:
                logger.info(
                    f"✓ Roster query on {self.address} recovered after {attempt - 1} retries"
                )
            return RosterSnapshot.from_statuses(statuses)

        await self._drop_session()
        raise RosterQueryError(self.address, MAX_QUERY_ATTEMPTS, last_error) from last_error

    async def _drop_session(self):
        # The next get_roster() starts from a fresh connection
        try:
            await self.disconnect()
        except Exception as e:
            logger.error(f"✗ Error closing session to {self.address}: {e}")
