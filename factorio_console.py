"""
Factorio console access over RCON

The wire protocol is handled by the ``rcon`` package (``rcon.source.Client``).
Its client is blocking, so every call runs in a worker thread. This module
maps the library's errors onto the bot's own exception types and parses the
``/players`` listing, which the library returns as plain text.
"""

import asyncio
import logging
import re
from typing import List, Optional, Tuple

from rcon.exceptions import EmptyResponse, SessionTimeout, WrongPassword
from rcon.source import Client

from errors import AuthenticationError, CloseError, QueryError, RconConnectionError
from models import PlayerStatus

logger = logging.getLogger(__name__)

PLAYERS_COMMAND = "/players"
_PLAYERS_HEADER = re.compile(r"^Players \((\d+)\):$")
_ONLINE_SUFFIX = " (online)"

# Failures the library reports for a broken or confused exchange
_TRANSPORT_ERRORS = (OSError, EmptyResponse, SessionTimeout, ValueError)


def split_address(address: str) -> Tuple[str, int]:
    """Split ``host:port`` (or ``[v6]:port``) into its parts"""
    host, sep, port = address.strip().rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"Address {address!r} is not in host:port form")

    port_number = int(port)
    if not 0 < port_number < 65536:
        raise ValueError(f"Port {port_number} in {address!r} is out of range")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, port_number


def parse_players(text: str) -> List[PlayerStatus]:
    """
    Parse the reply to Factorio's ``/players`` command

    The reply looks like::

        Players (3):
          alice (online)
          bob
          carol (online)
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        raise QueryError("Empty reply to /players")

    header = _PLAYERS_HEADER.match(lines[0])
    if not header:
        raise QueryError(f"Unexpected reply to /players: {lines[0][:80]!r}")

    players = []
    for line in lines[1:]:
        if line.endswith(_ONLINE_SUFFIX):
            players.append(PlayerStatus(line[: -len(_ONLINE_SUFFIX)], True))
        else:
            players.append(PlayerStatus(line, False))

    expected = int(header.group(1))
    if expected != len(players):
        logger.debug(f"/players header announced {expected} players, parsed {len(players)}")

    return players


class FactorioConsole:
    """One open RCON connection, as handed to ConnectionManager"""

    def __init__(self, address: str, client: Client):
        self.address = address
        self._client: Optional[Client] = client

    @property
    def closed(self) -> bool:
        return self._client is None

    async def authenticate(self, password: str):
        client = self._require_client()
        try:
            await asyncio.to_thread(client.login, password)
        except WrongPassword as e:
            raise AuthenticationError(f"{self.address} rejected the RCON password") from e
        except _TRANSPORT_ERRORS as e:
            raise RconConnectionError(
                f"Authentication exchange with {self.address} failed: {e!r}"
            ) from e
        logger.debug(f"Authenticated to {self.address}")

    async def execute(self, command: str) -> str:
        """Run a console command and return the server's reply"""
        client = self._require_client()
        try:
            return await asyncio.to_thread(client.run, command)
        except _TRANSPORT_ERRORS as e:
            raise QueryError(f"Command {command!r} on {self.address} failed: {e!r}") from e

    async def query_players(self) -> List[PlayerStatus]:
        return parse_players(await self.execute(PLAYERS_COMMAND))

    async def close(self):
        client, self._client = self._client, None
        if client is None:
            return

        try:
            await asyncio.to_thread(client.close)
        except OSError as e:
            raise CloseError(f"Error closing RCON session to {self.address}: {e!r}") from e

    def _require_client(self) -> Client:
        if self._client is None:
            raise QueryError(f"RCON session to {self.address} is closed")
        return self._client


async def connect(address: str, timeout: float = 10.0) -> FactorioConsole:
    """Open a TCP connection to ``address``; authentication is left to the caller"""
    try:
        host, port = split_address(address)
        client = Client(host, port, timeout=timeout)
        await asyncio.to_thread(client.connect)
    except (ValueError, OSError) as e:
        raise RconConnectionError(f"Could not connect to {address}: {e!r}") from e

    logger.debug(f"TCP connection to {address} established")
    return FactorioConsole(address, client)
