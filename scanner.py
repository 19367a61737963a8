"""Polling loop: fetch roster, diff against the last one, post the changes"""
import asyncio
import logging
from enum import Enum
from typing import List

from models import EMPTY_ROSTER, RosterSnapshot, Transition, TransitionKind
from roster import diff, render

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0


class ScanState(Enum):
    INITIALIZING = "initializing"
    POLLING = "polling"
    SHUTTING_DOWN = "shutting_down"


class RosterScanner:
    """
    Periodically compares the server roster with the previous one

    ``connection`` needs ``address`` and ``get_roster()``; ``notifier``
    needs ``deliver(message)``.
    """

    def __init__(self, connection, notifier, interval: float = DEFAULT_POLL_INTERVAL):
        self.connection = connection
        self.notifier = notifier
        self.interval = interval
        self.state = ScanState.INITIALIZING
        self.reference: RosterSnapshot = EMPTY_ROSTER
        self.stats = {
            'cycles': 0,
            'failed_polls': 0,
            'delivered': 0,
            'failed_deliveries': 0,
        }

    async def run(self, stop: asyncio.Event, done: asyncio.Event):
        """
        Run until ``stop`` is set, then set ``done``

        ``stop`` is only checked at the top of each cycle, so shutdown waits
        for the current sleep and deliveries to finish.
        """
        try:
            await self.load_initial_roster()
            self.state = ScanState.POLLING

            while not stop.is_set():
                logger.debug("scan loop execution")
                await asyncio.sleep(self.interval)
                await self.scan_once()

            self.state = ScanState.SHUTTING_DOWN
            logger.info("🛑 Scan loop canceled, shutting down")
        finally:
            done.set()

    async def load_initial_roster(self):
        try:
            self.reference = await self.connection.get_roster()
        except Exception as e:
            logger.error(
                f"✗ Could not load initial roster from {self.connection.address}: {e}"
            )
            self.reference = EMPTY_ROSTER
            return

        logger.info(
            f"👥 Initial roster: {len(self.reference.online_players())} online, "
            f"{len(self.reference)} known"
        )

    async def scan_once(self) -> List[Transition]:
        """One poll cycle; returns the transitions found"""
        self.stats['cycles'] += 1
        try:
            current = await self.connection.get_roster()
        except Exception as e:
            self.stats['failed_polls'] += 1
            logger.error(
                f"✗ Could not get players from RCON server {self.connection.address}: {e}"
            )
            return []

        transitions = diff(self.reference, current)
        for transition in transitions:
            await self._announce(transition)

        self.reference = current
        return transitions

    async def _announce(self, transition: Transition):
        message = render(transition)
        try:
            await self.notifier.deliver(message)
        except Exception as e:
            self.stats['failed_deliveries'] += 1
            logger.error(f"✗ Could not post change {message!r} to webhook: {e}")
            return

        self.stats['delivered'] += 1
        icon = "🟢" if transition.kind is TransitionKind.LOGGED_IN else "🔴"
        logger.info(f"{icon} {message}")
