"""Tests for the roster scan loop."""
from __future__ import annotations

import asyncio

import pytest

from errors import DeliveryError, RconConnectionError, RosterQueryError
from models import EMPTY_ROSTER, RosterSnapshot
from scanner import RosterScanner, ScanState

pytestmark = pytest.mark.asyncio


class FakeConnection:
    """Returns scripted rosters (or raises scripted errors) in order."""

    address = "factorio.local:27015"

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def get_roster(self):
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else RosterSnapshot()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeNotifier:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.messages = []
        self.attempted = []
        self.on_deliver = None

    async def deliver(self, message):
        self.attempted.append(message)
        if self.on_deliver:
            self.on_deliver(message)
        if message in self.failing:
            raise DeliveryError(message, 3)
        self.messages.append(message)


def roster(**players):
    return RosterSnapshot(players)


async def test_initial_roster_becomes_reference():
    connection = FakeConnection([roster(alice=True)])
    scanner = RosterScanner(connection, FakeNotifier(), interval=0)

    await scanner.load_initial_roster()

    assert scanner.reference == roster(alice=True)


async def test_failed_initial_fetch_falls_back_to_empty_reference(caplog):
    connection = FakeConnection([RconConnectionError("down"), roster(alice=True, bob=False)])
    notifier = FakeNotifier()
    scanner = RosterScanner(connection, notifier, interval=0)

    with caplog.at_level("ERROR", logger="scanner"):
        await scanner.load_initial_roster()
    await scanner.scan_once()

    assert "Could not load initial roster" in caplog.text
    assert notifier.messages == ["alice logged in"]


async def test_scan_once_delivers_each_transition_in_diff_order():
    connection = FakeConnection([
        roster(alice=True, bob=False),
        roster(alice=False, bob=True, carol=True),
    ])
    notifier = FakeNotifier()
    scanner = RosterScanner(connection, notifier, interval=0)
    await scanner.load_initial_roster()

    transitions = await scanner.scan_once()

    assert len(transitions) == 3
    assert set(notifier.messages) == {"alice logged off", "bob logged in", "carol logged in"}
    assert scanner.reference == roster(alice=False, bob=True, carol=True)


async def test_failed_poll_keeps_reference():
    connection = FakeConnection([
        roster(alice=True),
        RosterQueryError(FakeConnection.address, 3),
        roster(alice=False),
    ])
    notifier = FakeNotifier()
    scanner = RosterScanner(connection, notifier, interval=0)
    await scanner.load_initial_roster()

    assert await scanner.scan_once() == []
    assert scanner.reference == roster(alice=True)
    assert scanner.stats['failed_polls'] == 1

    await scanner.scan_once()
    assert notifier.messages == ["alice logged off"]


async def test_failed_poll_log_names_the_cause(caplog):
    connection = FakeConnection([
        roster(),
        RosterQueryError(FakeConnection.address, 3, ConnectionResetError("peer went away")),
    ])
    scanner = RosterScanner(connection, FakeNotifier(), interval=0)
    await scanner.load_initial_roster()

    with caplog.at_level("ERROR", logger="scanner"):
        await scanner.scan_once()

    assert "failed after 3 attempts: peer went away" in caplog.text


async def test_delivery_failure_does_not_stop_siblings_or_reference_update():
    connection = FakeConnection([roster(), roster(alice=True, bob=True)])
    notifier = FakeNotifier(failing={"alice logged in"})
    scanner = RosterScanner(connection, notifier, interval=0)
    await scanner.load_initial_roster()

    await scanner.scan_once()

    assert notifier.attempted == ["alice logged in", "bob logged in"]
    assert notifier.messages == ["bob logged in"]
    assert scanner.reference == roster(alice=True, bob=True)
    assert scanner.stats['failed_deliveries'] == 1
    assert scanner.stats['delivered'] == 1


async def test_run_stops_at_top_of_cycle_and_acknowledges():
    connection = FakeConnection([roster()])
    scanner = RosterScanner(connection, FakeNotifier(), interval=0)
    stop, done = asyncio.Event(), asyncio.Event()
    stop.set()

    await scanner.run(stop, done)

    assert done.is_set()
    assert scanner.state is ScanState.SHUTTING_DOWN
    # only the initial fetch happened
    assert connection.calls == 1


async def test_cancel_during_delivery_finishes_cycle_then_stops():
    connection = FakeConnection([roster(), roster(alice=True, bob=True)])
    notifier = FakeNotifier()
    stop, done = asyncio.Event(), asyncio.Event()
    notifier.on_deliver = lambda message: stop.set()
    scanner = RosterScanner(connection, notifier, interval=0)

    await asyncio.wait_for(scanner.run(stop, done), timeout=5)

    assert done.is_set()
    # both deliveries of the in-flight cycle went out, nothing after
    assert notifier.messages == ["alice logged in", "bob logged in"]
    assert connection.calls == 2
    assert scanner.reference == roster(alice=True, bob=True)


async def test_run_polls_until_stopped():
    connection = FakeConnection([
        EMPTY_ROSTER,
        roster(alice=True),
        roster(alice=False),
        roster(alice=True),
    ])
    notifier = FakeNotifier()
    scanner = RosterScanner(connection, notifier, interval=0)
    stop, done = asyncio.Event(), asyncio.Event()

    task = asyncio.create_task(scanner.run(stop, done))
    while len(notifier.messages) < 3:
        await asyncio.sleep(0)
    stop.set()
    await asyncio.wait_for(done.wait(), timeout=5)
    await task

    calls_at_stop = connection.calls
    assert notifier.messages[:3] == ["alice logged in", "alice logged off", "alice logged in"]
    assert scanner.state is ScanState.SHUTTING_DOWN

    await asyncio.sleep(0)
    assert connection.calls == calls_at_stop


async def test_done_is_set_even_if_loop_crashes():
    class BrokenConnection(FakeConnection):
        async def get_roster(self):
            return None

    scanner = RosterScanner(BrokenConnection([]), FakeNotifier(), interval=0)
    stop, done = asyncio.Event(), asyncio.Event()

    with pytest.raises(AttributeError):
        await scanner.run(stop, done)

    assert done.is_set()
