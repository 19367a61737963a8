from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping


@dataclass(frozen=True)
class PlayerStatus:
    """One line of the server's player listing"""
    name: str
    online: bool


@dataclass(frozen=True)
class RosterSnapshot:
    """Online state of every known player, captured by one roster query"""
    players: Mapping[str, bool] = field(default_factory=dict)

    def __post_init__(self):
        # Own read-only copy of the caller's mapping
        object.__setattr__(self, "players", MappingProxyType(dict(self.players)))

    @classmethod
    def from_statuses(cls, statuses: Iterable[PlayerStatus]) -> "RosterSnapshot":
        players: Dict[str, bool] = {}
        for status in statuses:
            players[status.name] = status.online
        return cls(players)

    def is_online(self, name: str) -> bool:
        """Unknown players count as offline"""
        return self.players.get(name, False)

    def online_players(self) -> List[str]:
        return [name for name, online in self.players.items() if online]

    def __contains__(self, name: object) -> bool:
        return name in self.players

    def __iter__(self) -> Iterator[str]:
        return iter(self.players)

    def __len__(self) -> int:
        return len(self.players)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RosterSnapshot):
            return NotImplemented
        return dict(self.players) == dict(other.players)

    def __hash__(self) -> int:
        return hash(frozenset(self.players.items()))

    def __repr__(self) -> str:
        return f"RosterSnapshot({dict(self.players)!r})"


EMPTY_ROSTER = RosterSnapshot()


class TransitionKind(Enum):
    LOGGED_IN = "logged in"
    LOGGED_OUT = "logged off"


@dataclass(frozen=True)
class Transition:
    """A login or logout detected between two snapshots"""
    kind: TransitionKind
    name: str

    @classmethod
    def logged_in(cls, name: str) -> "Transition":
        return cls(TransitionKind.LOGGED_IN, name)

    @classmethod
    def logged_out(cls, name: str) -> "Transition":
        return cls(TransitionKind.LOGGED_OUT, name)
