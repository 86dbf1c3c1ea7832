"""Game session internals. Nothing in here is a supported API."""

import functools
from typing import List
from abc import ABC, abstractmethod
from dataclasses import dataclass


class Session:
    instance_count = 42
    __registry = {}

    def __init__(self, world_name: str = "Default", max_players: int = 4):
        self.__world_name = world_name
        self._players = []
        self._max_players = max_players
        self._joined_handlers = []
        self.on_saved = []
        Session.__registry[world_name] = self

    @property
    def world_name(self) -> str:
        return self.__world_name

    @property
    def player_count(self) -> int:
        return len(self._players)

    @property
    def max_players(self) -> int:
        return self._max_players

    @max_players.setter
    def max_players(self, value: int):
        self._max_players = int(value)

    @functools.cached_property
    def summary(self) -> str:
        return f"{self.__world_name} ({len(self._players)} players)"

    def _add_player(self, name: str) -> int:
        self._players.append(name)
        for handler in list(self._joined_handlers):
            handler(self, name)
        return len(self._players)

    def _add_players(self, names: List[str]) -> int:
        for name in names:
            self._add_player(name)
        return len(self._players)

    def _scores(self, points: list[int]) -> dict[str, int]:
        return dict(zip(self._players, points))

    def _kick(self, name: str, reason: str = "") -> bool:
        if name not in self._players:
            return False
        self._players.remove(name)
        return True

    def save(self) -> int:
        for handler in list(self.on_saved):
            handler(self)
        return len(self.on_saved)

    def add_player_joined(self, handler):
        self._joined_handlers.append(handler)

    def remove_player_joined(self, handler):
        self._joined_handlers.remove(handler)

    @staticmethod
    def _make_id(seed: int) -> str:
        return f"session-{seed:04d}"

    @classmethod
    def _from_config(cls, config: dict) -> "Session":
        return cls(config.get("world", "Default"), config.get("max_players", 4))


class Codec:
    @functools.singledispatchmethod
    def encode(self, value):
        return f"any:{value!r}"

    @encode.register
    def _(self, value: int):
        return f"int:{value}"

    @encode.register
    def _(self, value: str):
        return f"str:{value}"


@dataclass(frozen=True)
class Snapshot:
    tick: int
    label: str = ""


class Node:
    __slots__ = ("_value", "_next")

    def __init__(self, value, next=None):
        self._value = value
        self._next = next


class Locked:
    """Hides its underscore attributes and refuses writes."""
    _secret: str

    def __init__(self, secret: str):
        object.__setattr__(self, "_secret", secret)

    def __getattribute__(self, name):
        if name.startswith("_") and not name.startswith("__"):
            raise AttributeError(name)
        return object.__getattribute__(self, name)

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is read-only")

    def reveal(self) -> str:
        return object.__getattribute__(self, "_secret")


class _NoDirectConstruction(type):
    def __call__(cls, *args, **kwargs):
        raise TypeError(f"{cls.__name__} is created by the host only")


class Registry(metaclass=_NoDirectConstruction):
    def __init__(self, name: str):
        self.name = name
        self._entries = {}


class World(ABC):
    @abstractmethod
    def tick(self):
        ...


class Base:
    __token = "base"


class Derived(Base):
    __token = "derived"


def _bonus(level: int) -> int:
    return level * 10


class _Multiplier:
    def __init__(self, factor):
        self.factor = factor

    def __call__(self, value):
        return value * self.factor


class Rules:
    bonus = staticmethod(_bonus)
    # A plain callable object stored on the class.
    double = _Multiplier(2)
    __tuning = {"gravity": 9.81}
