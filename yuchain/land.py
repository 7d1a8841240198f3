"""The registry of tripods and bronzes that make up a chain."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from yuchain.tripod import Bronze, Tripod


class LandError(LookupError):
    """A name could not be found in the land."""

    kind = "item"

    def __init__(self, name: str) -> None:
        self.missing = name
        super().__init__(f"{self.kind}({name}) not found")


class TripodNotFound(LandError):
    """No tripod has the requested name."""

    kind = "tripod"


class WritingNotFound(LandError):
    """The tripod has no writing with the requested name."""

    kind = "writing"


class ReadingNotFound(LandError):
    """The tripod has no reading with the requested name."""

    kind = "reading"


class BronzeNotFound(LandError):
    """No bronze has the requested name."""

    kind = "bronze"


class Land:
    """Tripods by name and in registration order, and bronzes by name.

    Iterating a land yields its tripods in the order they were registered.
    """

    def __init__(self) -> None:
        self._ordered: list[Tripod] = []
        self._tripods: dict[str, Tripod] = {}
        self._bronzes: dict[str, Bronze] = {}

    def set_bronzes(self, *args: Bronze) -> None:
        for bronze in args:
            self._bronzes[bronze.name()] = bronze

    def set_tripods(self, *args: Tripod) -> None:
        for tripod in args:
            self._tripods[tripod.name()] = tripod
            self._ordered.append(tripod)

    def get_tripod_instance(self, name: str) -> Any:
        """The object a tripod was built for, or ``None``."""
        tripod = self._tripods.get(name)
        return None if tripod is None else tripod.instance

    def get_tripod(self, name: str) -> Optional[Tripod]:
        return self._tripods.get(name)

    def get_bronze(self, name: str) -> Optional[Bronze]:
        return self._bronzes.get(name)

    def get_writing(self, tripod_name: str, wr_name: str) -> Callable[[Any], None]:
        tripod = self._tripods.get(tripod_name)
        if tripod is None:
            raise TripodNotFound(tripod_name)
        writing = tripod.get_writing(wr_name)
        if writing is None:
            raise WritingNotFound(wr_name)
        return writing

    def get_reading(self, tripod_name: str, rd_name: str) -> Callable[[Any], None]:
        tripod = self._tripods.get(tripod_name)
        if tripod is None:
            raise TripodNotFound(tripod_name)
        reading = tripod.get_reading(rd_name)
        if reading is None:
            raise ReadingNotFound(rd_name)
        return reading

    def items(self) -> Iterator[tuple[str, Tripod]]:
        """Pairs of name and tripod."""
        return iter(list(self._tripods.items()))

    def __iter__(self) -> Iterator[Tripod]:
        return iter(list(self._ordered))

    def __len__(self) -> int:
        return len(self._ordered)

    def __contains__(self, name: object) -> bool:
        return name in self._tripods