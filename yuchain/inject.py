"""Fill declared references between tripods and bronzes from a land."""

from __future__ import annotations

import logging
from typing import Any, Optional

from yuchain.land import BronzeNotFound, Land, TripodNotFound
from yuchain.tripod import Bronze, Tripod

logger = logging.getLogger(__name__)

OMIT_EMPTY = "omitempty"


class _Ref:
    """A class attribute naming what to inject; ``"name,omitempty"`` makes it optional."""

    def __init__(self, spec: str, *, omit_empty: bool = False) -> None:
        parts = spec.split(",")
        self.target = parts[0]
        self.omit_empty = omit_empty or (len(parts) > 1 and parts[1] == OMIT_EMPTY)
        self.attr = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.attr = name

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if instance is None:
            return self
        return instance.__dict__.get(self.attr)

    def __set__(self, instance: Any, value: Any) -> None:
        instance.__dict__[self.attr] = value

    def __repr__(self) -> str:
        optional = ", omit_empty=True" if self.omit_empty else ""
        return f"{type(self).__name__}({self.target!r}{optional})"


class TripodRef(_Ref):
    """A reference to the instance of another tripod."""


class BronzeRef(_Ref):
    """A reference to the instance of a bronze."""


def _declared_refs(obj: Any) -> list[_Ref]:
    refs: dict[str, _Ref] = {}
    for klass in reversed(type(obj).__mro__):
        for name, value in vars(klass).items():
            if isinstance(value, _Ref):
                refs[name] = value
    return list(refs.values())


def resolve_tripod(obj: Any) -> Tripod:
    """The tripod of ``obj``: itself, or its ``tripod`` attribute."""
    if isinstance(obj, Tripod):
        return obj
    tripod = getattr(obj, "tripod", None)
    if isinstance(tripod, Tripod):
        return tripod
    raise TypeError(f"{type(obj).__name__} has no tripod")


def resolve_bronze(obj: Any) -> Bronze:
    """The bronze of ``obj``: itself, or its ``bronze`` attribute."""
    if isinstance(obj, Bronze):
        return obj
    bronze = getattr(obj, "bronze", None)
    if isinstance(bronze, Bronze):
        return bronze
    raise TypeError(f"{type(obj).__name__} has no bronze")


def _inject(obj: Any, ref: _Ref, source: Any, into: str) -> None:
    if ref.__get__(obj) is None:
        ref.__set__(obj, source.instance)
        logger.debug("inject %s into %s", source.name(), into)


def inject_to_tripod(tripod_instance: Any) -> None:
    """Fill the tripod and bronze references declared on ``tripod_instance``.

    References already holding a value are left alone.
    """
    tripod = resolve_tripod(tripod_instance)
    land: Optional[Land] = tripod.land
    if land is None:
        raise RuntimeError(f"tripod({tripod.name()}) has no land")
    for ref in _declared_refs(tripod_instance):
        if isinstance(ref, TripodRef):
            source: Any = land.get_tripod(ref.target)
            missing: type[LookupError] = TripodNotFound
        else:
            source = land.get_bronze(ref.target)
            missing = BronzeNotFound
        if source is None:
            if ref.omit_empty:
                continue
            raise missing(ref.target)
        _inject(tripod_instance, ref, source, f"tripod({tripod.name()})")


def inject_to_bronze(land: Land, bronze_instance: Any) -> None:
    """Fill the bronze references declared on ``bronze_instance``."""
    bronze = resolve_bronze(bronze_instance)
    for ref in _declared_refs(bronze_instance):
        if not isinstance(ref, BronzeRef):
            continue
        source = land.get_bronze(ref.target)
        if source is None:
            if ref.omit_empty:
                continue
            raise BronzeNotFound(ref.target)
        _inject(bronze_instance, ref, source, f"bronze({bronze.name()})")