"""Analyzer descriptors and the ordered providers that hold them.

An analyzer is tagged LOCAL or GLOBAL. The model looks at the tag to decide
which elements to hand over: exactly the changed ones, or every element of
the tracks they belong to.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Collection, Dict, List, Tuple

from exceptions import UnknownAnalyzerError
from log_config.logger import get_logger

if TYPE_CHECKING:
    from track.model import TrackModel

logger = get_logger(__name__)


class Locality(Enum):
    """What input an analyzer needs."""

    LOCAL = "local"  # Only the changed elements
    GLOBAL = "global"  # Whole owning tracks of the changed elements


class AnalyzerTarget(Enum):
    """Which kind of element an analyzer computes features for."""

    SPOT = "spot"
    EDGE = "edge"
    TRACK = "track"


ProcessFn = Callable[[Collection[Any], "TrackModel"], None]


@dataclass(frozen=True)
class Analyzer:
    """A feature computation registered under a key.

    Attributes:
        key: Unique name within its provider
        target: Element kind processed
        locality: Input expansion the model applies before calling process
        features: Feature names written by this analyzer
        process: Callable receiving (elements, model)
    """

    key: str
    target: AnalyzerTarget
    locality: Locality
    process: ProcessFn = field(compare=False, repr=False)
    features: Tuple[str, ...] = ()

    @property
    def is_local(self) -> bool:
        return self.locality is Locality.LOCAL

    def __call__(self, elements: Collection[Any], model: "TrackModel") -> None:
        self.process(elements, model)


class AnalyzerProvider:
    """Ordered registry of analyzers for one element kind."""

    def __init__(self, target: AnalyzerTarget) -> None:
        self.target = target
        self._analyzers: Dict[str, Analyzer] = {}

    def register(self, analyzer: Analyzer) -> None:
        if analyzer.target is not self.target:
            raise ValueError(
                f"Cannot register {analyzer.target.value} analyzer '{analyzer.key}' "
                f"in a {self.target.value} provider"
            )
        if analyzer.key in self._analyzers:
            logger.warning(f"Replacing {self.target.value} analyzer '{analyzer.key}'")
        self._analyzers[analyzer.key] = analyzer
        logger.debug(f"Registered {analyzer.locality.value} {self.target.value} analyzer '{analyzer.key}'")

    def unregister(self, key: str) -> bool:
        return self._analyzers.pop(key, None) is not None

    def available_keys(self) -> List[str]:
        """Analyzer keys in registration order."""
        return list(self._analyzers)

    def get(self, key: str) -> Analyzer:
        try:
            return self._analyzers[key]
        except KeyError:
            raise UnknownAnalyzerError(f"No {self.target.value} analyzer registered as '{key}'") from None

    def __contains__(self, key: object) -> bool:
        return key in self._analyzers

    def __len__(self) -> int:
        return len(self._analyzers)

    def __repr__(self) -> str:
        return f"AnalyzerProvider({self.target.value}, keys={self.available_keys()})"


def edge_analyzer(key: str, locality: Locality = Locality.LOCAL, features: Tuple[str, ...] = ()):
    """Decorator turning a function into an edge Analyzer."""

    def wrap(fn: ProcessFn) -> Analyzer:
        return Analyzer(key=key, target=AnalyzerTarget.EDGE, locality=locality, process=fn, features=features)

    return wrap


def track_analyzer(key: str, locality: Locality = Locality.LOCAL, features: Tuple[str, ...] = ()):
    """Decorator turning a function into a track Analyzer."""

    def wrap(fn: ProcessFn) -> Analyzer:
        return Analyzer(key=key, target=AnalyzerTarget.TRACK, locality=locality, process=fn, features=features)

    return wrap


def spot_analyzer(key: str, locality: Locality = Locality.LOCAL, features: Tuple[str, ...] = ()):
    """Decorator turning a function into a spot Analyzer."""

    def wrap(fn: ProcessFn) -> Analyzer:
        return Analyzer(key=key, target=AnalyzerTarget.SPOT, locality=locality, process=fn, features=features)

    return wrap
