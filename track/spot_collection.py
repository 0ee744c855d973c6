"""Frame-indexed spot storage with a filtered view over the same instances."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from contracts import FRAME, QUALITY, FeatureFilter, Spot, accepts_all
from log_config.logger import get_logger

logger = get_logger(__name__)


class FilteredView:
    """Subset of a SpotCollection, grouped by frame.

    Holds references to the very same Spot instances as the parent
    collection, so feature writes through either side are shared.
    """

    def __init__(self, filters: Tuple[FeatureFilter, ...] = ()) -> None:
        self.filters = tuple(filters)
        self._frames: Dict[int, Dict[Spot, None]] = {}

    def _add(self, spot: Spot, frame: int) -> None:
        self._frames.setdefault(frame, {})[spot] = None

    def _discard(self, spot: Spot, frame: int) -> None:
        bucket = self._frames.get(frame)
        if bucket is None:
            return
        bucket.pop(spot, None)
        if not bucket:
            del self._frames[frame]

    def frames(self) -> List[int]:
        return sorted(self._frames)

    def iterate(self, frame: Optional[int] = None) -> Iterator[Spot]:
        if frame is not None:
            yield from list(self._frames.get(frame, ()))
            return
        for key in self.frames():
            yield from list(self._frames[key])

    def count_in(self, frame: int) -> int:
        return len(self._frames.get(frame, ()))

    def count_total(self) -> int:
        return sum(len(bucket) for bucket in self._frames.values())

    def __contains__(self, spot: object) -> bool:
        return any(spot in bucket for bucket in self._frames.values())

    def __len__(self) -> int:
        return self.count_total()

    def __iter__(self) -> Iterator[Spot]:
        return self.iterate()


class SpotCollection:
    """Spots stored per frame.

    A spot belongs to at most one frame at a time. The collection keeps a
    filtered view that is recomputed by ``filter()`` from the spots' own
    feature values; spots added afterwards are visible by default.
    """

    def __init__(self) -> None:
        self._content: Dict[int, Dict[Spot, None]] = {}
        self._frame_of: Dict[Spot, int] = {}
        self._filtered = FilteredView()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(self, spot: Spot, frame: int) -> None:
        """Insert spot into frame and stamp its FRAME feature."""
        if frame < 0:
            raise ValueError(f"Frame index must be non-negative, got {frame}")
        previous = self._frame_of.get(spot)
        if previous is not None:
            logger.warning(f"{spot} already in frame {previous}, relocating to frame {frame}")
            self.remove(spot, previous)

        self._content.setdefault(frame, {})[spot] = None
        self._frame_of[spot] = frame
        self._filtered._add(spot, frame)
        spot.put_feature(FRAME, frame)

    def remove(self, spot: Spot, frame: int) -> bool:
        """Remove spot from frame.

        Returns:
            False if the spot is not in that frame; nothing is changed then.
        """
        bucket = self._content.get(frame)
        if bucket is None or spot not in bucket:
            return False

        del bucket[spot]
        if not bucket:
            del self._content[frame]
        del self._frame_of[spot]
        self._filtered._discard(spot, frame)
        return True

    def filter(self, filters: Iterable[FeatureFilter]) -> FilteredView:
        """Recompute the filtered view from the given feature filters."""
        view = FilteredView(tuple(filters))
        for frame, bucket in self._content.items():
            for spot in bucket:
                if accepts_all(view.filters, spot):
                    view._add(spot, frame)
        self._filtered = view
        logger.debug(
            f"Filtered {self.count_total(False)} spots with {len(view.filters)} filter(s): "
            f"{view.count_total()} retained"
        )
        return view

    def crop(self, quality_threshold: float) -> int:
        """Permanently drop spots whose QUALITY is below the threshold.

        Returns:
            Number of spots removed
        """
        doomed = [
            (spot, frame)
            for frame, bucket in self._content.items()
            for spot in bucket
            if spot.get_feature(QUALITY) is None or spot.get_feature(QUALITY) < quality_threshold
        ]
        for spot, frame in doomed:
            self.remove(spot, frame)
        if doomed:
            logger.info(f"Cropped {len(doomed)} spots below quality {quality_threshold}")
        return len(doomed)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def filtered(self) -> FilteredView:
        return self._filtered

    def frames(self) -> List[int]:
        return sorted(self._content)

    def frame_of(self, spot: Spot) -> Optional[int]:
        return self._frame_of.get(spot)

    def count_in(self, frame: int, filtered_only: bool = False) -> int:
        if filtered_only:
            return self._filtered.count_in(frame)
        return len(self._content.get(frame, ()))

    def count_total(self, filtered_only: bool = False) -> int:
        if filtered_only:
            return self._filtered.count_total()
        return len(self._frame_of)

    def iterate(self, frame: Optional[int] = None, filtered_only: bool = False) -> Iterator[Spot]:
        if filtered_only:
            yield from self._filtered.iterate(frame)
            return
        if frame is not None:
            yield from list(self._content.get(frame, ()))
            return
        for key in self.frames():
            yield from list(self._content[key])

    def __contains__(self, spot: object) -> bool:
        return spot in self._frame_of

    def __len__(self) -> int:
        return len(self._frame_of)

    def __iter__(self) -> Iterator[Spot]:
        return self.iterate()

    def __repr__(self) -> str:
        return (
            f"SpotCollection(frames={len(self._content)}, spots={len(self)}, "
            f"filtered={self._filtered.count_total()})"
        )
