"""
Screen Geometry

Resolves the primary display into physical pixels, logical points and the
scale factor between them.
"""

from __future__ import annotations

import logging
import typing as t
from dataclasses import dataclass

from clientgrid.common.errors import GeometryUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DisplayReading:
    """Raw result of a display probe.

    Logical dimensions are None when the probe only sees device pixels.
    """

    physical_width: int
    physical_height: int
    logical_width: t.Optional[int] = None
    logical_height: t.Optional[int] = None
    source: str = "unknown"

    @property
    def has_logical(self) -> bool:
        return self.logical_width is not None and self.logical_height is not None


@dataclass(frozen=True)
class ScreenGeometry:
    """Display geometry for one launcher run."""

    physical_width: int
    physical_height: int
    logical_width: int
    logical_height: int
    scale_factor: float


@dataclass(frozen=True)
class Measured:
    """Scale factor is the ratio of measured physical to logical width.

    If ``fallback_scale`` is set and the probe reports no logical size, the
    assumed-scale path is taken with that factor instead of failing.
    """

    fallback_scale: t.Optional[float] = None


@dataclass(frozen=True)
class AssumedScale:
    """Only physical pixels are used; logical size is derived from a fixed factor."""

    factor: float = 2.0


ScaleStrategy = t.Union[Measured, AssumedScale]


class DisplayProbe(t.Protocol):
    """Anything that can read the primary display's resolution."""

    name: str

    def read(self) -> DisplayReading:
        ...


def _check_positive(label: str, width: t.Optional[int], height: t.Optional[int]) -> None:
    if width is None or height is None or width <= 0 or height <= 0:
        raise GeometryUnavailable(f"Degenerate {label} resolution: {width}x{height}")


def _assumed(reading: DisplayReading, factor: float) -> ScreenGeometry:
    if factor <= 0:
        raise GeometryUnavailable(f"Assumed scale factor must be positive, got {factor}")

    logical_width = int(reading.physical_width / factor)
    logical_height = int(reading.physical_height / factor)
    _check_positive("logical", logical_width, logical_height)

    return ScreenGeometry(
        physical_width=reading.physical_width,
        physical_height=reading.physical_height,
        logical_width=logical_width,
        logical_height=logical_height,
        scale_factor=float(factor),
    )


def geometry_from_reading(reading: DisplayReading, strategy: ScaleStrategy) -> ScreenGeometry:
    """Apply a scale strategy to a probe reading.

    Raises:
        GeometryUnavailable: if the reading is degenerate or the strategy
            needs dimensions the probe did not provide.
    """
    _check_positive("physical", reading.physical_width, reading.physical_height)

    if isinstance(strategy, AssumedScale):
        return _assumed(reading, strategy.factor)

    if isinstance(strategy, Measured):
        if not reading.has_logical:
            if strategy.fallback_scale is None:
                raise GeometryUnavailable(
                    f"Probe '{reading.source}' reported no logical resolution; "
                    "use the assumed scale strategy instead"
                )
            logger.warning(
                f"⚠️ No logical resolution from '{reading.source}', "
                f"falling back to assumed scale {strategy.fallback_scale}x"
            )
            return _assumed(reading, strategy.fallback_scale)

        logical_width = t.cast(int, reading.logical_width)
        logical_height = t.cast(int, reading.logical_height)
        _check_positive("logical", logical_width, logical_height)
        return ScreenGeometry(
            physical_width=reading.physical_width,
            physical_height=reading.physical_height,
            logical_width=logical_width,
            logical_height=logical_height,
            scale_factor=reading.physical_width / logical_width,
        )

    raise TypeError(f"Unsupported scale strategy: {strategy!r}")


def resolve_geometry(probe: DisplayProbe, strategy: ScaleStrategy) -> ScreenGeometry:
    """Read the primary display and derive its ScreenGeometry.

    Raises:
        GeometryUnavailable: if no usable display information was obtained.
    """
    reading = probe.read()
    logger.debug(f"Display reading from {probe.name}: {reading}")
    return geometry_from_reading(reading, strategy)
