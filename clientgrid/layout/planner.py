"""
Layout Planner

Maps an instance index to a window position. Windows are anchored to the
right edge of the screen and columns are packed leftward; rows stack below
the menu bar, leaving room for each window's title bar.
"""

from __future__ import annotations

import logging
import math
import typing as t
from dataclasses import dataclass

from clientgrid.display.geometry import ScreenGeometry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LayoutConfig:
    """Window layout settings in logical points."""

    window_width: int
    window_height: int
    gap: int
    menubar_height: int
    titlebar_height: int
    columns: int

    def __post_init__(self) -> None:
        for name in ("window_width", "window_height", "gap", "menubar_height", "titlebar_height"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")
        if self.columns < 1:
            raise ValueError(f"columns must be >= 1, got {self.columns}")


@dataclass(frozen=True)
class InstancePlacement:
    """Computed window position for one client instance."""

    index: int
    column: int
    row: int
    logical_x: int
    logical_y: int
    physical_x: int
    physical_y: int

    def summary(self) -> str:
        return (
            f"Client {self.index}: COL={self.column}, ROW={self.row}, "
            f"Logical=({self.logical_x}, {self.logical_y}), "
            f"Physical=({self.physical_x}, {self.physical_y})"
        )


LaunchPlan = t.List[InstancePlacement]


def to_physical(logical: int, scale_factor: float) -> int:
    """Project a logical coordinate to device pixels, truncating toward zero."""
    return math.trunc(logical * scale_factor)


def place(index: int, layout: LayoutConfig, screen: ScreenGeometry) -> InstancePlacement:
    """Compute the placement of instance ``index``.

    Positions that fall off the left edge of the screen are kept as-is.
    """
    if index < 0:
        raise ValueError(f"index must be >= 0, got {index}")

    column = index % layout.columns
    row = index // layout.columns

    logical_x = (
        screen.logical_width
        - (column + 1) * layout.window_width
        - layout.gap
        - column * layout.gap
    )
    logical_y = (
        layout.menubar_height
        + layout.gap
        + layout.titlebar_height
        + row * (layout.window_height + layout.titlebar_height + layout.gap)
    )

    return InstancePlacement(
        index=index,
        column=column,
        row=row,
        logical_x=logical_x,
        logical_y=logical_y,
        physical_x=to_physical(logical_x, screen.scale_factor),
        physical_y=to_physical(logical_y, screen.scale_factor),
    )


def plan_launch(count: int, layout: LayoutConfig, screen: ScreenGeometry) -> LaunchPlan:
    """Placements for instances ``0..count-1`` in launch order."""
    if count < 1:
        raise ValueError(f"instance count must be >= 1, got {count}")

    plan = [place(index, layout, screen) for index in range(count)]

    off_screen = [p.index for p in plan if p.logical_x < 0]
    if off_screen:
        logger.warning(
            f"⚠️ {len(off_screen)} window(s) extend past the left screen edge "
            f"(clients {off_screen}); reduce columns or window width to fit"
        )

    return plan
