"""Chart descriptor attached to a result when a chart was requested."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from models.base import NullableWireModel

logger = logging.getLogger(__name__)


class ChartType(str, Enum):
    TIME_SERIES = "TIME_SERIES"
    BAR = "BAR"
    HORIZONTAL_BAR = "HORIZONTAL_BAR"
    PIE = "PIE"
    STACKED_BAR = "STACKED_BAR"
    LINE = "LINE"
    AREA = "AREA"
    NONE = "NONE"


class ChartDimensions(NullableWireModel):
    """Column mapping for each axis."""

    x: str | None = None
    y: str | None = None
    series: str | None = None
    label: str | None = None
    value: str | None = None


class ChartVisualization(NullableWireModel):
    type: ChartType = ChartType.NONE
    dimensions: ChartDimensions = Field(default_factory=ChartDimensions)
    title: str = ""
    unit: str | None = None
    suggested_height: int | None = None
    color_scheme: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _unknown_type_is_none(cls, value: Any) -> Any:
        if isinstance(value, ChartType) or (
            isinstance(value, str) and value in ChartType._value2member_map_
        ):
            return value
        logger.warning("Unsupported chart type %r, rendering without chart", value)
        return ChartType.NONE


class ChartMetadata(NullableWireModel):
    row_count: int = 0
    has_more_data: bool = False
    generated_at: str | None = None
    reason_for_chart_type: str | None = None


class ChartData(NullableWireModel):
    visualization: ChartVisualization = Field(default_factory=ChartVisualization)
    data: list[dict[str, Any]] = Field(default_factory=list)
    metadata: ChartMetadata = Field(default_factory=ChartMetadata)

    @property
    def is_chartable(self) -> bool:
        """True when there is something to draw."""
        return self.visualization.type is not ChartType.NONE and bool(self.data)
