# story_state.py
# Scene navigation and the per-render view state.
#
# A ViewState is built from the smoothed record table every time the user
# changes scene or range and is never mutated afterwards; the pages keep the
# latest one in st.session_state and replace it wholesale.
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import pandas as pd

from story_constants import (
    ANNOTATIONS,
    DEFAULT_WINDOW,
    FALLBACK_SKIP,
    FORWARD_SHRINKING,
    PERIOD_STEP,
    PRIMARY_FIELD,
    SCENES,
    Y_PADDING,
    Annotation,
    Scene,
    smoothed_name,
)
from story_data import (
    PeriodAverage,
    PlacedAnnotation,
    annotations_in_domain,
    filter_years,
    period_averages,
    place_annotations,
    year_bounds,
)

logger = logging.getLogger(__name__)


class EmptyRangeError(ValueError):
    """The requested years contain no smoothed data to draw."""


class SceneDeck:
    """Ordered scenes with clamped (never wrapping) navigation."""

    def __init__(self, scenes: Sequence[Scene] = SCENES):
        self.scenes = tuple(scenes)
        if not self.scenes:
            raise ValueError("SceneDeck needs at least one scene")

    def __len__(self) -> int:
        return len(self.scenes)

    def clamp(self, index) -> int:
        try:
            index = int(index)
        except (TypeError, ValueError):
            index = 0
        return max(0, min(index, len(self.scenes) - 1))

    def step(self, index: int, delta: int) -> int:
        return self.clamp(self.clamp(index) + delta)

    def at(self, index: int) -> Scene:
        return self.scenes[self.clamp(index)]

    def has_prev(self, index: int) -> bool:
        return self.clamp(index) > 0

    def has_next(self, index: int) -> bool:
        return self.clamp(index) < len(self.scenes) - 1


@dataclass(frozen=True)
class ViewState:
    title: str
    start_year: int
    end_year: int
    records: pd.DataFrame
    fields: Tuple[str, ...]
    anchor_field: str
    policy: str
    window: int
    x_range: Tuple[pd.Timestamp, pd.Timestamp]
    y_range: Tuple[float, float]
    period_step: int
    periods: Tuple[PeriodAverage, ...]
    annotations: Tuple[PlacedAnnotation, ...]
    skipped_annotations: Tuple[Annotation, ...]
    scene_index: Optional[int] = None
    story: str = ""


def auto_period_step(start_year: int, end_year: int) -> int:
    span = end_year - start_year + 1
    if span <= 60:
        return PERIOD_STEP
    if span <= 150:
        return 10
    return 25


def build_view(
    smoothed: pd.DataFrame,
    start_year: Optional[int],
    end_year: Optional[int],
    fields: Sequence[str] = (PRIMARY_FIELD,),
    policy: str = FORWARD_SHRINKING,
    window: int = DEFAULT_WINDOW,
    fallback: str = FALLBACK_SKIP,
    title: str = "",
    period_step: Optional[int] = None,
    annotations: Sequence[Annotation] = ANNOTATIONS,
    scene_index: Optional[int] = None,
    story: str = "",
) -> ViewState:
    """Slice the smoothed table to the requested years and derive everything the chart needs."""
    fields = tuple(f for f in fields if smoothed_name(f) in smoothed.columns)
    if not fields:
        raise EmptyRangeError("No smoothed fields selected")
    anchor = PRIMARY_FIELD if PRIMARY_FIELD in fields else fields[0]

    records = filter_years(smoothed, start_year, end_year)
    cols = [smoothed_name(f) for f in fields]
    values = pd.concat([records[c] for c in cols], ignore_index=True).dropna()
    if records.empty or values.empty:
        rng = f"{start_year or '…'}–{end_year or 'present'}"
        raise EmptyRangeError(f"No smoothed data for {rng}")

    lo_year, hi_year = year_bounds(records)
    start = start_year if start_year is not None else lo_year
    end = end_year if end_year is not None else hi_year
    step = period_step or auto_period_step(start, end)

    visible = annotations_in_domain(records, annotations)
    placed = place_annotations(records, annotations, field=anchor, fallback=fallback)
    placed_set = {p.annotation for p in placed}
    skipped = tuple(a for a in visible if a not in placed_set)
    if skipped:
        logger.info("Annotations without data in %s–%s: %s", start, end, ", ".join(a.label for a in skipped))

    return ViewState(
        title=title or f"{start}–{end}",
        start_year=int(start),
        end_year=int(end),
        records=records,
        fields=fields,
        anchor_field=anchor,
        policy=policy,
        window=int(window),
        x_range=(records["date"].min(), records["date"].max()),
        y_range=(float(values.min()) - Y_PADDING, float(values.max()) + Y_PADDING),
        period_step=step,
        periods=tuple(period_averages(records, start // step * step, end, step=step, fields=fields)),
        annotations=tuple(placed),
        skipped_annotations=skipped,
        scene_index=scene_index,
        story=story,
    )


def build_scene_view(
    smoothed: pd.DataFrame,
    deck: SceneDeck,
    index: int,
    fields: Sequence[str] = (PRIMARY_FIELD,),
    policy: str = FORWARD_SHRINKING,
    window: int = DEFAULT_WINDOW,
    fallback: str = FALLBACK_SKIP,
) -> ViewState:
    index = deck.clamp(index)
    scene = deck.at(index)
    return build_view(
        smoothed,
        scene.start_year,
        scene.end_year,
        fields=fields,
        policy=policy,
        window=window,
        fallback=fallback,
        title=scene.title,
        period_step=PERIOD_STEP,
        scene_index=index,
        story=scene.story,
    )


def view_summary(view: ViewState, field: Optional[str] = None) -> dict:
    """Headline numbers for the KPI row: mean, first→last change, warmest month."""
    col = smoothed_name(field or view.anchor_field)
    s = view.records[[col, "date"]].dropna(subset=[col])
    if s.empty:
        return {"mean": None, "change": None, "peak": None, "peak_date": None}
    peak_i = s[col].idxmax()
    return {
        "mean": float(s[col].mean()),
        "change": float(s[col].iloc[-1] - s[col].iloc[0]),
        "peak": float(s.loc[peak_i, col]),
        "peak_date": s.loc[peak_i, "date"],
    }
