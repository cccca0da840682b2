# story_charts.py
# Plotly rendering of a ViewState: smoothed lines, period-average markers with
# tooltips, historical annotations and an optional uncertainty band.
import numpy as np
import pandas as pd
import plotly.graph_objects as go

from story_constants import (
    ANNOTATION_COLOR,
    FIELD_COLORS,
    FIELD_LABELS,
    MARKER_COLOR,
    UNCERTAINTY_FIELDS,
    smoothed_name,
)

CHART_HEIGHT = 400
CHART_MARGIN = dict(l=60, r=30, t=50, b=50)
UNIT = "°C"


def _legend_top(fig):
    fig.update_layout(
        legend=dict(
            orientation="h",
            x=0.0,
            xanchor="left",
            y=-0.2,
            yanchor="top",
        ),
        margin=dict(b=80),
    )


def _period_hover_text(view, p) -> str:
    lines = [f"{view.period_step}-Year Averages ({p.start_year} - {p.end_year}):"]
    for field, value in p.values.items():
        if pd.notna(value):
            lines.append(f"{FIELD_LABELS.get(field, field)}: {value:.2f}{UNIT}")
    return "<br>".join(lines)


def _add_band(fig, view, field, color):
    unc = UNCERTAINTY_FIELDS.get(field)
    if not unc or unc not in view.records.columns:
        return
    s = view.records
    mid = pd.to_numeric(s[smoothed_name(field)], errors="coerce").to_numpy(dtype=float)
    err = pd.to_numeric(s[unc], errors="coerce").clip(lower=0).to_numpy(dtype=float)
    if not np.isfinite(err).any():
        return
    fig.add_trace(go.Scatter(
        x=s["date"], y=mid + err, mode="lines",
        line=dict(width=0), hoverinfo="skip", showlegend=False,
    ))
    fig.add_trace(go.Scatter(
        x=s["date"], y=mid - err, mode="lines",
        line=dict(width=0, color=color), fill="tonexty",
        fillcolor="rgba(70,130,180,0.18)", hoverinfo="skip",
        name=f"{FIELD_LABELS.get(field, field)} — ±uncertainty", showlegend=False,
    ))


def build_figure(view, show_band: bool = False, title: str = None) -> go.Figure:
    """Draw the whole chart for one view. Always returns a fresh figure."""
    fig = go.Figure()
    s = view.records

    for field in view.fields:
        color = FIELD_COLORS.get(field, "steelblue")
        if show_band:
            _add_band(fig, view, field, color)
        label = FIELD_LABELS.get(field, field)
        fig.add_trace(go.Scatter(
            x=s["date"], y=s[smoothed_name(field)], mode="lines",
            line=dict(color=color, width=2 if field == view.anchor_field else 1.5),
            name=f"{label} (smoothed)",
            hovertemplate=f"%{{x|%b %Y}}<br>{label}: %{{y:.2f}} {UNIT}<extra></extra>",
        ))

    if view.periods:
        fig.add_trace(go.Scatter(
            x=[p.date for p in view.periods],
            y=[p.values.get(view.anchor_field, np.nan) for p in view.periods],
            mode="markers",
            marker=dict(size=8, color=MARKER_COLOR),
            name=f"{view.period_step}-year average",
            text=[_period_hover_text(view, p) for p in view.periods],
            hovertemplate="%{text}<extra></extra>",
        ))

    for pa in view.annotations:
        ann = pa.annotation
        desc = ann.description
        if not pa.exact:
            desc += f"<br><i>No {ann.year} data; anchored to {pa.matched_year}.</i>"
        fig.add_annotation(
            x=pa.date, y=pa.value, text=ann.label,
            showarrow=True, arrowhead=0, arrowwidth=3, arrowcolor=ANNOTATION_COLOR,
            ax=0, ay=ann.y_offset, xanchor="left",
            hovertext=f"<b>{ann.label}</b><br>{desc}",
            font=dict(size=12),
        )

    fig.update_layout(
        title=title if title is not None else view.title,
        height=CHART_HEIGHT, margin=CHART_MARGIN,
        hovermode="closest", xaxis_title="Date", yaxis_title=f"Temperature ({UNIT})",
        hoverlabel=dict(bgcolor="white"),
    )
    fig.update_xaxes(range=[pd.Timestamp(d).strftime("%Y-%m-%d") for d in view.x_range], tickformat="%Y")
    fig.update_yaxes(range=list(view.y_range))
    _legend_top(fig)
    return fig
