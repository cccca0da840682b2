# Home_Page.py — Global temperature story (scene-by-scene walk through the record)
import logging

import streamlit as st

from story_charts import build_figure
from story_config import load_settings
from story_constants import FIELD_LABELS, PRIMARY_FIELD
from story_state import EmptyRangeError, SceneDeck, build_scene_view, view_summary
from story_ui import (
    _log_event,
    _note_err,
    inject_css,
    load_records_or_stop,
    render_summary_kpis,
    show_admin_analytics,
    show_debug_panel,
    sidebar_upload,
    smooth_or_stop,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

# -----------------------------------------------------------------------------
# Page config
# -----------------------------------------------------------------------------
st.set_page_config(
    page_title="Global Temperature Story",
    page_icon="🌡️",
    layout="wide",
    initial_sidebar_state="collapsed",
)
inject_css()

# the explorer's view belongs to the other page
st.session_state.pop("explorer_view", None)

SETTINGS = load_settings()
DECK = SceneDeck()

# -----------------------------------------------------------------------------
# Data
# -----------------------------------------------------------------------------
sidebar_upload()
records = load_records_or_stop(SETTINGS)
smoothed = smooth_or_stop(records, SETTINGS.window, SETTINGS.policy)

# -----------------------------------------------------------------------------
# Title
# -----------------------------------------------------------------------------
st.markdown("<h1 style='text-align:center'>Global Temperature Story</h1>", unsafe_allow_html=True)
st.markdown(
    f"<p class='subtitle'>Monthly land and ocean averages, smoothed with a "
    f"{SETTINGS.window}-month {SETTINGS.policy} moving average.</p>",
    unsafe_allow_html=True,
)

# -----------------------------------------------------------------------------
# Scene navigation
# -----------------------------------------------------------------------------
idx = DECK.clamp(st.session_state.get("scene_idx", 0))

nav_l, nav_c, nav_r = st.columns([0.15, 0.7, 0.15])
with nav_l:
    if st.button("← Previous", disabled=not DECK.has_prev(idx), use_container_width=True):
        new_idx = DECK.step(idx, -1)
        _log_event("scene_prev", {"from": idx, "to": new_idx})
        st.session_state["scene_idx"] = new_idx
        st.rerun()
with nav_r:
    if st.button("Next →", disabled=not DECK.has_next(idx), use_container_width=True):
        new_idx = DECK.step(idx, +1)
        _log_event("scene_next", {"from": idx, "to": new_idx})
        st.session_state["scene_idx"] = new_idx
        st.rerun()
with nav_c:
    labels = [f"{s.label}" for s in DECK.scenes]
    picked = st.radio("Scene", options=list(range(len(DECK))), index=idx, horizontal=True,
                      format_func=lambda i: labels[i], label_visibility="collapsed")
    if picked != idx:
        _log_event("scene_jump", {"from": idx, "to": picked})
        st.session_state["scene_idx"] = DECK.clamp(picked)
        st.rerun()

# -----------------------------------------------------------------------------
# Build the view for the current scene (replaced wholesale on every change)
# -----------------------------------------------------------------------------
try:
    view = build_scene_view(
        smoothed, DECK, idx,
        fields=(PRIMARY_FIELD,),
        policy=SETTINGS.policy,
        window=SETTINGS.window,
        fallback=SETTINGS.annotation_fallback,
    )
except EmptyRangeError as e:
    _note_err(str(e))
    st.warning(f"{DECK.at(idx).title}: {e}", icon="⚠️")
    show_debug_panel(SETTINGS, records)
    st.stop()
st.session_state["story_view"] = view

story_col, chart_col = st.columns([0.22, 0.78], gap="large")
with story_col:
    st.markdown(f"### {view.title}")
    st.markdown(f"<div class='story'>{view.story}</div>", unsafe_allow_html=True)
    st.markdown("")
    st.caption("Hover the orange markers for 5-year averages and the labels for historical context.")
    if view.skipped_annotations:
        st.caption("No data for: " + ", ".join(f"{a.label} ({a.year})" for a in view.skipped_annotations))

with chart_col:
    render_summary_kpis(view_summary(view), FIELD_LABELS[view.anchor_field])
    st.plotly_chart(build_figure(view), use_container_width=True, config={"displaylogo": False})

st.caption(f"Scene {idx + 1} of {len(DECK)} · {len(view.records)} monthly records")
if st.button("Explore a custom range →"):
    _log_event("open_explorer", {"from_scene": idx})
    st.switch_page("pages/1_Range_Explorer.py")

show_debug_panel(SETTINGS, records)
show_admin_analytics()
