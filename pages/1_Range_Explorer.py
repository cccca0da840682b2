# pages/1_Range_Explorer.py
# Range Explorer — pick any span of years (decade buttons or start/end inputs),
# choose the smoothing policy/window and the series to draw, then export.
import streamlit as st

from story_charts import build_figure
from story_config import load_settings
from story_constants import (
    ANNOTATION_FALLBACKS,
    FIELD_LABELS,
    PRIMARY_FIELD,
    SMOOTHING_POLICIES,
    VALUE_FIELDS,
    smoothed_name,
)
from story_data import decade_buckets, year_bounds
from story_state import EmptyRangeError, build_view, view_summary
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

# =================== PAGE CONFIG ===================
st.set_page_config(page_title="Range Explorer", page_icon="🌡️", layout="wide", initial_sidebar_state="collapsed")
inject_css()

# the story page's view is discarded once we navigate here
st.session_state.pop("story_view", None)

SETTINGS = load_settings()

top_l, top_r = st.columns([0.12, 0.88])
with top_l:
    if st.button("← Story", help="Back to the scene story"):
        try:
            st.switch_page("Home_Page.py")
        except Exception:
            st.rerun()
st.markdown("### Range Explorer")

sidebar_upload()
records = load_records_or_stop(SETTINGS)
ymin, ymax = year_bounds(records)

# =================== APPLIED PARAMETERS ===================
DEFAULTS = {
    "start": max(ymin, 1900),
    "end": ymax,
    "policy": SETTINGS.policy,
    "window": SETTINGS.window,
    "fields": [PRIMARY_FIELD],
    "fallback": SETTINGS.annotation_fallback,
    "band": False,
}
params = dict(DEFAULTS, **st.session_state.get("explorer_params", {}))
st.session_state.setdefault("rng_start", params["start"])
st.session_state.setdefault("rng_end", params["end"])

# =================== DECADE BUTTONS ===================
st.markdown("**Jump to a decade**")
decades = decade_buckets(records)
per_row = 10
for row_start in range(0, len(decades), per_row):
    row = decades[row_start:row_start + per_row]
    cols = st.columns(per_row)
    for col, (d0, d1) in zip(cols, row):
        with col:
            if st.button(f"{d0}s", key=f"decade_{d0}", use_container_width=True):
                start, end = max(d0, ymin), min(d1, ymax)
                params.update(start=start, end=end)
                st.session_state["explorer_params"] = params
                st.session_state["rng_start"], st.session_state["rng_end"] = start, end
                _log_event("decade", {"start": start, "end": end})
                st.rerun()

# =================== CONTROLS ===================
with st.form("range_form"):
    c1, c2, c3, c4 = st.columns(4)
    with c1:
        start_in = st.number_input("Start year", min_value=ymin, max_value=ymax, step=1, key="rng_start")
        end_in = st.number_input("End year", min_value=ymin, max_value=ymax, step=1, key="rng_end")
    with c2:
        policy_in = st.selectbox("Smoothing policy", SMOOTHING_POLICIES,
                                 index=SMOOTHING_POLICIES.index(params["policy"]),
                                 help="forward-shrinking keeps every month (the window shrinks at the end); "
                                      "backward-truncating drops the first window−1 months.")
        window_in = st.slider("Window (months)", min_value=1, max_value=120, value=min(int(params["window"]), 120))
    with c3:
        fields_in = st.multiselect("Series", options=list(VALUE_FIELDS), default=params["fields"],
                                   format_func=lambda f: FIELD_LABELS[f])
    with c4:
        fallback_in = st.radio("Annotation without data", ANNOTATION_FALLBACKS,
                               index=ANNOTATION_FALLBACKS.index(params["fallback"]),
                               help="skip: leave it out · nearest: anchor to the closest year with data")
        band_in = st.checkbox("Show uncertainty band", value=params["band"])
    submitted = st.form_submit_button("Update chart", type="primary", use_container_width=True)

if submitted:
    if int(start_in) > int(end_in):
        st.warning("Start year must not be after end year.", icon="⚠️")
        st.stop()
    if not fields_in:
        st.warning("Select at least one series.", icon="⚠️")
        st.stop()
    params = dict(start=int(start_in), end=int(end_in), policy=policy_in, window=int(window_in),
                  fields=list(fields_in), fallback=fallback_in, band=bool(band_in))
    st.session_state["explorer_params"] = params
    _log_event("update", {k: v for k, v in params.items() if k != "fields"})

# =================== VIEW ===================
smoothed = smooth_or_stop(records, params["window"], params["policy"])
try:
    view = build_view(
        smoothed, params["start"], params["end"],
        fields=params["fields"],
        policy=params["policy"],
        window=params["window"],
        fallback=params["fallback"],
    )
except EmptyRangeError as e:
    _note_err(str(e))
    st.warning(f"{e}. Try a different range or policy.", icon="⚠️")
    show_debug_panel(SETTINGS, records)
    st.stop()
st.session_state["explorer_view"] = view

render_summary_kpis(view_summary(view), FIELD_LABELS[view.anchor_field])
st.plotly_chart(build_figure(view, show_band=params["band"]), use_container_width=True,
                config={"displaylogo": False, "toImageButtonOptions": {"format": "png", "scale": 2}})
if view.skipped_annotations:
    st.caption("No data for: " + ", ".join(f"{a.label} ({a.year})" for a in view.skipped_annotations))

# =================== BADGES ===================
st.caption(
    f"{view.start_year}–{view.end_year} · {params['policy']} · window {params['window']} · "
    f"{len(view.records)} monthly records · {view.period_step}-year markers"
)

# =================== EXPORT ===================
st.markdown("#### Export")
export_cols = ["date"] + [c for f in view.fields for c in (f, smoothed_name(f))]
st.download_button(
    "Download data (CSV)",
    data=view.records[export_cols].to_csv(index=False).encode("utf-8"),
    file_name=f"temperature_{view.start_year}_{view.end_year}.csv",
    mime="text/csv",
)

show_debug_panel(SETTINGS, records)
show_admin_analytics()
