# story_ui.py
# Streamlit glue shared by the story page and the range explorer:
# cached loading, session error notes / analytics, KPI cards, debug panels.
import logging
from datetime import datetime

import numpy as np
import pandas as pd
import streamlit as st

from story_config import Settings
from story_constants import VALUE_FIELDS
from story_data import DataLoadError, load_records, parse_records, read_csv_bytes, smooth

logger = logging.getLogger(__name__)


# --- CSS -------------------------------------------------------------------------
def inject_css() -> None:
    st.markdown("""
<style>
.block-container { padding-top: 1.0rem; padding-bottom: 1.0rem; }
h1, h2, h3 { letter-spacing:.2px; }
.subtitle { text-align:center; color:#64748b; margin-top:-.4rem; }
.story { color:#334155; font-size:1.0rem; line-height:1.5; }
.kpi-row { display:flex; flex-wrap:wrap; gap:0.75rem; margin-bottom:0.75rem; }
.kpi { flex:1 1 180px; min-width:160px; }
.kpi .label { font-size:1.0rem; color:#64748b; margin-bottom:0.15rem; }
.kpi .row { display:flex; align-items:center; gap:0.4rem; }
.kpi .value { font-size:2.0rem; font-weight:600; color:#0f172a; }
.kpi .badge {
  display:inline-flex; align-items:center; justify-content:center;
  font-size:1.0rem; font-weight:600; padding:0.05rem 0.35rem; border-radius:999px;
}
.kpi .up   { background:#fee2e2; }
.kpi .down { background:#dbeafe; }
.kpi .flat { background:#e2e8f0; }
</style>
""", unsafe_allow_html=True)


def render_kpi(label: str, value_text: str, delta: float = None, show_symbol: bool = False, unit: str = "°C"):
    """
    KPI card:
      - label on top
      - big value
      - arrow badge beside the value when show_symbol (warming = up)
    """
    if delta is None or not (isinstance(delta, (int, float)) and np.isfinite(delta)) or abs(delta) < 1e-12:
        klass, sym, tip = "flat", "—", "No change"
    elif delta > 0:
        klass, sym, tip = "up", "↑", f"+{delta:.2f} {unit}"
    else:
        klass, sym, tip = "down", "↓", f"{delta:.2f} {unit}"
    badge_html = f'<span class="badge {klass}" title="{tip}">{sym}</span>' if show_symbol else ""
    st.markdown(f"""
    <div class="kpi">
      <div class="label">{label}</div>
      <div class="row">
        <div class="value">{value_text}</div>
        {badge_html}
      </div>
    </div>
    """, unsafe_allow_html=True)


def render_summary_kpis(summary: dict, field_label: str) -> None:
    c1, c2, c3 = st.columns(3)
    with c1:
        mean = summary.get("mean")
        render_kpi(f"Average ({field_label})", "—" if mean is None else f"{mean:.2f} °C")
    with c2:
        change = summary.get("change")
        render_kpi("Change across range", "—" if change is None else f"{change:+.2f} °C",
                   delta=change, show_symbol=True)
    with c3:
        peak = summary.get("peak")
        when = summary.get("peak_date")
        txt = "—" if peak is None else f"{peak:.2f} °C"
        render_kpi(f"Warmest ({pd.Timestamp(when).strftime('%b %Y')})" if when is not None else "Warmest", txt)


# --- Session notes -----------------------------------------------------------------
def _note_err(msg: str) -> None:
    st.session_state.setdefault("load_errors", []).append(str(msg))


def _log_event(evt: str, payload: dict) -> None:
    st.session_state.setdefault("analytics", [])
    st.session_state["analytics"].append({"ts": datetime.now().isoformat(), "event": evt, **payload})


# --- Loading -----------------------------------------------------------------------
@st.cache_data(ttl=24 * 3600, show_spinner=False)
def _load_records_cached(settings: Settings) -> pd.DataFrame:
    return load_records(settings)


@st.cache_data(show_spinner=False)
def _parse_upload_cached(content: bytes) -> pd.DataFrame:
    return parse_records(read_csv_bytes(content, source="upload"))


@st.cache_data(show_spinner=False)
def smooth_cached(records: pd.DataFrame, window: int, policy: str) -> pd.DataFrame:
    return smooth(records, VALUE_FIELDS, window=window, policy=policy)


def sidebar_upload() -> None:
    """Optional CSV upload; kept in session state so every page sees it."""
    with st.sidebar:
        st.header("Data")
        up = st.file_uploader("Upload GlobalTemperatures.csv", type=["csv"], key="csv_upload",
                              help="Overrides the configured data source for this session.")
        if up is not None:
            st.session_state["uploaded_csv"] = up.getvalue()
        if st.session_state.get("uploaded_csv") and st.button("Use configured source"):
            st.session_state.pop("uploaded_csv", None)
            st.rerun()


def load_records_or_stop(settings: Settings) -> pd.DataFrame:
    """Return the record table or show the load error and stop the run."""
    content = st.session_state.get("uploaded_csv")
    try:
        with st.spinner("Loading temperature records…"):
            if content:
                return _parse_upload_cached(content)
            return _load_records_cached(settings)
    except DataLoadError as e:
        logger.error("Error loading or parsing data: %s", e)
        _note_err(f"Error loading or parsing data: {e}")
        st.error(f"Could not load temperature data: {e}", icon="🚫")
        show_debug_panel(settings)
        st.stop()


def smooth_or_stop(records: pd.DataFrame, window: int, policy: str) -> pd.DataFrame:
    try:
        return smooth_cached(records, int(window), policy)
    except ValueError as e:
        _note_err(f"Smoothing failed: {e}")
        st.error(f"Smoothing failed: {e}", icon="🚫")
        st.stop()


# --- Debug / admin -------------------------------------------------------------------
def _flag(name: str) -> bool:
    return str(st.query_params.get(name, "0")).lower() in {"1", "true", "yes"}


def show_debug_panel(settings: Settings, records: pd.DataFrame = None) -> None:
    if not _flag("debug"):
        return
    with st.expander("Developer debug panel", expanded=True):
        st.json({
            "backend": settings.backend,
            "data_path": settings.data_path,
            "data_url": settings.data_url,
            "hf_repo_id": settings.hf_repo_id,
            "hf_filename": settings.hf_filename,
            "window": settings.window,
            "policy": settings.policy,
            "annotation_fallback": settings.annotation_fallback,
            "uploaded": bool(st.session_state.get("uploaded_csv")),
        })
        if records is not None:
            st.write(f"{len(records)} records, columns: {list(records.columns)}")
        errs = st.session_state.get("load_errors", [])
        if errs:
            for e in errs:
                st.code(e)
        else:
            st.caption("No load errors recorded in this session.")


def show_admin_analytics() -> None:
    if not _flag("admin"):
        return
    st.divider()
    st.subheader("Admin: Session analytics")
    logs = st.session_state.get("analytics", [])
    if logs:
        st.dataframe(pd.DataFrame(logs))
    else:
        st.info("No events logged yet in this session.", icon="ℹ️")
