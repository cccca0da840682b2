# story_data.py
# Data operations for the temperature story: CSV loading, windowed smoothing,
# year-range slicing, period/decade bucketing and annotation placement.
#
# Every function works on a plain pandas DataFrame of records sorted by date,
# one row per month, with the columns named in story_constants.CSV_COLUMNS.
import io
import logging
from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import pandas as pd
import requests
from huggingface_hub import hf_hub_download

from story_constants import (
    ANNOTATION_FALLBACKS,
    ANNOTATIONS,
    BACKWARD_TRUNCATING,
    CSV_COLUMNS,
    DEFAULT_WINDOW,
    FALLBACK_NEAREST,
    FALLBACK_SKIP,
    FORWARD_SHRINKING,
    OPTIONAL_CSV_COLUMNS,
    PERIOD_STEP,
    PRIMARY_FIELD,
    SMOOTHING_POLICIES,
    VALUE_FIELDS,
    Annotation,
    smoothed_name,
)

logger = logging.getLogger(__name__)

# Columns the page cannot work without; OceanAverageTemperature is absent
# from some published extracts and is read as all-NaN instead.
REQUIRED_CSV_COLUMNS = ("dt", "LandAverageTemperature", "LandAndOceanAverageTemperature")

HTTP_TIMEOUT = 30


class DataLoadError(Exception):
    """The temperature CSV could not be fetched or parsed."""


# ============================================================================
# LOADING
# ============================================================================

def read_csv_bytes(content: bytes, source: str = "upload") -> pd.DataFrame:
    try:
        raw = pd.read_csv(io.BytesIO(content))
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise DataLoadError(f"CSV parse failed for {source}: {e}") from e
    raw.columns = [str(c).strip() for c in raw.columns]
    return raw


def parse_records(raw: pd.DataFrame) -> pd.DataFrame:
    """
    Turn the raw CSV table into typed records.

    - `dt` becomes `date` (rows whose date cannot be parsed are dropped)
    - temperature columns are coerced to float, blanks become NaN
    - optional uncertainty columns are carried when present
    - rows are sorted by date
    """
    missing = [c for c in REQUIRED_CSV_COLUMNS if c not in raw.columns]
    if missing:
        raise DataLoadError(f"CSV is missing required columns: {', '.join(missing)}")

    out = pd.DataFrame({"date": pd.to_datetime(raw["dt"], format="ISO8601", errors="coerce")})
    for src, dst in CSV_COLUMNS.items():
        if dst == "date":
            continue
        if src in raw.columns:
            out[dst] = pd.to_numeric(raw[src], errors="coerce")
        else:
            logger.warning("Column %s not found; %s will be empty", src, dst)
            out[dst] = float("nan")
    for src, dst in OPTIONAL_CSV_COLUMNS.items():
        if src in raw.columns:
            out[dst] = pd.to_numeric(raw[src], errors="coerce")

    bad_dates = int(out["date"].isna().sum())
    if bad_dates:
        logger.warning("Dropping %d rows with unparsable dates", bad_dates)
    out = out.dropna(subset=["date"])
    if out.empty:
        raise DataLoadError("CSV contains no rows with a valid date.")
    return out.sort_values("date", kind="stable").reset_index(drop=True)


def _fetch_url(url: str) -> bytes:
    try:
        resp = requests.get(url, timeout=HTTP_TIMEOUT)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise DataLoadError(f"Download failed for {url}: {e}") from e
    return resp.content


def _fetch_hf(repo_id: str, repo_type: str, filename: str, token: Optional[str]) -> bytes:
    try:
        path = hf_hub_download(repo_id=repo_id, repo_type=repo_type, filename=filename, token=token)
    except Exception as e:
        raise DataLoadError(f"HF download failed for {repo_id}/{filename}: {e}") from e
    return Path(path).read_bytes()


def _read_local(path: str) -> bytes:
    p = Path(path)
    if not p.is_file():
        raise DataLoadError(f"Data file not found: {p}")
    try:
        return p.read_bytes()
    except OSError as e:
        raise DataLoadError(f"Could not read {p}: {e}") from e


def load_records(settings) -> pd.DataFrame:
    """Fetch the CSV from the configured backend and parse it into records."""
    if settings.backend == "url":
        if not settings.data_url:
            raise DataLoadError("DATA_BACKEND is 'url' but DATA_URL is not set.")
        source = settings.data_url
        content = _fetch_url(settings.data_url)
    elif settings.backend == "hf":
        if not settings.hf_repo_id:
            raise DataLoadError("DATA_BACKEND is 'hf' but HF_REPO_ID is not set.")
        source = f"{settings.hf_repo_id}/{settings.hf_filename}"
        content = _fetch_hf(settings.hf_repo_id, settings.hf_repo_type, settings.hf_filename, settings.hf_token)
    else:
        source = settings.data_path
        content = _read_local(settings.data_path)

    records = parse_records(read_csv_bytes(content, source=source))
    logger.info("Loaded %d records from %s (%s to %s)", len(records), source,
                records["date"].min().date(), records["date"].max().date())
    return records


# ============================================================================
# SMOOTHING
# ============================================================================

def _forward_mean(s: pd.Series, window: int) -> pd.Series:
    # mean of the next `window` present values, shrinking at the tail; NaN rows stay NaN
    present = s.dropna()
    return present[::-1].rolling(window, min_periods=1).mean()[::-1].reindex(s.index)


def smooth(
    records: pd.DataFrame,
    fields: Sequence[str] = VALUE_FIELDS,
    window: int = DEFAULT_WINDOW,
    policy: str = FORWARD_SHRINKING,
    key_field: str = PRIMARY_FIELD,
) -> pd.DataFrame:
    """
    Attach `smoothed_<field>` columns for each of `fields`.

    forward-shrinking
        Rows with NaN in the drop field are removed first: `key_field` when it
        is averaged, otherwise the first of `fields`. Row i gets the mean of
        rows [i, i + window), the window shrinking near the end so no row is
        lost. Every other field is windowed over its own present values and
        stays NaN on rows where its raw value is NaN.
    backward-truncating
        Row i gets the mean of rows [i - window + 1, i]. The first window - 1
        rows are dropped; NaN is not filtered and poisons every window it is in.
    """
    fields = tuple(fields)
    unknown = [f for f in fields + (key_field,) if f not in records.columns]
    if unknown:
        raise ValueError(f"Unknown record fields: {', '.join(unknown)}")
    if int(window) < 1:
        raise ValueError(f"window must be >= 1, got {window}")
    window = int(window)

    if policy == FORWARD_SHRINKING:
        drop_on = [key_field] if key_field in fields else list(fields[:1])
        out = records.dropna(subset=drop_on).reset_index(drop=True).copy()
        for f in fields:
            out[smoothed_name(f)] = _forward_mean(out[f], window)
    elif policy == BACKWARD_TRUNCATING:
        out = records.reset_index(drop=True).copy()
        for f in fields:
            out[smoothed_name(f)] = out[f].rolling(window, min_periods=window).mean()
        out = out.iloc[window - 1:].reset_index(drop=True)
    else:
        raise ValueError(f"Unknown smoothing policy {policy!r}; expected one of {SMOOTHING_POLICIES}")

    logger.info("Smoothed %d of %d records (%s, window=%d)", len(out), len(records), policy, window)
    return out


# ============================================================================
# RANGE FILTER
# ============================================================================

_INCLUSIVE = ("both", "left", "right", "neither")


def filter_years(
    records: pd.DataFrame,
    start_year: Optional[int] = None,
    end_year: Optional[int] = None,
    inclusive: str = "both",
) -> pd.DataFrame:
    """Contiguous slice of records whose calendar year lies between the bounds.

    `None` leaves a bound open; `inclusive` follows `Series.between`.
    """
    if inclusive not in _INCLUSIVE:
        raise ValueError(f"inclusive must be one of {_INCLUSIVE}, got {inclusive!r}")
    if start_year is not None and end_year is not None and start_year > end_year:
        raise ValueError(f"start_year {start_year} is after end_year {end_year}")

    years = records["date"].dt.year
    mask = pd.Series(True, index=records.index)
    if start_year is not None:
        mask &= (years >= start_year) if inclusive in ("both", "left") else (years > start_year)
    if end_year is not None:
        mask &= (years <= end_year) if inclusive in ("both", "right") else (years < end_year)
    return records.loc[mask].reset_index(drop=True)


def year_bounds(records: pd.DataFrame) -> Tuple[int, int]:
    years = records["date"].dt.year
    return int(years.min()), int(years.max())


# ============================================================================
# BUCKETS
# ============================================================================

class PeriodAverage(NamedTuple):
    start_year: int
    end_year: int        # exclusive
    date: pd.Timestamp
    values: Dict[str, float]


def period_averages(
    records: pd.DataFrame,
    start_year: int,
    end_year: int,
    step: int = PERIOD_STEP,
    fields: Optional[Iterable[str]] = None,
) -> List[PeriodAverage]:
    """Mean smoothed value per field over [y, y + step) for y in start..end by step."""
    if step < 1:
        raise ValueError(f"step must be >= 1, got {step}")
    if fields is None:
        fields = [f for f in VALUE_FIELDS if smoothed_name(f) in records.columns]
    fields = list(fields)

    years = records["date"].dt.year
    out = []
    for y in range(int(start_year), int(end_year) + 1, step):
        sub = records.loc[(years >= y) & (years < y + step)]
        if sub.empty:
            continue
        values = {f: float(sub[smoothed_name(f)].mean()) for f in fields}
        if all(pd.isna(v) for v in values.values()):
            continue
        # marker at Jan 1 of y, or the bucket's first record when the slice starts later
        when = max(pd.Timestamp(year=y, month=1, day=1), sub["date"].min())
        out.append(PeriodAverage(y, y + step, when, values))
    return out


def decade_buckets(records: pd.DataFrame) -> List[Tuple[int, int]]:
    """Inclusive (start, end) bounds of every decade touched by the records."""
    if records.empty:
        return []
    lo, hi = year_bounds(records)
    return [(d, d + 9) for d in range(lo // 10 * 10, hi + 1, 10)]


# ============================================================================
# ANNOTATIONS
# ============================================================================

class PlacedAnnotation(NamedTuple):
    annotation: Annotation
    date: pd.Timestamp
    value: float
    matched_year: int
    exact: bool


def annotations_in_domain(records: pd.DataFrame, annotations: Iterable[Annotation] = ANNOTATIONS) -> List[Annotation]:
    if records.empty:
        return []
    lo, hi = year_bounds(records)
    return [a for a in annotations if lo <= a.year <= hi]


def place_annotations(
    records: pd.DataFrame,
    annotations: Iterable[Annotation] = ANNOTATIONS,
    field: str = PRIMARY_FIELD,
    fallback: str = FALLBACK_SKIP,
) -> List[PlacedAnnotation]:
    """
    Anchor each visible annotation to the first record of its year.

    When the year has no record, `fallback` decides: "skip" leaves the
    annotation out, "nearest" anchors it to the closest year that has data
    (the earlier year wins a tie). Annotations whose anchor value is NaN are
    left out as well.
    """
    if fallback not in ANNOTATION_FALLBACKS:
        raise ValueError(f"Unknown annotation fallback {fallback!r}")
    col = smoothed_name(field)
    if col not in records.columns:
        raise ValueError(f"Records have no {col} column; smooth them first")

    visible = annotations_in_domain(records, annotations)
    if not visible:
        return []
    years = records["date"].dt.year
    available = sorted(years.unique().tolist())

    placed = []
    for ann in visible:
        hit = records.loc[years == ann.year]
        exact = not hit.empty
        if not exact:
            if fallback != FALLBACK_NEAREST:
                logger.info("No %d record for annotation %r; skipped", ann.year, ann.label)
                continue
            nearest = min(available, key=lambda y: (abs(y - ann.year), y))
            hit = records.loc[years == nearest]
        row = hit.iloc[0]
        value = row[col]
        if pd.isna(value):
            logger.info("Annotation %r has no %s value; skipped", ann.label, col)
            continue
        date = pd.Timestamp(year=ann.year, month=1, day=1) if exact else row["date"]
        placed.append(PlacedAnnotation(ann, date, float(value), int(row["date"].year), exact))
    return placed
