import numpy as np
import pandas as pd
import pytest
import requests

import story_data
from conftest import make_records, make_years
from story_config import Settings
from story_constants import (
    ANNOTATIONS,
    BACKWARD_TRUNCATING,
    FORWARD_SHRINKING,
    Annotation,
)
from story_data import (
    DataLoadError,
    decade_buckets,
    filter_years,
    load_records,
    parse_records,
    period_averages,
    place_annotations,
    read_csv_bytes,
    smooth,
)


def _settings(**kw):
    base = dict(backend="local", data_path="missing.csv", data_url="", hf_repo_id="",
                hf_repo_type="dataset", hf_filename="GlobalTemperatures.csv", hf_token=None,
                window=12, policy=FORWARD_SHRINKING, annotation_fallback="skip")
    base.update(kw)
    return Settings(**base)


# ---------- loading ----------

@pytest.mark.filterwarnings("error::UserWarning")
def test_parse_records_types_sorting_and_bad_dates(csv_text):
    recs = parse_records(read_csv_bytes(csv_text.encode("utf-8")))
    assert list(recs["date"].dt.month) == [1, 2, 3]
    assert recs["land_ocean_temp"].tolist() == [13.0, 13.2, 13.4]
    assert np.isnan(recs.loc[2, "land_temp"])
    assert "land_ocean_temp_uncertainty" in recs.columns
    assert recs["ocean_temp"].dtype == float


def test_parse_records_missing_required_column():
    raw = pd.DataFrame({"dt": ["1900-01-01"], "LandAverageTemperature": [1.0]})
    with pytest.raises(DataLoadError, match="LandAndOceanAverageTemperature"):
        parse_records(raw)


def test_parse_records_without_ocean_column_reads_nan():
    raw = pd.DataFrame({
        "dt": ["1900-01-01", "1900-02-01"],
        "LandAverageTemperature": [1.0, 2.0],
        "LandAndOceanAverageTemperature": [13.0, 13.5],
    })
    recs = parse_records(raw)
    assert recs["ocean_temp"].isna().all()
    assert len(recs) == 2


def test_parse_records_no_valid_dates():
    raw = pd.DataFrame({
        "dt": ["x", "y"],
        "LandAverageTemperature": [1.0, 2.0],
        "OceanAverageTemperature": [1.0, 2.0],
        "LandAndOceanAverageTemperature": [1.0, 2.0],
    })
    with pytest.raises(DataLoadError):
        parse_records(raw)


def test_read_csv_bytes_empty_is_load_error():
    with pytest.raises(DataLoadError):
        read_csv_bytes(b"")


def test_load_records_local(tmp_path, csv_text):
    p = tmp_path / "GlobalTemperatures.csv"
    p.write_text(csv_text)
    recs = load_records(_settings(data_path=str(p)))
    assert len(recs) == 3


def test_load_records_missing_local_file(tmp_path):
    with pytest.raises(DataLoadError, match="not found"):
        load_records(_settings(data_path=str(tmp_path / "nope.csv")))


def test_load_records_url_failure(monkeypatch):
    def boom(url, timeout=None):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(story_data.requests, "get", boom)
    with pytest.raises(DataLoadError, match="offline"):
        load_records(_settings(backend="url", data_url="https://example.org/t.csv"))


def test_load_records_url_success(monkeypatch, csv_text):
    class Resp:
        content = csv_text.encode("utf-8")

        def raise_for_status(self):
            return None

    monkeypatch.setattr(story_data.requests, "get", lambda url, timeout=None: Resp())
    recs = load_records(_settings(backend="url", data_url="https://example.org/t.csv"))
    assert recs["date"].is_monotonic_increasing


def test_load_records_hf(monkeypatch, tmp_path, csv_text):
    p = tmp_path / "g.csv"
    p.write_text(csv_text)
    seen = {}

    def fake_download(repo_id, repo_type, filename, token):
        seen.update(repo_id=repo_id, repo_type=repo_type, filename=filename)
        return str(p)

    monkeypatch.setattr(story_data, "hf_hub_download", fake_download)
    recs = load_records(_settings(backend="hf", hf_repo_id="someone/temps"))
    assert len(recs) == 3
    assert seen == {"repo_id": "someone/temps", "repo_type": "dataset", "filename": "GlobalTemperatures.csv"}


def test_load_records_url_backend_requires_url():
    with pytest.raises(DataLoadError, match="DATA_URL"):
        load_records(_settings(backend="url"))


# ---------- smoothing ----------

def test_forward_constant_series_stays_constant():
    recs = make_records("1900-01-01", 48, land_ocean=np.full(48, 10.0))
    out = smooth(recs, window=12, policy=FORWARD_SHRINKING)
    assert len(out) == 48
    assert (out["smoothed_land_ocean_temp"] == 10.0).all()


def test_forward_last_value_is_raw_and_full_windows_are_means():
    vals = np.arange(30, dtype=float) ** 1.5
    recs = make_records("1900-01-01", 30, land_ocean=vals)
    out = smooth(recs, window=12, policy=FORWARD_SHRINKING)
    sm = out["smoothed_land_ocean_temp"].to_numpy()
    assert sm[-1] == pytest.approx(vals[-1])
    for i in range(0, 30 - 12 + 1):
        assert sm[i] == pytest.approx(vals[i:i + 12].mean())
    # shrinking tail
    assert sm[25] == pytest.approx(vals[25:].mean())


def test_forward_drops_rows_missing_key_field():
    vals = np.full(24, 14.0)
    vals[[3, 10]] = np.nan
    recs = make_records("1900-01-01", 24, land_ocean=vals)
    out = smooth(recs, window=12, policy=FORWARD_SHRINKING)
    assert len(out) == 22
    assert out["smoothed_land_ocean_temp"].notna().all()


def test_forward_single_field_drops_its_own_nan_rows():
    land = np.full(24, 10.0)
    land[5] = np.nan
    recs = make_records("1900-01-01", 24, land=land)
    out = smooth(recs, fields=("land_temp",), window=12, policy=FORWARD_SHRINKING)
    assert len(out) == 23
    assert recs["date"].iloc[5] not in set(out["date"])
    assert (out["smoothed_land_temp"] == 10.0).all()


def test_forward_single_field_keeps_rows_missing_other_fields():
    vals = np.full(24, 14.0)
    vals[3] = np.nan
    recs = make_records("1900-01-01", 24, land_ocean=vals, land=np.full(24, 8.0))
    out = smooth(recs, fields=("land_temp",), window=12, policy=FORWARD_SHRINKING)
    assert len(out) == 24
    assert out["smoothed_land_temp"].notna().all()


def test_forward_secondary_field_windows_over_present_values():
    land = np.arange(24, dtype=float)
    land[5] = np.nan
    recs = make_records("1900-01-01", 24, land=land)
    out = smooth(recs, window=12, policy=FORWARD_SHRINKING)
    assert len(out) == 24
    sm = out["smoothed_land_temp"]
    assert np.isnan(sm.iloc[5])
    present = land[~np.isnan(land)]
    assert sm.iloc[4] == pytest.approx(present[4:16].mean())
    assert sm.iloc[6] == pytest.approx(present[5:17].mean())


def test_forward_all_nan_field_stays_empty():
    recs = make_records("1900-01-01", 24, ocean=np.full(24, np.nan))
    out = smooth(recs, window=12, policy=FORWARD_SHRINKING)
    assert len(out) == 24
    assert out["smoothed_ocean_temp"].isna().all()
    assert out["smoothed_land_ocean_temp"].notna().all()


def test_backward_truncates_and_propagates_nan():
    vals = np.arange(24, dtype=float)
    vals[5] = np.nan
    recs = make_records("1900-01-01", 24, land_ocean=vals)
    out = smooth(recs, window=12, policy=BACKWARD_TRUNCATING)
    assert len(out) == 24 - 12 + 1
    assert out["date"].iloc[0] == recs["date"].iloc[11]
    sm = out["smoothed_land_ocean_temp"]
    assert sm.iloc[:6].isna().all()
    assert sm.iloc[6] == pytest.approx(np.mean(np.arange(6, 18)))


def test_backward_shorter_than_window_is_empty():
    out = smooth(make_records(periods=5), window=12, policy=BACKWARD_TRUNCATING)
    assert out.empty


@pytest.mark.parametrize("kwargs", [
    {"window": 0},
    {"policy": "centered"},
    {"fields": ["not_a_field"]},
])
def test_smooth_rejects_bad_arguments(kwargs):
    with pytest.raises(ValueError):
        smooth(make_records(periods=24), **kwargs)


def test_smooth_does_not_mutate_input():
    recs = make_records(periods=24)
    before = recs.copy()
    smooth(recs)
    pd.testing.assert_frame_equal(recs, before)


# ---------- range filter ----------

def test_filter_years_inclusive_bounds(century):
    out = filter_years(century, 1910, 1919)
    years = out["date"].dt.year
    assert years.min() == 1910 and years.max() == 1919
    assert len(out) == 120


def test_filter_years_inclusive_modes(century):
    assert filter_years(century, 1910, 1919, inclusive="neither")["date"].dt.year.unique().tolist() == list(range(1911, 1919))
    assert filter_years(century, 1910, 1919, inclusive="left")["date"].dt.year.max() == 1918
    assert filter_years(century, 1910, 1919, inclusive="right")["date"].dt.year.min() == 1911


def test_filter_years_open_bounds(century):
    assert len(filter_years(century, None, 1900)) == 12
    assert filter_years(century, 1950, None)["date"].dt.year.unique().tolist() == [1950]


def test_filter_years_is_idempotent(century):
    once = filter_years(century, 1920, 1930)
    twice = filter_years(once, 1920, 1930)
    pd.testing.assert_frame_equal(once, twice)


def test_filter_years_rejects_reversed_bounds(century):
    with pytest.raises(ValueError):
        filter_years(century, 1930, 1920)


# ---------- buckets ----------

def test_period_averages_buckets_and_values(century):
    sm = smooth(century)
    periods = period_averages(sm, 1900, 1950, step=5, fields=["land_ocean_temp", "land_temp"])
    assert [p.start_year for p in periods] == list(range(1900, 1951, 5))
    first = periods[0]
    assert first.end_year == 1905
    assert first.date == pd.Timestamp("1900-01-01")
    expected = sm.loc[sm["date"].dt.year < 1905, "smoothed_land_ocean_temp"].mean()
    assert first.values["land_ocean_temp"] == pytest.approx(expected)


def test_period_averages_skips_empty_buckets():
    sm = smooth(make_years([1900, 1901, 1912]))
    periods = period_averages(sm, 1900, 1914, step=5)
    assert [p.start_year for p in periods] == [1900, 1910]


def test_decade_buckets():
    recs = make_years([1898, 1905, 1921])
    assert decade_buckets(recs) == [(1890, 1899), (1900, 1909), (1910, 1919), (1920, 1929)]
    assert decade_buckets(recs.iloc[0:0]) == []


# ---------- annotations ----------

def test_annotation_exact_year(century):
    sm = smooth(century)
    placed = place_annotations(sm, ANNOTATIONS)
    assert [p.annotation.label for p in placed] == ["World War I", "Great Depression"]
    ww1 = placed[0]
    assert ww1.exact and ww1.matched_year == 1914
    assert ww1.date == pd.Timestamp("1914-01-01")
    expected = sm.loc[sm["date"] == pd.Timestamp("1914-01-01"), "smoothed_land_ocean_temp"].iloc[0]
    assert ww1.value == pytest.approx(expected)


def test_annotation_missing_year_is_skipped_by_default():
    sm = smooth(make_years([1910, 1911, 1912, 1913, 1915, 1916]))
    assert place_annotations(sm, ANNOTATIONS) == []


def test_annotation_missing_year_nearest_fallback():
    sm = smooth(make_years([1910, 1911, 1912, 1913, 1915, 1916]))
    placed = place_annotations(sm, ANNOTATIONS, fallback="nearest")
    assert len(placed) == 1
    p = placed[0]
    assert not p.exact
    assert p.matched_year == 1913  # tie with 1915 goes to the earlier year
    assert p.date == pd.Timestamp("1913-01-01")


def test_annotation_outside_domain_is_ignored():
    sm = smooth(make_years([1900, 1901, 1902, 1903]))
    assert place_annotations(sm, ANNOTATIONS, fallback="nearest") == []


def test_annotation_nan_anchor_is_skipped():
    vals = np.arange(36, dtype=float)
    vals[0] = np.nan
    recs = make_records("1914-01-01", 36, land_ocean=vals)
    sm = smooth(recs, policy=BACKWARD_TRUNCATING)
    # first smoothed row is Dec 1914 and contains the NaN; no other 1914 row exists
    assert place_annotations(sm, [Annotation(1914, "x", "y")]) == []


def test_annotation_requires_smoothed_column(century):
    with pytest.raises(ValueError):
        place_annotations(century, ANNOTATIONS)
