import numpy as np
import pandas as pd
import pytest


def make_records(start="1900-01-01", periods=48, land_ocean=None, land=None, ocean=None, uncertainty=None):
    dates = pd.date_range(start, periods=periods, freq="MS")
    if land_ocean is None:
        land_ocean = np.full(periods, 15.0)
    df = pd.DataFrame({
        "date": dates,
        "land_temp": np.asarray(land if land is not None else np.asarray(land_ocean) - 6.0, dtype=float),
        "ocean_temp": np.asarray(ocean if ocean is not None else np.asarray(land_ocean) + 2.0, dtype=float),
        "land_ocean_temp": np.asarray(land_ocean, dtype=float),
    })
    if uncertainty is not None:
        df["land_ocean_temp_uncertainty"] = float(uncertainty)
    return df


def make_years(years, value=15.0):
    """Monthly records for each listed calendar year (gaps allowed)."""
    frames = [make_records(f"{y}-01-01", 12, land_ocean=np.full(12, value + (y % 100) / 100.0)) for y in years]
    return pd.concat(frames, ignore_index=True)


@pytest.fixture
def century():
    n = 12 * 51  # 1900..1950
    trend = 14.0 + np.arange(n) / n
    return make_records("1900-01-01", n, land_ocean=trend)


@pytest.fixture
def csv_text():
    return (
        "dt,LandAverageTemperature,LandAverageTemperatureUncertainty,OceanAverageTemperature,"
        "LandAndOceanAverageTemperature,LandAndOceanAverageTemperatureUncertainty\n"
        "1900-02-01,3.1,0.2,16.0,13.2,0.05\n"
        "1900-01-01,2.9,0.2,16.1,13.0,0.05\n"
        "not-a-date,1.0,0.1,1.0,1.0,0.1\n"
        "1900-03-01,,0.2,16.2,13.4,0.05\n"
    )
