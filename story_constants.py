# story_constants.py
# Static reference data for the temperature story: CSV schema, scenes,
# historical annotations and chart colours.
from typing import NamedTuple, Optional


# ---------- CSV SCHEMA ----------
# source column -> record column
CSV_COLUMNS = {
    "dt": "date",
    "LandAverageTemperature": "land_temp",
    "OceanAverageTemperature": "ocean_temp",
    "LandAndOceanAverageTemperature": "land_ocean_temp",
}
OPTIONAL_CSV_COLUMNS = {
    "LandAverageTemperatureUncertainty": "land_temp_uncertainty",
    "LandAndOceanAverageTemperatureUncertainty": "land_ocean_temp_uncertainty",
}

VALUE_FIELDS = ("land_temp", "ocean_temp", "land_ocean_temp")
PRIMARY_FIELD = "land_ocean_temp"
FIELD_LABELS = {
    "land_ocean_temp": "Overall",
    "land_temp": "Land",
    "ocean_temp": "Ocean",
}
UNCERTAINTY_FIELDS = {
    "land_temp": "land_temp_uncertainty",
    "land_ocean_temp": "land_ocean_temp_uncertainty",
}


def smoothed_name(field: str) -> str:
    return f"smoothed_{field}"


# ---------- SMOOTHING ----------
DEFAULT_WINDOW = 12
FORWARD_SHRINKING = "forward-shrinking"
BACKWARD_TRUNCATING = "backward-truncating"
SMOOTHING_POLICIES = (FORWARD_SHRINKING, BACKWARD_TRUNCATING)

# ---------- ANNOTATION LOOKUP ----------
FALLBACK_SKIP = "skip"
FALLBACK_NEAREST = "nearest"
ANNOTATION_FALLBACKS = (FALLBACK_SKIP, FALLBACK_NEAREST)

PERIOD_STEP = 5


# ---------- SCENES ----------
class Scene(NamedTuple):
    key: str
    title: str
    start_year: int
    end_year: Optional[int]
    story: str

    @property
    def label(self) -> str:
        end = "Present" if self.end_year is None else str(self.end_year)
        return f"{self.start_year}–{end}"


SCENES = (
    Scene(
        key="early",
        title="Scene 1 — Wars and the Depression",
        start_year=1900,
        end_year=1950,
        story=(
            "The first half of the century: two world wars and a global depression "
            "reshape industry, yet the smoothed record already drifts upward."
        ),
    ),
    Scene(
        key="postwar",
        title="Scene 2 — The Post-War Boom",
        start_year=1951,
        end_year=2000,
        story=(
            "Rapid industrial growth after 1950 pushes emissions up, and by the 1980s "
            "climate change becomes a research and public concern."
        ),
    ),
    Scene(
        key="recent",
        title="Scene 3 — The New Century",
        start_year=2001,
        end_year=None,
        story=(
            "The warmest years on record cluster here, alongside the first global "
            "agreement to limit warming."
        ),
    ),
)


# ---------- ANNOTATIONS ----------
class Annotation(NamedTuple):
    year: int
    label: str
    description: str
    y_offset: int = -30


ANNOTATIONS = (
    Annotation(1914, "World War I",
               "Global economic disruptions and changes in industrial activities during "
               "World War I affected climate patterns."),
    Annotation(1929, "Great Depression",
               "The Great Depression caused significant reductions in industrial activity "
               "and CO2 emissions, temporarily affecting global temperatures."),
    Annotation(1960, "Post-War Industrial Boom",
               "Significant industrial growth post-World War II led to increased emissions "
               "and temperature rise."),
    Annotation(1980, "Climate Awareness",
               "Increased public awareness and scientific research on climate change "
               "started around this period."),
    Annotation(2015, "Paris Agreement",
               "Global agreement to combat climate change and accelerate actions towards "
               "a sustainable low carbon future."),
    Annotation(2020, "COVID-19 Pandemic",
               "Temporary reduction in CO2 emissions due to global lockdowns and reduced "
               "industrial activity."),
)


# ---------- COLORS ----------
CBLIND = {
    "blue": "#0072B2",
    "orange": "#E69F00",
    "sky": "#56B4E9",
    "green": "#009E73",
    "yellow": "#F0E442",
    "verm": "#D55E00",
    "pink": "#CC79A7",
    "grey": "#999999",
    "red": "#d62728",
}
FIELD_COLORS = {
    "land_ocean_temp": "steelblue",
    "land_temp": CBLIND["verm"],
    "ocean_temp": CBLIND["green"],
}
MARKER_COLOR = "orange"
ANNOTATION_COLOR = "black"

Y_PADDING = 0.5
