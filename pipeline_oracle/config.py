"""Configuration constants for the Pipeline Oracle forecasting engine."""

# Canonical funnel stages
SCREEN = "SCREEN"
HM_SCREEN = "HM_SCREEN"
ONSITE = "ONSITE"
OFFER = "OFFER"
HIRED = "HIRED"
REJECTED = "REJECTED"
WITHDREW = "WITHDREW"

CONTROLLABLE_STAGES = [SCREEN, HM_SCREEN, ONSITE, OFFER]
TERMINAL_STAGES = {HIRED, REJECTED, WITHDREW}
ACTIVE_DISPOSITION = "active"

STAGE_LABELS = {
    SCREEN: "Screen",
    HM_SCREEN: "HM Interview",
    ONSITE: "Onsite",
    OFFER: "Offer",
    HIRED: "Hired",
}

# Who processes candidates at each capacity-limited stage
STAGE_OWNER_MAP = {
    SCREEN: "recruiter",
    HM_SCREEN: "hm",
    ONSITE: "both",
    OFFER: "recruiter",
}

# Knob presets (what-if parameters)
PRIOR_WEIGHT_VALUES = {
    "low": 2,
    "medium": 5,
    "high": 10,
}

MIN_N_VALUES = {
    "relaxed": 3,
    "standard": 5,
    "strict": 10,
}

ITERATIONS_RANGE = {
    "min": 1000,
    "max": 10000,
    "default": 1000,
    "performance_warning_threshold": 5000,
}

DEFAULT_PRIOR_WEIGHT = "medium"
DEFAULT_MIN_N_THRESHOLD = "standard"

# Rates and durations
DEFAULT_PRIOR_RATES = {
    SCREEN: 0.4,
    HM_SCREEN: 0.5,
    ONSITE: 0.4,
    OFFER: 0.8,
}
DEFAULT_PASS_RATE = 0.5
DEFAULT_DURATION_DAYS = 7.0

GLOBAL_STAGE_MEDIAN_DAYS = {
    SCREEN: 5.0,
    HM_SCREEN: 7.0,
    ONSITE: 10.0,
    OFFER: 5.0,
}
GLOBAL_DURATION_SIGMA = 0.5

SIMULATION_BLOCK_SIZE = 1000

# Forecast confidence grading
FORECAST_CONFIDENCE_THRESHOLDS = {
    "HIGH": 15,
    "MEDIUM": 5,
}
SHRINKAGE_SAMPLE_THRESHOLD = 10
MAX_STAGES_ON_FALLBACK = 2

# Capacity model
COHORT_CAPACITY_DEFAULTS = {
    SCREEN: 8.0,
    HM_SCREEN: 4.0,
    ONSITE: 3.0,
    OFFER: 1.5,
}
MAX_QUEUE_DELAY_DAYS = 21.0
DEFAULT_QUEUE_FACTOR = 1.0
DEFAULT_HORIZON_WEEKS = 1.0
TOP_BOTTLENECK_COUNT = 4
QUEUE_MODEL_VERSION = "v1.1"

CAPACITY_CONSTRAINED_P50_DELTA_DAYS = 3
CAPACITY_CONSTRAINED_TOTAL_DELAY_DAYS = 5.0

CONFIDENCE_ORDER = ["LOW", "MED", "HIGH"]

# Recommendations
RECOMMENDATIONS_SURFACED = 3
REDUCE_DEMAND_FACTOR = 2.0
HEAVY_FALLBACK_STAGE_COUNT = 2
REASSIGN_FALLBACK_SHARE = 0.5

CONFIDENCE_HEDGES = {
    "HIGH": "Based on observed patterns",
    "MED": "Based on similar cohorts",
    "LOW": "Estimated (limited data)",
}

# Cache
CACHE_MAX_ENTRIES = 50
