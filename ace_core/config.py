"""
Application configuration for the calibration engine.

Component classes carry their own dataclass configs with defaults; these
dictionaries are what the command-line entry point feeds into them.
"""

# Transform estimation
CALIBRATION_CONFIG = {
    "min_tags": 3,                    # minimum tags per antenna
    "min_observations_per_tag": 5,    # samples before a tag counts as usable
    "model": "similarity",            # similarity | affine
}

# Observation quality thresholds
QUALITY_CONFIG = {
    "min_strength": 0.5,              # blocking
    "min_confidence": 0.6,            # blocking
    "rssi_warning_dbm": -75.0,        # non-blocking
    "error_estimate_warning_m": 3.0,  # non-blocking
    "nlos_los_percentage": 50.0,      # NLoS when LOS% is below this
}

# Guided workflow
WORKFLOW_CONFIG = {
    "collection_duration_s": 15.0,    # hard timeout per reference point
    "tick_interval_s": 0.1,           # progress tick
    "acceptance_radius_m": 5.0,       # free-form observation gate
    "mapping_min_strength": 0.5,      # strictly greater than
    "require_line_of_sight": True,
    "min_mappings": 3,
}

# Position estimation
LOCALIZATION_CONFIG = {
    "method": "first_three",          # first_three | least_squares
    "min_range_m": 0.0,
    "max_range_m": 100.0,
}

# Logging
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
