"""
Constants and default configuration for Pathways.
"""

CONFIG_FILES = [
    '.pathways.yaml',
    '.pathways.yml',
    '.pathways.toml',
    '.pathways.json',
]

DEFAULT_WINDOW_WEEKS = 6

# Team load thresholds (weeks of queued work)
BUSY_THRESHOLD_WEEKS = 8
OVERLOADED_THRESHOLD_WEEKS = 12

# Alert thresholds
STALE_IN_PROGRESS_DAYS = 7
STALE_CRITICAL_DAYS = 14
OBJECTIVE_LATE_CRITICAL_DAYS = 7
PROJECT_LATE_CRITICAL_DAYS = 14
TARGET_AT_RISK_DAYS = 5

# Percentiles of weekly throughput used for optimistic/pessimistic ranges
THROUGHPUT_BAND = (20, 80)

DEFAULT_CONFIG = {
    'forecast': {
        'window_weeks': DEFAULT_WINDOW_WEEKS,
        'busy_threshold_weeks': BUSY_THRESHOLD_WEEKS,
        'overloaded_threshold_weeks': OVERLOADED_THRESHOLD_WEEKS,
        'stale_in_progress_days': STALE_IN_PROGRESS_DAYS,
    },
    'storage': {
        'db_path': '.pathways/pathways.db',
    },
    'server': {
        'host': '127.0.0.1',
        'port': 5000,
    },
    'logging': {
        'level': 'INFO',
    },
}
