# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "QUIETCHECK_APP_NAME": "App display name (default: quietcheck).",
    "QUIETCHECK_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Paths (gitignored)
    "QUIETCHECK_DATA_DIR": "Local data directory for the registry and logs (default: .local/quietcheck).",
    "QUIETCHECK_REGISTRY_DB_PATH": "Work registry SQLite path (default: <data_dir>/work.sqlite3).",
    # Periodic task
    "QUIETCHECK_TASK_NAME": "Unique name of the periodic task (default: data_collection).",
    "QUIETCHECK_TASK_INTERVAL": "Nominal period, e.g. 6h; at least 15m (default: 6h).",
    "QUIETCHECK_TASK_FLEX": "Flex window the runner may batch/delay within (default: 15m).",
    # Retry
    "QUIETCHECK_MAX_ATTEMPTS": "Failed attempts per period before giving up until the next one (default: 3).",
    "QUIETCHECK_BACKOFF_POLICY": "exponential or linear (default: exponential).",
    "QUIETCHECK_BACKOFF_DELAY": "Initial retry delay, clamped to [10s, 5h] (default: 30s).",
    # Runner
    "QUIETCHECK_POLL_INTERVAL_SECONDS": "Longest the worker sleeps between registry polls (default: 60).",
    "QUIETCHECK_CLAIM_LEASE_SECONDS": "Age after which a run claim counts as abandoned (default: 900).",
    "QUIETCHECK_EXECUTION_TIMEOUT_SECONDS": "Task body time limit; exceeding it is a failure (default: 600).",
}
