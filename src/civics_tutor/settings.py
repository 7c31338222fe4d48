"""User settings stored alongside practice progress."""
from civics_tutor.db import get_connection

DEFAULTS = {
    "session_size": "10",
    "review_size": "20",
    "log_level": "WARNING",
}

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


def get_setting(db_path: str, key: str, default: str = None) -> str | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT value FROM user_settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    if row:
        return row["value"]
    return default if default is not None else DEFAULTS.get(key)


def set_setting(db_path: str, key: str, value: str) -> None:
    conn = get_connection(db_path)
    conn.execute(
        "INSERT INTO user_settings (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=?",
        (key, value, value),
    )
    conn.commit()
    conn.close()


def _positive_int(db_path: str, key: str) -> int:
    try:
        value = int(get_setting(db_path, key))
    except (TypeError, ValueError):
        return int(DEFAULTS[key])
    return value if value > 0 else int(DEFAULTS[key])


def get_session_size(db_path: str) -> int:
    """Questions per category/random session."""
    return _positive_int(db_path, "session_size")


def get_review_size(db_path: str) -> int:
    """Questions per spaced-repetition session."""
    return _positive_int(db_path, "review_size")


def get_log_level(db_path: str) -> str:
    level = (get_setting(db_path, "log_level") or "").upper()
    return level if level in LOG_LEVELS else DEFAULTS["log_level"]


def get_bank_path(db_path: str) -> str | None:
    """Custom question bank chosen with the import command, if any."""
    return get_setting(db_path, "bank_path")
