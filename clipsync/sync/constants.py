"""Constants for remote synchronization."""

# Recorded attempts after which a failed mutation is abandoned
DEFAULT_MAX_RETRIES = 3

DISABLED_ERROR = "Remote sync disabled"

# Delay before uploading bookmarks found newer locally during a pull
BACKGROUND_UPLOAD_DELAY_SECONDS = 0.1

BOOKMARKS_SCHEMA = """
CREATE TABLE IF NOT EXISTS bookmarks (
    id TEXT PRIMARY KEY,
    url TEXT,
    title TEXT,
    description TEXT,
    summary TEXT,
    category TEXT,
    tags TEXT,
    screenshot TEXT,
    domain TEXT,
    created_at TEXT,
    updated_at TEXT
)
"""

CATEGORIES_SCHEMA = """
CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT,
    icon TEXT,
    parent_id TEXT,
    sort_order INTEGER,
    created_at TEXT,
    updated_at TEXT
)
"""
