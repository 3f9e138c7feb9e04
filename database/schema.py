# ======================= ENTRIES ========================
# One row per persisted entry: the five mirrored collections
# (JSON arrays) and the active user session (JSON object).

entries_schema = '''
    CREATE TABLE IF NOT EXISTS entries (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
'''

# ======================= CASCADES =======================

pending_cascade_schema = '''
    CREATE TABLE IF NOT EXISTS pending_cascades (
        cascade_id INTEGER PRIMARY KEY AUTOINCREMENT,
        kind TEXT NOT NULL,

        -- JSON arguments needed to replay the cascade
        payload TEXT NOT NULL,

        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
'''
