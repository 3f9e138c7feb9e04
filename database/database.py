import json
import logging
import sqlite3
from contextlib import contextmanager

from database.schema import entries_schema, pending_cascade_schema
from config import DB_PATH
from utils.constants import COLLECTIONS, SESSION_KEY


class MirrorStore:
    """
    Local mirror of the five remote collections, persisted in SQLite.

    The in-memory copy is what callers read; every mutation goes through
    update_cache(), which rewrites the whole serialized collection.
    """

    def __init__(self, db_path=None):
        self.db_path = db_path or DB_PATH
        self._cache = {name: [] for name in COLLECTIONS}

    # COLLECTIONS ============================================

    def load(self):
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            for name in COLLECTIONS:
                cursor.execute('SELECT value FROM entries WHERE key = ?', (name,))
                row = cursor.fetchone()
                self._cache[name] = _parse_collection(name, row['value'] if row else None)
        logging.info(
            "Mirror loaded: " + ', '.join(f"{n}={len(self._cache[n])}" for n in COLLECTIONS)
        )

    def get(self, collection):
        return [dict(record) for record in self._cache[collection]]

    def update_cache(self, collection, records):
        if collection not in self._cache:
            raise KeyError(collection)
        records = [dict(record) for record in records]
        self._cache[collection] = records
        _write_entry(self.db_path, collection, json.dumps(records))

    # SESSION ================================================

    def save_session(self, user):
        _write_entry(self.db_path, SESSION_KEY, json.dumps(user))

    def load_session(self):
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT value FROM entries WHERE key = ?', (SESSION_KEY,))
            row = cursor.fetchone()
        if not row:
            return None
        try:
            user = json.loads(row['value'])
        except ValueError:
            logging.warning("Stored session is malformed, ignoring it")
            return None
        return user if isinstance(user, dict) else None

    def clear_session(self):
        with get_db(self.db_path) as conn:
            conn.execute('DELETE FROM entries WHERE key = ?', (SESSION_KEY,))

    # CASCADE MARKERS ========================================

    def add_pending_cascade(self, kind, payload):
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                'INSERT INTO pending_cascades (kind, payload) VALUES (?, ?)',
                (kind, json.dumps(payload))
            )
            return cursor.lastrowid

    def get_pending_cascades(self):
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT cascade_id, kind, payload FROM pending_cascades ORDER BY cascade_id'
            )
            rows = cursor.fetchall()
        return [
            {'id': row['cascade_id'], 'kind': row['kind'], 'payload': json.loads(row['payload'])}
            for row in rows
        ]

    def remove_pending_cascade(self, cascade_id):
        with get_db(self.db_path) as conn:
            conn.execute('DELETE FROM pending_cascades WHERE cascade_id = ?', (cascade_id,))


def _parse_collection(name, raw):
    if raw is None:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        logging.warning(f"Persisted '{name}' is not valid JSON, starting empty")
        return []
    if not isinstance(data, list):
        logging.warning(f"Persisted '{name}' is not a list, starting empty")
        return []
    return [record for record in data if isinstance(record, dict)]


def _write_entry(db_path, key, value):
    with get_db(db_path) as conn:
        conn.execute(
            """INSERT INTO entries (key, value, updated_at) VALUES (?, ?, datetime('now'))
               ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                              updated_at = excluded.updated_at
            """,
            (key, value)
        )


# DB CONNECTION ==============================================

@contextmanager
def get_db(db_path=None):
    conn = sqlite3.connect(db_path or DB_PATH)
    conn.row_factory = sqlite3.Row

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_path=None):
    with get_db(db_path) as conn:
        conn.execute(entries_schema)
        conn.execute(pending_cascade_schema)


def init_store(db_path=None):
    """Create the schema if needed and return a store loaded from disk."""
    init_db(db_path)
    store = MirrorStore(db_path)
    store.load()
    return store
