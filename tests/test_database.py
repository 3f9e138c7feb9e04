"""
Tests for database/database.py.

Uses a real SQLite file in a pytest tmp_path so every test gets an isolated DB.
No HTTP, only persistence logic.
"""
import sqlite3
import pytest

import database.database as db
from utils.constants import COLLECTIONS


# ── Fixture ───────────────────────────────────────────────────

@pytest.fixture()
def store(db_path):
    return db.init_store(db_path)


# ── Helpers ───────────────────────────────────────────────────

def _raw(db_path: str, sql: str, params=()):
    """Run a raw query against the test DB and return fetchall."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    cur = conn.execute(sql, params)
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def _put(db_path: str, key: str, value: str):
    with db.get_db(db_path) as conn:
        conn.execute('INSERT OR REPLACE INTO entries (key, value) VALUES (?, ?)', (key, value))


# ── Loading ───────────────────────────────────────────────────

class TestInit:
    def test_fresh_store_has_all_collections_empty(self, store):
        for name in COLLECTIONS:
            assert store.get(name) == []

    def test_loads_persisted_collection(self, db_path):
        db.init_db(db_path)
        _put(db_path, 'categories', '[{"id": "1", "name": "Spanish", "userId": "1"}]')
        store = db.init_store(db_path)
        assert store.get('categories') == [{'id': '1', 'name': 'Spanish', 'userId': '1'}]

    def test_malformed_json_defaults_to_empty(self, db_path):
        db.init_db(db_path)
        _put(db_path, 'flashcards', '{not json')
        assert db.init_store(db_path).get('flashcards') == []

    def test_non_list_defaults_to_empty(self, db_path):
        db.init_db(db_path)
        _put(db_path, 'badges', '{"id": 1}')
        assert db.init_store(db_path).get('badges') == []

    def test_init_is_repeatable(self, db_path):
        db.init_store(db_path)
        db.init_store(db_path)
        tables = {r['name'] for r in _raw(db_path, "SELECT name FROM sqlite_master WHERE type='table'")}
        assert {'entries', 'pending_cascades'} <= tables


# ── update_cache ──────────────────────────────────────────────

class TestUpdateCache:
    def test_replaces_whole_collection(self, store):
        store.update_cache('progress', [{'id': 'a'}, {'id': 'b'}])
        store.update_cache('progress', [{'id': 'c'}])
        assert store.get('progress') == [{'id': 'c'}]

    def test_persists_to_disk(self, store, db_path):
        store.update_cache('users', [{'id': '7', 'name': 'Ann'}])
        reloaded = db.init_store(db_path)
        assert reloaded.get('users') == [{'id': '7', 'name': 'Ann'}]

    def test_collections_are_isolated(self, store):
        store.update_cache('flashcards', [{'id': '1'}])
        assert store.get('categories') == []

    def test_get_returns_copies(self, store):
        store.update_cache('categories', [{'id': '1', 'name': 'A'}])
        store.get('categories')[0]['name'] = 'mutated'
        assert store.get('categories')[0]['name'] == 'A'

    def test_unknown_collection_raises(self, store):
        with pytest.raises(KeyError):
            store.update_cache('decks', [])


# ── Session ───────────────────────────────────────────────────

class TestSession:
    def test_no_session_by_default(self, store):
        assert store.load_session() is None

    def test_save_and_load(self, store, db_path):
        store.save_session({'id': '1', 'name': 'Ann', 'email': 'ann@x.com', 'avatar': ''})
        assert db.init_store(db_path).load_session()['email'] == 'ann@x.com'

    def test_clear(self, store):
        store.save_session({'id': '1'})
        store.clear_session()
        assert store.load_session() is None

    def test_malformed_session_ignored(self, store, db_path):
        _put(db_path, 'session', 'garbage')
        assert store.load_session() is None

    def test_session_does_not_touch_collections(self, store):
        store.save_session({'id': '1'})
        assert store.get('users') == []


# ── Cascade markers ───────────────────────────────────────────

class TestPendingCascades:
    def test_add_and_list(self, store):
        marker_id = store.add_pending_cascade('delete_user', {'userId': '1'})
        pending = store.get_pending_cascades()
        assert pending == [{'id': marker_id, 'kind': 'delete_user', 'payload': {'userId': '1'}}]

    def test_listed_in_insertion_order(self, store):
        store.add_pending_cascade('delete_user', {'userId': '1'})
        store.add_pending_cascade('delete_user', {'userId': '2'})
        assert [p['payload']['userId'] for p in store.get_pending_cascades()] == ['1', '2']

    def test_remove(self, store):
        marker_id = store.add_pending_cascade('delete_category', {'categoryId': '3'})
        store.remove_pending_cascade(marker_id)
        assert store.get_pending_cascades() == []

    def test_survive_restart(self, store, db_path):
        store.add_pending_cascade('rename_category', {'categoryId': '3', 'newName': 'X'})
        assert len(db.init_store(db_path).get_pending_cascades()) == 1
