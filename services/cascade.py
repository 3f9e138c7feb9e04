"""
Cascades across collections that reference a category by name or a user by id.

Flashcards and progress records carry the category *name*, not its id, so a
rename has to be pushed into every dependent record and a delete has to hunt
them down. Badges point at their category through categoryId.

Nothing here is atomic. Each cascade is written as idempotent steps and a
marker row is persisted before the first mutation; the marker is removed once
every step has succeeded. resume_pending() replays markers left behind by an
interrupted run (for example the server going away half way through).
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from config import CASCADE_WORKERS
from database.database import MirrorStore
from services.api import ResourceClient
from services.errors import CascadeFailed, DataLayerError, DuplicateCategory, NotFound, Unreachable
from utils.constants import BADGES, CATEGORIES, FLASHCARDS, PROGRESS, USERS, CascadeKind
from utils.utils import normalize_name, require_fields, same_id

OWNED_COLLECTIONS = (FLASHCARDS, PROGRESS, BADGES, CATEGORIES)


class CascadeCoordinator:
    def __init__(self, client: ResourceClient, store: MirrorStore, workers: int = CASCADE_WORKERS):
        self.client = client
        self.store = store
        self.workers = workers

    # PUBLIC ===================================================

    def rename_category(self, category_id, new_name, owner_id):
        require_fields({'name': new_name}, 'name')
        new_name = new_name.strip()

        def attempt(online):
            categories = self.client.get_categories(owner_id)
            category = _find(categories, category_id)
            if category is None:
                raise NotFound(CATEGORIES, category_id)

            wanted = normalize_name(new_name)
            for other in categories:
                if not same_id(other['id'], category_id) and normalize_name(other.get('name')) == wanted:
                    raise DuplicateCategory(new_name)

            payload = {
                'categoryId': category['id'],
                'oldName': category['name'],
                'newName': new_name,
                'userId': owner_id,
            }
            self._execute(CascadeKind.RENAME_CATEGORY, payload, online)
            logging.info(f"Renamed category {category_id}: '{category['name']}' -> '{new_name}'")
            return {**category, 'name': new_name}

        return self.client.run(lambda: attempt(True), lambda: attempt(False))

    def delete_category(self, category_id, owner_id):
        def attempt(online):
            category = _find(self.client.get_categories(owner_id), category_id)
            if category is None:
                raise NotFound(CATEGORIES, category_id)

            payload = {'categoryId': category['id'], 'name': category['name'], 'userId': owner_id}
            self._execute(CascadeKind.DELETE_CATEGORY, payload, online)
            logging.info(f"Deleted category {category_id} ('{category['name']}') for user {owner_id}")

        self.client.run(lambda: attempt(True), lambda: attempt(False))

    def delete_user(self, user_id):
        def attempt(online):
            self._execute(CascadeKind.DELETE_USER, {'userId': user_id}, online)
            logging.info(f"Deleted user {user_id} and everything they owned")

        self.client.run(lambda: attempt(True), lambda: attempt(False))

    def resume_pending(self):
        """Replay cascades interrupted in an earlier run. Returns how many finished."""
        finished = 0
        for marker in self.store.get_pending_cascades():
            kind = CascadeKind(marker['kind'])
            with self.client.monitor.operation() as online:
                if not online:
                    logging.info(f"Offline, leaving {kind.value} cascade #{marker['id']} for later")
                    continue
                logging.info(f"Resuming {kind.value} cascade #{marker['id']}")
                try:
                    self._steps(kind, online=True)(marker['payload'])
                except DataLayerError as e:
                    logging.warning(f"Cascade #{marker['id']} still incomplete: {e}")
                    continue
            self.store.remove_pending_cascade(marker['id'])
            finished += 1
        return finished

    # EXECUTION ================================================

    def _execute(self, kind, payload, online):
        # The marker outlives any failure so resume_pending() can finish the job
        marker_id = self.store.add_pending_cascade(kind.value, payload)
        self._steps(kind, online)(payload)
        self.store.remove_pending_cascade(marker_id)

    def _steps(self, kind, online):
        steps = {
            CascadeKind.RENAME_CATEGORY: (self._rename_remote, self._rename_local),
            CascadeKind.DELETE_CATEGORY: (self._delete_category_remote, self._delete_category_local),
            CascadeKind.DELETE_USER: (self._delete_user_remote, self._delete_user_local),
        }
        remote, local = steps[kind]
        return remote if online else local

    def _parallel(self, kind, calls):
        """Run calls concurrently and wait for all of them; fail as one."""
        if not calls:
            return []
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(call) for call in calls]
            results, errors = [], []
            for future in futures:
                try:
                    results.append(future.result())
                except Exception as e:
                    errors.append(e)

        if errors:
            unreachable = [e for e in errors if isinstance(e, Unreachable)]
            if unreachable:
                raise unreachable[0]
            logging.warning(f"{kind.value}: {len(errors)} of {len(calls)} requests failed")
            raise CascadeFailed(kind.value, errors)
        return results

    # RENAME CATEGORY ==========================================

    def _rename_remote(self, payload):
        old, new, owner = payload['oldName'], payload['newName'], payload['userId']
        client = self.client

        category = client.remote_patch(CATEGORIES, payload['categoryId'], {'name': new})
        cards = client.query(FLASHCARDS, userId=owner, category=old)
        attempts = client.query(PROGRESS, userId=owner, category=old)

        calls = [_bind(client.remote_patch, FLASHCARDS, c['id'], {'category': new}) for c in cards]
        calls += [_bind(client.remote_patch, PROGRESS, p['id'], {'category': new}) for p in attempts]
        updated = self._parallel(CascadeKind.RENAME_CATEGORY, calls)

        self.store.update_cache(CATEGORIES, _upsert(self.store.get(CATEGORIES), [category]))
        self.store.update_cache(FLASHCARDS, _upsert(self.store.get(FLASHCARDS), updated[:len(cards)]))
        self.store.update_cache(PROGRESS, _upsert(self.store.get(PROGRESS), updated[len(cards):]))
        self._rename_local(payload)

    def _rename_local(self, payload):
        old, new, owner = payload['oldName'], payload['newName'], payload['userId']

        categories = self.store.get(CATEGORIES)
        for category in categories:
            if same_id(category['id'], payload['categoryId']):
                category['name'] = new
        self.store.update_cache(CATEGORIES, categories)

        for collection in (FLASHCARDS, PROGRESS):
            records = self.store.get(collection)
            for record in records:
                if same_id(record.get('userId'), owner) and record.get('category') == old:
                    record['category'] = new
            self.store.update_cache(collection, records)

    # DELETE CATEGORY ==========================================

    def _delete_category_remote(self, payload):
        client = self.client
        owner, name, category_id = payload['userId'], payload['name'], payload['categoryId']

        doomed = {
            FLASHCARDS: client.query(FLASHCARDS, userId=owner, category=name),
            PROGRESS: client.query(PROGRESS, userId=owner, category=name),
            BADGES: client.query(BADGES, userId=owner, categoryId=category_id),
        }
        calls = [
            _bind(client.remote_delete, collection, record['id'])
            for collection, records in doomed.items()
            for record in records
        ]
        self._parallel(CascadeKind.DELETE_CATEGORY, calls)

        # The category goes last, after every dependent
        client.remote_delete(CATEGORIES, category_id)
        self._delete_category_local(payload)

    def _delete_category_local(self, payload):
        owner, name, category_id = payload['userId'], payload['name'], payload['categoryId']

        def owned(record):
            return same_id(record.get('userId'), owner)

        self._drop(FLASHCARDS, lambda r: owned(r) and r.get('category') == name)
        self._drop(PROGRESS, lambda r: owned(r) and r.get('category') == name)
        self._drop(BADGES, lambda r: owned(r) and same_id(r.get('categoryId'), category_id))
        self._drop(CATEGORIES, lambda r: same_id(r.get('id'), category_id))

    # DELETE USER ==============================================

    def _delete_user_remote(self, payload):
        client = self.client
        user_id = payload['userId']

        calls = [
            _bind(client.remote_delete, collection, record['id'])
            for collection in OWNED_COLLECTIONS
            for record in client.query(collection, userId=user_id)
        ]
        self._parallel(CascadeKind.DELETE_USER, calls)

        client.remote_delete(USERS, user_id)
        self._delete_user_local(payload)

    def _delete_user_local(self, payload):
        user_id = payload['userId']
        for collection in OWNED_COLLECTIONS:
            self._drop(collection, lambda r: same_id(r.get('userId'), user_id))
        self._drop(USERS, lambda r: same_id(r.get('id'), user_id))

    # MIRROR ===================================================

    def _drop(self, collection, doomed):
        records = self.store.get(collection)
        remaining = [r for r in records if not doomed(r)]
        if len(remaining) != len(records):
            self.store.update_cache(collection, remaining)


def _bind(func, *args):
    def call():
        return func(*args)
    return call


def _find(records, record_id):
    return next((r for r in records if same_id(r.get('id'), record_id)), None)


def _upsert(records, changed):
    by_id = {str(r['id']): r for r in changed if r}
    merged = [by_id.pop(str(r.get('id')), r) for r in records]
    return merged + list(by_id.values())
