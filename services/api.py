"""
Resource client for the flashcard REST backend.

Every public call is one logical operation: the connectivity monitor pins
online/offline once, then the call either goes to the server and updates the
mirror with the server's answer, or works on the mirror alone. A transport
failure in a top-level call drops the client to offline mode and the call is
re-run against the mirror.
"""

import logging

import requests

from config import API_BASE_URL, REQUEST_TIMEOUT
from database.database import MirrorStore
from services.connectivity import ConnectivityMonitor
from services.errors import DuplicateCategory, NotFound, RemoteRejected, Unreachable
from utils.constants import BADGES, CATEGORIES, FLASHCARDS, PROGRESS, USERS
from utils.utils import generate_id, normalize_name, require_fields, same_id


class ResourceClient:
    def __init__(
        self,
        store: MirrorStore,
        monitor: ConnectivityMonitor,
        session: requests.Session,
        base_url: str = API_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.store = store
        self.monitor = monitor
        self.session = session
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    # HTTP =====================================================

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            self.monitor.mark_offline(f"{method} {path}: {e.__class__.__name__}")
            raise Unreachable(f"{method} {url}") from e
        except requests.RequestException as e:
            # Broken exchange (redirect loop, truncated body): reachable but unusable
            logging.error(f"{method} {url} failed: {e}")
            raise RemoteRejected(None, url) from e

        if not 200 <= response.status_code < 300:
            logging.warning(f"{method} {url} rejected with {response.status_code}")
            raise RemoteRejected(response.status_code, url)

        if not response.content:
            return None
        try:
            return response.json()
        except requests.JSONDecodeError as e:
            logging.error(f"{method} {url} returned a body that is not JSON")
            raise RemoteRejected(response.status_code, url) from e

    def query(self, collection, **filters):
        """GET /collection?field=value ... straight from the server."""
        params = {k: str(v) for k, v in filters.items() if v is not None}
        return self._request('GET', f'/{collection}', params=params or None) or []

    def remote_create(self, collection, record):
        return self._request('POST', f'/{collection}', json=record)

    def remote_patch(self, collection, record_id, partial):
        return self._request('PATCH', f'/{collection}/{record_id}', json=partial)

    def remote_delete(self, collection, record_id):
        """Delete on the server. A 404 means it is already gone."""
        try:
            self._request('DELETE', f'/{collection}/{record_id}')
        except RemoteRejected as e:
            if e.status != 404:
                raise
            logging.info(f"{collection}/{record_id} already deleted on server")

    # DISPATCH =================================================

    def run(self, online_call, offline_call):
        with self.monitor.operation() as online:
            if not online:
                return offline_call()
            try:
                return online_call()
            except Unreachable:
                if self.monitor.depth > 1:
                    raise
                logging.warning("Server unreachable, falling back to local mirror")
                self.monitor.repin_offline()
                return offline_call()

    # GENERIC CRUD =============================================

    def list_records(self, collection, owner_id=None):
        def offline():
            records = self.store.get(collection)
            if owner_id is None:
                return records
            return [r for r in records if same_id(r.get('userId'), owner_id)]

        def online():
            fetched = self.query(collection, userId=owner_id)
            if owner_id is None:
                self.store.update_cache(collection, fetched)
            else:
                others = [r for r in self.store.get(collection)
                          if not same_id(r.get('userId'), owner_id)]
                self.store.update_cache(collection, others + fetched)
            return fetched

        return self.run(online, offline)

    def create_record(self, collection, record):
        def offline():
            created = {**record, 'id': record.get('id') or generate_id()}
            self.store.update_cache(collection, self.store.get(collection) + [created])
            logging.info(f"Created {collection}/{created['id']} in local mirror")
            return created

        def online():
            created = self.remote_create(collection, record)
            self.store.update_cache(collection, self.store.get(collection) + [created])
            logging.info(f"Created {collection}/{created['id']}")
            return created

        return self.run(online, offline)

    def update_record(self, collection, record_id, partial):
        def offline():
            records = self.store.get(collection)
            for i, existing in enumerate(records):
                if same_id(existing.get('id'), record_id):
                    records[i] = {**existing, **partial, 'id': existing['id']}
                    self.store.update_cache(collection, records)
                    return records[i]
            raise NotFound(collection, record_id)

        def online():
            updated = self.remote_patch(collection, record_id, partial)
            self.store.update_cache(collection, _splice(self.store.get(collection), updated))
            return updated

        return self.run(online, offline)

    def delete_record(self, collection, record_id):
        def remove_from_mirror(strict):
            records = self.store.get(collection)
            remaining = [r for r in records if not same_id(r.get('id'), record_id)]
            if strict and len(remaining) == len(records):
                raise NotFound(collection, record_id)
            self.store.update_cache(collection, remaining)

        def offline():
            remove_from_mirror(strict=True)
            logging.info(f"Deleted {collection}/{record_id} from local mirror")

        def online():
            self._request('DELETE', f'/{collection}/{record_id}')
            remove_from_mirror(strict=False)
            logging.info(f"Deleted {collection}/{record_id}")

        self.run(online, offline)

    # FLASHCARDS ===============================================

    def get_flashcards(self, user_id):
        return self.list_records(FLASHCARDS, user_id)

    def create_flashcard(self, flashcard):
        require_fields(flashcard, 'question', 'answer', 'category', 'userId')
        return self.create_record(FLASHCARDS, flashcard)

    def update_flashcard(self, flashcard_id, flashcard):
        require_fields(flashcard, *(f for f in ('question', 'answer', 'category') if f in flashcard))
        return self.update_record(FLASHCARDS, flashcard_id, flashcard)

    def delete_flashcard(self, flashcard_id):
        self.delete_record(FLASHCARDS, flashcard_id)

    # CATEGORIES ===============================================

    def get_categories(self, user_id):
        return self.list_records(CATEGORIES, user_id)

    def create_category(self, category):
        """Create a category, refusing a name the owner already uses (any case)."""
        require_fields(category, 'name', 'userId')
        name = category['name'].strip()

        def create():
            existing = self.get_categories(category['userId'])
            if any(normalize_name(c.get('name')) == normalize_name(name) for c in existing):
                raise DuplicateCategory(name)
            return self.create_record(CATEGORIES, {**category, 'name': name})

        return self.run(create, create)

    def update_category(self, category_id, category):
        # Renames must go through CascadeCoordinator.rename_category
        return self.update_record(CATEGORIES, category_id, category)

    def delete_category_record(self, category_id):
        self.delete_record(CATEGORIES, category_id)

    # PROGRESS =================================================

    def get_progress(self, user_id):
        return self.list_records(PROGRESS, user_id)

    def create_progress(self, progress):
        require_fields(progress, 'flashcardId', 'userId')
        return self.create_record(PROGRESS, progress)

    save_progress = create_progress

    def update_progress(self, progress_id, progress):
        return self.update_record(PROGRESS, progress_id, progress)

    def delete_progress(self, progress_id):
        self.delete_record(PROGRESS, progress_id)

    # BADGES ===================================================

    def get_badges(self, user_id):
        return self.list_records(BADGES, user_id)

    def create_badge(self, badge):
        require_fields(badge, 'name', 'userId')
        return self.create_record(BADGES, badge)

    def update_badge(self, badge_id, badge):
        return self.update_record(BADGES, badge_id, badge)

    def delete_badge(self, badge_id):
        self.delete_record(BADGES, badge_id)

    # USERS ====================================================

    def get_users(self):
        return self.list_records(USERS)

    def create_user(self, user):
        require_fields(user, 'name', 'email')
        return self.create_record(USERS, user)

    def update_user(self, user_id, user):
        return self.update_record(USERS, user_id, user)

    def delete_user_record(self, user_id):
        # Leaves dependents behind; CascadeCoordinator.delete_user is the full delete
        self.delete_record(USERS, user_id)


def _splice(records, updated):
    for i, existing in enumerate(records):
        if same_id(existing.get('id'), updated.get('id')):
            records[i] = updated
            return records
    return records + [updated]
