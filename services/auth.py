"""
Sign-in / sign-up on top of the users collection.

Passwords are stored as salted hashes (werkzeug.security); emails are compared
trimmed and case-insensitively everywhere. The signed-in user is kept in the
store's session entry.
"""

import logging

from werkzeug.security import check_password_hash, generate_password_hash

from database.database import MirrorStore
from services.api import ResourceClient
from services.cascade import CascadeCoordinator
from services.errors import DuplicateEmail, InvalidCredentials
from services.progress import default_badges
from utils.utils import generate_id, normalize_email, public_user, require_fields, same_id


class AuthService:
    def __init__(self, client: ResourceClient, cascades: CascadeCoordinator, store: MirrorStore):
        self.client = client
        self.cascades = cascades
        self.store = store

    def sign_in(self, email: str, password: str) -> dict[str, str]:
        require_fields({'email': email, 'password': password}, 'email', 'password')
        wanted = normalize_email(email)

        for user in self.client.get_users():
            if normalize_email(user.get('email')) != wanted:
                continue
            stored = user.get('passwordHash')
            if stored and check_password_hash(stored, password):
                signed_in = public_user(user)
                self.store.save_session(signed_in)
                logging.info(f"User {signed_in['id']} signed in")
                return signed_in
            break

        logging.info("Rejected sign-in attempt")
        raise InvalidCredentials()

    def sign_up(self, name: str, email: str, password: str) -> dict[str, str]:
        require_fields({'name': name, 'email': email, 'password': password}, 'name', 'email', 'password')

        user_id = generate_id()
        wanted = normalize_email(email)

        # Safe to re-run against the mirror if the server drops out half way
        def register():
            users = self.client.get_users()
            existing = next((u for u in users if normalize_email(u.get('email')) == wanted), None)
            if existing and not same_id(existing['id'], user_id):
                raise DuplicateEmail()

            created = existing or self.client.create_user({
                'id': user_id,
                'name': name.strip(),
                'email': email.strip(),
                'passwordHash': generate_password_hash(password),
                'avatar': '',
            })
            owned = {b.get('name') for b in self.client.get_badges(created['id'])}
            for badge in default_badges(created['id']):
                if badge['name'] not in owned:
                    self.client.create_badge(badge)
            return created

        created = self.client.run(register, register)
        signed_in = public_user(created)
        self.store.save_session(signed_in)
        logging.info(f"User {signed_in['id']} signed up")
        return signed_in

    def sign_out(self) -> None:
        self.store.clear_session()

    def current_user(self) -> dict[str, str] | None:
        return self.store.load_session()

    def update_profile(self, user_id, name=None, email=None, password=None, avatar=None):
        """Change any of the profile fields; None leaves a field as it is."""
        changes = {}
        if name is not None:
            require_fields({'name': name}, 'name')
            changes['name'] = name.strip()
        if password is not None:
            require_fields({'password': password}, 'password')
            changes['passwordHash'] = generate_password_hash(password)
        if avatar is not None:
            changes['avatar'] = avatar

        def apply():
            if email is not None:
                require_fields({'email': email}, 'email')
                wanted = normalize_email(email)
                for user in self.client.get_users():
                    if normalize_email(user.get('email')) == wanted and not same_id(user['id'], user_id):
                        raise DuplicateEmail()
                changes['email'] = email.strip()
            return self.client.update_user(user_id, changes)

        updated = public_user(self.client.run(apply, apply))
        session = self.store.load_session()
        if session and same_id(session.get('id'), user_id):
            self.store.save_session(updated)
        return updated

    def delete_account(self, user_id) -> None:
        self.cascades.delete_user(user_id)
        session = self.store.load_session()
        if session and same_id(session.get('id'), user_id):
            self.store.clear_session()
