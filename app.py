import logging

import requests

from config import API_BASE_URL, DB_PATH, REQUEST_TIMEOUT
from database.database import init_store
from services.api import ResourceClient
from services.auth import AuthService
from services.cascade import CascadeCoordinator
from services.connectivity import ConnectivityMonitor
from services.progress import QuizSession
from utils.constants import COLLECTIONS


class App:
    """Everything the interface layer needs, wired together once at startup."""

    def __init__(self, store, monitor, client, cascades, auth, quiz):
        self.store = store
        self.monitor = monitor
        self.client = client
        self.cascades = cascades
        self.auth = auth
        self.quiz = quiz


def create_app(db_path=None, session=None, base_url=API_BASE_URL, timeout=REQUEST_TIMEOUT, **monitor_options):
    store = init_store(db_path or DB_PATH)
    session = session or requests.Session()

    monitor = ConnectivityMonitor(session, base_url, timeout, **monitor_options)
    client = ResourceClient(store, monitor, session, base_url, timeout)
    cascades = CascadeCoordinator(client, store)
    auth = AuthService(client, cascades, store)
    quiz = QuizSession(client)

    resumed = cascades.resume_pending()
    if resumed:
        logging.info(f"Finished {resumed} interrupted cascade(s)")

    return App(store, monitor, client, cascades, auth, quiz)


def main() -> None:
    logging.info("Init store...")
    app = create_app()

    state = app.monitor.check()
    logging.info(f"Backend {API_BASE_URL} is {state.value}")
    for name in COLLECTIONS:
        logging.info(f"  {name}: {len(app.store.get(name))} cached record(s)")

    pending = app.store.get_pending_cascades()
    if pending:
        logging.warning(f"{len(pending)} cascade(s) still waiting for the server")

    user = app.auth.current_user()
    if user:
        logging.info(f"Signed in as {user['email']}")


if __name__ == '__main__':
    main()
