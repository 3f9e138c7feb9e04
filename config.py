import logging
import os
from dotenv import load_dotenv

load_dotenv()

API_BASE_URL = os.getenv('API_BASE_URL', 'http://localhost:3001').rstrip('/')
REQUEST_TIMEOUT = int(os.getenv('REQUEST_TIMEOUT_MS', '5000')) / 1000
PROBE_PATH = os.getenv('PROBE_PATH', '/users')
CONNECTIVITY_RECHECK_SECONDS = float(os.getenv('CONNECTIVITY_RECHECK_SECONDS', '0'))
CASCADE_WORKERS = int(os.getenv('CASCADE_WORKERS', '8'))

DB_PATH = os.getenv('FLASHCARDS_DB_PATH') or os.path.join(
    os.path.dirname(os.path.abspath(__file__)), 'flashcards.db'
)

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
