"""
Quiz bookkeeping and progress statistics.

A quiz attempt is stored as a progress record:
    {flashcardId, userId, category, correct, timestamp}

Cards the user last got wrong are asked again before moving on.
Answering QUIZ_MASTER_TARGET questions correctly earns the 'Quiz Master' badge.
"""

import csv
import io
import logging
from datetime import datetime, timedelta, timezone
from functools import partial

from services.api import ResourceClient
from services.errors import ValidationFailed
from utils.constants import (
    PROGRESS_CSV_HEADER,
    QUIZ_MASTER,
    QUIZ_MASTER_DESCRIPTION,
    QUIZ_MASTER_TARGET,
    TimeFilter,
)
from utils.utils import same_id


def default_badges(user_id):
    """Badges every new account starts with, all unearned."""
    return [
        {
            'userId': user_id,
            'name': QUIZ_MASTER,
            'description': QUIZ_MASTER_DESCRIPTION,
            'earned': False,
        },
    ]


def check_answer(flashcard, answer):
    if not answer or not answer.strip():
        raise ValidationFailed('answer')
    return answer.strip().lower() == str(flashcard.get('answer', '')).strip().lower()


def next_flashcard(flashcards, progress, user_id, index):
    """Pick a card the user has missed before, otherwise the one at index."""
    if not flashcards:
        return None
    missed = {
        str(p['flashcardId'])
        for p in progress
        if same_id(p.get('userId'), user_id) and not p.get('correct')
    }
    for card in flashcards:
        if str(card['id']) in missed:
            return card
    return flashcards[min(index, len(flashcards) - 1)]


class QuizSession:
    def __init__(self, client: ResourceClient):
        self.client = client

    def record_answer(self, user_id, flashcard, answer, now=None):
        correct = check_answer(flashcard, answer)
        timestamp = (now or datetime.now(timezone.utc)).isoformat()

        record = self.client.save_progress({
            'flashcardId': flashcard['id'],
            'userId': user_id,
            'category': flashcard.get('category', ''),
            'correct': correct,
            'timestamp': timestamp,
        })

        award = partial(self._award_badges, user_id)
        self.client.run(award, award)
        return record

    def _award_badges(self, user_id):
        progress = self.client.get_progress(user_id)
        if sum(1 for p in progress if p.get('correct')) < QUIZ_MASTER_TARGET:
            return
        for badge in self.client.get_badges(user_id):
            if badge.get('name') == QUIZ_MASTER and not badge.get('earned'):
                self.client.update_badge(badge['id'], {'earned': True})
                logging.info(f"User {user_id} earned '{QUIZ_MASTER}'")


# STATS ==================================================

def current_streak(progress):
    """Consecutive correct answers counting back from the latest attempt."""
    streak = 0
    for attempt in reversed(progress):
        if not attempt.get('correct'):
            break
        streak += 1
    return streak


def progress_by_category(progress):
    rows = {}
    for attempt in progress:
        row = rows.setdefault(attempt.get('category', ''), {
            'category': attempt.get('category', ''), 'correct': 0, 'incorrect': 0,
        })
        row['correct' if attempt.get('correct') else 'incorrect'] += 1
    return list(rows.values())


def progress_by_date(progress, time_filter=TimeFilter.ALL, now=None):
    time_filter = TimeFilter(time_filter)
    now = now or datetime.now(timezone.utc)
    cutoff = None
    if time_filter is TimeFilter.LAST_7_DAYS:
        cutoff = now - timedelta(days=7)
    elif time_filter is TimeFilter.LAST_30_DAYS:
        cutoff = now - timedelta(days=30)

    rows = {}
    for attempt in progress:
        stamp = _parse_timestamp(attempt.get('timestamp'))
        if stamp is None or (cutoff and stamp < cutoff):
            continue
        day = stamp.date().isoformat()
        row = rows.setdefault(day, {'date': day, 'correct': 0, 'incorrect': 0})
        row['correct' if attempt.get('correct') else 'incorrect'] += 1
    return [rows[day] for day in sorted(rows)]


def badge_progress(badge, progress):
    if badge.get('name') == QUIZ_MASTER:
        current = sum(1 for p in progress if p.get('correct'))
        return {'current': current, 'target': QUIZ_MASTER_TARGET}
    return {'current': 0, 'target': 1}


def export_progress_csv(rows):
    """CSV of progress_by_category() rows."""
    out = io.StringIO()
    writer = csv.writer(out, lineterminator='\n')
    out.write(PROGRESS_CSV_HEADER + '\n')
    for row in rows:
        writer.writerow([row['category'], row['correct'], row['incorrect']])
    return out.getvalue().rstrip('\n')


def _parse_timestamp(value):
    if not value:
        return None
    try:
        stamp = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        logging.warning(f"Skipping progress record with bad timestamp: {value!r}")
        return None
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp
