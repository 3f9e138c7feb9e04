from enum import Enum

FLASHCARDS = 'flashcards'
CATEGORIES = 'categories'
PROGRESS = 'progress'
BADGES = 'badges'
USERS = 'users'

COLLECTIONS = (FLASHCARDS, CATEGORIES, PROGRESS, BADGES, USERS)

SESSION_KEY = 'session'

QUIZ_MASTER = 'Quiz Master'
QUIZ_MASTER_DESCRIPTION = 'Answer 10 questions correctly'
QUIZ_MASTER_TARGET = 10

PROGRESS_CSV_HEADER = 'Category,Correct,Incorrect'


class ConnectionState(Enum):
    ONLINE = 'online'
    OFFLINE = 'offline'


class CascadeKind(str, Enum):
    RENAME_CATEGORY = 'rename_category'
    DELETE_CATEGORY = 'delete_category'
    DELETE_USER = 'delete_user'


class TimeFilter(str, Enum):
    ALL = 'all'
    LAST_7_DAYS = '7days'
    LAST_30_DAYS = '30days'
