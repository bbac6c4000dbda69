from pymongo import AsyncMongoClient
from core.config import settings

_client: AsyncMongoClient | None = None

def get_client() -> AsyncMongoClient:
    global _client
    if _client is None:
        # tz_aware so stored datetimes compare against utcnow()
        _client = AsyncMongoClient(settings.mongodb_uri, tz_aware=True)
    return _client


def get_db():
    return get_client()[settings.database_name]


# Shorthand collection accessors
def users_col():
    return get_db()["users"]


def materials_col():
    return get_db()["materials"]


def study_sessions_col():
    return get_db()["study_sessions"]


def test_sessions_col():
    return get_db()["test_sessions"]
