import random
from datetime import datetime, timezone

import pytest
from sqlalchemy.pool import StaticPool

from quizgate.core.cache import SnapshotCache
from quizgate.core.config import Settings
from quizgate.core.database import init_db, make_engine, make_session_factory
from quizgate.models.domain import Question, QuestionType
from quizgate.services.attempts import AttemptLedger, AttemptService
from quizgate.services.shareable_id import ShareableIdGenerator
from quizgate.services.version_store import VersionStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.gets = 0

    def get(self, key):
        self.gets += 1
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value
        return True


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def cfg():
    return Settings(ENVIRONMENT="testing", SNAPSHOT_CACHE_ENABLED=False, ACCESS_CODE_BCRYPT_ROUNDS=4)


@pytest.fixture
def engine():
    eng = make_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
        pool_pre_ping=False,
    )
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(session_factory, clock, cfg):
    return VersionStore(
        session_factory,
        id_generator=ShareableIdGenerator(random.Random(42)),
        clock=clock,
        cfg=cfg,
    )


@pytest.fixture
def cached_store(session_factory, clock, cfg, fake_redis):
    return VersionStore(
        session_factory,
        id_generator=ShareableIdGenerator(random.Random(7)),
        cache=SnapshotCache(fake_redis, ttl=60),
        clock=clock,
        cfg=cfg,
    )


@pytest.fixture
def ledger(session_factory, clock, cfg):
    return AttemptLedger(session_factory, clock=clock, cfg=cfg)


@pytest.fixture
def attempts(store, ledger, clock, cfg):
    return AttemptService(store, ledger, clock=clock, cfg=cfg)


def mc_question(qid=None, correct="b", points=1, text="Pick one"):
    return Question(
        id=qid,
        type=QuestionType.MULTIPLE_CHOICE,
        text=text,
        points=points,
        payload={"choices": [
            {"id": "a", "text": "Alpha", "correct": correct == "a"},
            {"id": "b", "text": "Bravo", "correct": correct == "b"},
            {"id": "c", "text": "Charlie", "correct": correct == "c"},
        ]},
    )


def tf_question(qid=None, correct=True, points=1):
    return Question(id=qid, type=QuestionType.TRUE_FALSE, text="True?", points=points, payload={"correct": correct})
