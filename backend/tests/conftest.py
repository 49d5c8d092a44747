import pytest

from symptom_triage.config import Settings
from symptom_triage.db import create_db_engine, init_db
from symptom_triage.history import HistoryService, SubmissionStore
from symptom_triage.uploads import MediaStore


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite://")
    factory = init_db(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def submission_store(session_factory):
    return SubmissionStore(session_factory)


@pytest.fixture
def history(submission_store):
    return HistoryService(submission_store)


@pytest.fixture
def media_store(tmp_path):
    return MediaStore(tmp_path / "uploads", "/media")


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        openai_api_key=None,
        database_url="sqlite://",
        upload_dir=str(tmp_path / "uploads"),
        media_base_url="/media",
        context_max_turns=None,
    )
