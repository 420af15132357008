import pytest
import pytest_asyncio

from survey_db.engine import build_engine, build_session_factory, init_models
from survey_flow.catalog import QuestionCatalog
from survey_flow.sequencing import SequencingController
from survey_flow.store import InMemoryResponseStore, SqlResponseStore


@pytest.fixture(scope="session")
def catalog():
    """Load the default questionnaire once for the entire test session."""
    c = QuestionCatalog()
    c.load()
    return c


@pytest.fixture
def memory_store():
    """Fresh in-memory store for each test."""
    return InMemoryResponseStore()


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'survey.db'}"


@pytest_asyncio.fixture
async def sql_store(sqlite_url):
    """SqlResponseStore on a fresh SQLite file with the schema created."""
    engine = build_engine(sqlite_url)
    await init_models(engine)
    yield SqlResponseStore(build_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def controller(catalog, memory_store):
    """Controller over the default questionnaire with an in-memory store."""
    return SequencingController(catalog, memory_store)
