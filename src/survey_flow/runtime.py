"""Wiring helper — builds a ready-to-use controller from settings.

``open_survey`` loads settings, configures logging, loads the catalog,
connects the SQL store (creating tables if asked) and yields a
``SequencingController`` bound to a new or existing session.  The engine is
disposed on exit.

Usage::

    async with open_survey() as controller:
        question = controller.current_question()
        ...
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from survey_db.config import get_async_url, normalise_async_url
from survey_db.engine import build_engine, build_session_factory, init_models
from survey_flow.catalog import QuestionCatalog
from survey_flow.config import SurveySettings, configure_logging, load_settings
from survey_flow.sequencing import SequencingController
from survey_flow.store import SqlResponseStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_survey(
    settings: SurveySettings | None = None,
    *,
    session_id: str | None = None,
    resume: bool = False,
) -> AsyncIterator[SequencingController]:
    """Yield a controller backed by the configured database.

    Args:
        settings: SDK settings; read from the environment when omitted
        session_id: load this session instead of starting a new one
        resume: when no ``session_id`` is given, resume the latest
            in-progress session if one exists
    """
    settings = settings or load_settings()
    configure_logging(settings)

    catalog = QuestionCatalog(settings.catalog_path)
    catalog.load()

    url = normalise_async_url(settings.database_url) if settings.database_url else get_async_url()
    engine = build_engine(url)
    try:
        if settings.create_schema:
            await init_models(engine)
        store = SqlResponseStore(build_session_factory(engine))
        controller = SequencingController(catalog, store)

        if session_id is not None:
            await controller.initialize(session_id)
        elif not (resume and await controller.resume_latest()):
            await controller.start_session()

        yield controller
    finally:
        await engine.dispose()
        logger.debug("Disposed engine for %s", engine.url.render_as_string(hide_password=True))
