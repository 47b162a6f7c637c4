import logging

from fastapi import FastAPI

from .analytics import LoggingSink, Tracker
from .config import Settings, load_settings
from .game import Game
from .llm import ChatTransport, HttpChat
from .routes import router
from .storage import JsonFileStore, KeyValueStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    transport: ChatTransport | None = None,
    store: KeyValueStore | None = None,
    tracker: Tracker | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    transport = transport or HttpChat(
        settings.llm_url,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        timeout=settings.llm_timeout,
    )
    store = store if store is not None else JsonFileStore(settings.data_dir)
    tracker = tracker or Tracker(LoggingSink())

    app = FastAPI(title="Seoul Star Dream Agency")
    app.state.settings = settings
    app.state.transport = transport
    app.state.game = Game(transport, store=store, tracker=tracker, save_key=settings.save_key)
    app.include_router(router, prefix="/api")

    logger.info("App ready: llm=%s data=%s", settings.llm_url, settings.data_dir)
    return app


# Default app instance for uvicorn (reads settings from the environment)
app = create_app()
