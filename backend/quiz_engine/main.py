from typing import Callable, Iterable, Optional

from .catalog import InMemoryQuizCatalog, QuizCatalog, QuizSet
from .config import Settings, get_settings
from .db import get_history_collection
from .events import EventStore
from .game import GameController
from .history import CollectionHistoryRecorder, HistoryRecorder
from .logging_config import configure_logging
from .registry import RoomRegistry
from .scheduler import AsyncioScheduler, Scheduler
from .utils import now_ts


def create_controller(
    settings: Optional[Settings] = None,
    catalog: Optional[QuizCatalog] = None,
    quizzes: Iterable[QuizSet] = (),
    history: Optional[HistoryRecorder] = None,
    scheduler: Optional[Scheduler] = None,
    clock: Callable[[], float] = now_ts,
) -> GameController:
    """Wire a GameController with its own registry, outbox and collaborators."""
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    registry = RoomRegistry(scheduler=scheduler or AsyncioScheduler(), clock=clock)
    return GameController(
        registry=registry,
        events=EventStore(page_limit=settings.EVENT_PAGE_LIMIT),
        catalog=catalog or InMemoryQuizCatalog(quizzes),
        history=history or CollectionHistoryRecorder(get_history_collection(settings)),
        settings=settings,
    )
