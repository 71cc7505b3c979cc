from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from mindease.api.deps import Services
from mindease.api.routes import router
from mindease.assistant.conversation import ConversationOrchestrator
from mindease.assistant.mood import MoodScorer
from mindease.assistant.tasks import TaskGenerator
from mindease.core.auth import make_identity_provider
from mindease.core.config import Settings, settings as default_settings
from mindease.core.errors import UNEXPECTED_MESSAGE, AppError
from mindease.core.logging import get_logger
from mindease.core.rate_limit import InMemoryRateStore, RateGovernor, RatePolicy, SqlRateStore
from mindease.db.session import init_db, make_engine, make_session_factory
from mindease.llm.client import CompletionClient

log = get_logger("main")


def build_services(settings: Settings, *, llm=None, identity=None, governor: RateGovernor | None = None) -> Services:
    engine = make_engine(settings.DATABASE_URL)
    session_factory = make_session_factory(engine)
    llm = llm or CompletionClient(settings)

    if governor is None:
        backend = (settings.RATE_LIMIT_BACKEND or "").lower().strip()
        if backend == "sql":
            store = SqlRateStore(session_factory)
        elif backend == "memory":
            store = InMemoryRateStore()
        else:
            raise ValueError(f"Unsupported RATE_LIMIT_BACKEND={settings.RATE_LIMIT_BACKEND}. Use memory or sql.")
        governor = RateGovernor(store, cleanup_probability=settings.RATE_LIMIT_CLEANUP_PROBABILITY)

    mood_scorer = MoodScorer(llm, session_factory, max_concurrency=settings.MOOD_MAX_CONCURRENCY)
    return Services(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        identity=identity or make_identity_provider(settings),
        governor=governor,
        chat_policy=RatePolicy("chat", settings.CHAT_RATE_WINDOW_MS, settings.CHAT_RATE_LIMIT),
        tasks_policy=RatePolicy("tasks", settings.TASKS_RATE_WINDOW_MS, settings.TASKS_RATE_LIMIT),
        mood_scorer=mood_scorer,
        orchestrator=ConversationOrchestrator(llm, session_factory, mood_scorer),
        task_generator=TaskGenerator(llm, session_factory, tz_name=settings.TIMEZONE),
    )


def create_app(settings: Settings = default_settings, **overrides) -> FastAPI:
    app = FastAPI(title="MindEase Assistant API", version="0.1.0")
    app.state.services = build_services(settings, **overrides)
    app.include_router(router, prefix="/api")

    @app.on_event("startup")
    async def on_startup():
        await init_db(app.state.services.engine)

    @app.on_event("shutdown")
    async def on_shutdown():
        await app.state.services.engine.dispose()

    @app.exception_handler(AppError)
    async def on_app_error(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def on_query_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request data", "code": "VALIDATION_ERROR"})

    @app.middleware("http")
    async def catch_unhandled(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            log.exception(f"unhandled error on {request.method} {request.url.path}")
            return JSONResponse(status_code=500, content={"error": UNEXPECTED_MESSAGE, "code": "INTERNAL_ERROR"})

    return app


app = create_app()
