import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import make_asgi_app

from app.config import settings
from app.database import Base, create_engine, create_session_factory
from app.middleware.device import DeviceIdMiddleware
from app.middleware.metrics import MetricsMiddleware
from app.routers import cart, menu, orders, session
from app.services.catalog import CATEGORY_SEED, MENU_SEED, Catalog
from app.services.device import JsonFileStorage, MemoryStorage
from app.services.errors import (
    InvalidTransitionError,
    OrderNotFoundError,
    TransportError,
    ValidationError,
)
from app.services.session import SessionRegistry
from app.store.memory import InMemoryCatalogStore, InMemoryOrderStore
from app.store.sql import SqlCatalogStore, SqlOrderStore, run_change_feed, seed_catalog
from app.utils.logging import setup_logging
from shared.tracing import setup_tracing

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

setup_tracing("table-ordering", settings.otlp_endpoint)


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = producer = consumer = feed_task = None

    if settings.store_backend == "memory":
        logger.info("Starting up with in-memory stores")
        store = InMemoryOrderStore()
        catalog_store = InMemoryCatalogStore(CATEGORY_SEED, MENU_SEED)
    else:
        logger.info("Starting up, creating database tables")
        engine = create_engine(settings.database_url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)

        session_factory = create_session_factory(engine)
        await seed_catalog(session_factory)

        producer = AIOKafkaProducer(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            enable_idempotence=True,
        )
        # no group: every instance needs every change to refresh its own subscribers
        consumer = AIOKafkaConsumer(
            settings.orders_topic,
            bootstrap_servers=settings.kafka_bootstrap_servers,
            group_id=None,
            auto_offset_reset="latest",
        )
        await producer.start()
        await consumer.start()

        store = SqlOrderStore(session_factory, producer, topic=settings.orders_topic)
        catalog_store = SqlCatalogStore(session_factory)
        feed_task = asyncio.create_task(run_change_feed(consumer, store))

    catalog = await Catalog.load(catalog_store)
    storage = JsonFileStorage(settings.state_path) if settings.state_path else MemoryStorage()
    app.state.registry = SessionRegistry(store, catalog, storage, settings)
    logger.info("Startup complete", extra={"store_backend": settings.store_backend})

    yield

    app.state.registry.close()
    if isinstance(storage, JsonFileStorage):
        storage.close()
    if feed_task is not None:
        feed_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await feed_task
    if consumer is not None:
        await consumer.stop()
    if producer is not None:
        await producer.stop()
    if engine is not None:
        await engine.dispose()
    logger.info("Shutting down")


app = FastAPI(
    title="Table Ordering",
    description="Scan, order and track your table's orders",
    version="1.0.0",
    lifespan=lifespan,
)

FastAPIInstrumentor.instrument_app(app)
app.add_middleware(MetricsMiddleware)
app.add_middleware(DeviceIdMiddleware, cookie_name=settings.device_cookie_name)
app.include_router(menu.router, prefix="/menu", tags=["menu"])
app.include_router(cart.router, prefix="/cart", tags=["cart"])
app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(session.router, tags=["session"])

# Expose Prometheus metrics at /metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


@app.exception_handler(OrderNotFoundError)
async def not_found_handler(request: Request, exc: OrderNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(TransportError)
async def transport_error_handler(request: Request, exc: TransportError) -> JSONResponse:
    logger.warning("Store unavailable", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "We could not reach the restaurant. Please try again."},
    )


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
