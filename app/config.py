from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/orders"
    log_level: str = "INFO"

    # "sql" (Postgres + Kafka change feed) or "memory"
    store_backend: str = "sql"

    # Kafka
    kafka_bootstrap_servers: str = "kafka:9092"
    orders_topic: str = "orders.changed"

    # Local session state; empty keeps it in process memory
    state_path: str = ""
    device_cookie_name: str = "device_id"

    cart_notice_seconds: float = 2.0

    # Idle sessions are closed and dropped; a returning device gets a fresh one
    session_idle_seconds: float = 1800.0
    max_sessions: int = 5000

    # Where the GCash account details live in the document store
    gcash_info_collection: str = "admin"
    gcash_info_doc_id: str = "gcash"

    # Observability; empty endpoint disables span export
    otlp_endpoint: str = "http://jaeger:4318/v1/traces"

    model_config = {"env_file": ".env"}


settings = Settings()
