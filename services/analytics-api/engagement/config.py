"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── TiDB (MySQL-protocol compatible) ───────────────────────────────────
    tidb_host: str = "tidb"
    tidb_port: int = 4000
    tidb_user: str = "root"
    tidb_password: str = ""
    tidb_database: str = "engagement"
    # Full SQLAlchemy URL; takes precedence over the tidb_* fields when set
    database_url: Optional[str] = None

    @property
    def tidb_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.tidb_user}:{self.tidb_password}"
            f"@{self.tidb_host}:{self.tidb_port}/{self.tidb_database}"
        )

    # ── Redis (aggregate summaries) ────────────────────────────────────────
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0

    # ── Kafka ──────────────────────────────────────────────────────────────
    kafka_enabled: bool = False          # publishing is best-effort and opt-in
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_topic_engagement: str = "engagement-events"

    # ── Analytics behaviour ────────────────────────────────────────────────
    view_dedup_window_hours: int = 24
    item_top_k: int = 5                  # top viewers/likers/commenters per item
    owner_top_k: int = 10                # same, across all of an owner's items
    recent_viewers_limit: int = 10       # recent profile viewers
    top_items_limit: int = 5             # top portfolio items by views
    range_query_mode: str = "auto"       # 'auto' | 'events' | 'series'

    # ── Observability ──────────────────────────────────────────────────────
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "analytics-api"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
