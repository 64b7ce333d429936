from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, JSON

from storefront.data.database import Base


class WebhookEventModel(Base):
    """Dziennik przetworzonych webhookow - unikalny event_id chroni przed powtorka."""

    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True)
    event_id = Column(String, nullable=False, unique=True)
    event_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
