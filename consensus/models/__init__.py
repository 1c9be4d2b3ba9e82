"""SQLAlchemy ORM models."""

from consensus.models.stock_cache import Base, StockCache

__all__ = ["Base", "StockCache"]
