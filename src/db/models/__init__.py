# SQLAlchemy models
from .base import Base
from .review import LearnedItem, MistakeTally, ReviewStateRecord

__all__ = ["Base", "LearnedItem", "MistakeTally", "ReviewStateRecord"]
