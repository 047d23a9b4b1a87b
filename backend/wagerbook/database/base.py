"""SQLAlchemy declarative base shared by all Wagerbook models."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
