"""Database table definitions for the build manifest"""

from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text
from sqlmodel import Field, SQLModel


class RenderedPage(SQLModel, table=True):
    """One output file written by a build, keyed by the URL it serves"""
    __tablename__ = "rendered_pages"
    url: str = Field(primary_key=True)
    source: str = Field(..., sa_column=Column(Text, nullable=False))
    output: str = Field(..., sa_column=Column(Text, nullable=False))
    hash: str = Field(..., sa_column=Column(String(64), nullable=False))
    built_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))
