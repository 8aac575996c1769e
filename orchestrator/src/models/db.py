"""
Database models for run history.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, JSON
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

class PipelineRunRecord(Base):
    __tablename__ = "pipeline_runs"

    id = Column(String(36), primary_key=True)
    pipeline_name = Column(String(255), nullable=False)
    repository_url = Column(String(500), nullable=False)
    ref = Column(String(255), nullable=False)
    commit_sha = Column(String(64), nullable=False)
    status = Column(String(50), default="running")
    outcome = Column(String(50))
    post_results = Column(JSON)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    stages = relationship(
        "PipelineStageRecord",
        back_populates="run",
        order_by="PipelineStageRecord.stage_order",
        cascade="all, delete-orphan",
    )

class PipelineStageRecord(Base):
    __tablename__ = "pipeline_stages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), ForeignKey("pipeline_runs.id", ondelete="CASCADE"))
    name = Column(String(255), nullable=False)
    stage_order = Column(Integer, nullable=False)
    status = Column(String(50), default="pending")
    exit_code = Column(Integer)
    error = Column(Text)
    logs = Column(Text)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)

    run = relationship("PipelineRunRecord", back_populates="stages")
