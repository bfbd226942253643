"""
LeaderboardEntry - durable leaderboard row.

Schema
------
- subject_id : primary key, opaque identifier from the stream
- label      : display name, last write wins
- score      : latest score, last write wins
- rank       : dense rank written only by the reconciler (NULL until the
               first pass that sees the row)
- created_at / updated_at : server-side timestamps
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, String, func
from sqlmodel import Column, Field, SQLModel

SUBJECT_ID_MAX_LENGTH = 128
LABEL_MAX_LENGTH = 255


class LeaderboardEntry(SQLModel, table=True):
    """
    One subject's latest score and last reconciled rank.

    Indexes:
        - (score, subject_id) for the ordered reconciliation scan
        - rank for ranked page reads
    """

    __tablename__ = "leaderboard"
    __table_args__ = (
        Index("ix_leaderboard_score_subject", "score", "subject_id"),
    )

    subject_id: str = Field(
        sa_column=Column(String(SUBJECT_ID_MAX_LENGTH), primary_key=True)
    )
    label: str = Field(default="", max_length=LABEL_MAX_LENGTH)
    score: int = Field(sa_column=Column(BigInteger, nullable=False))
    rank: Optional[int] = Field(default=None, index=True)

    created_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(
            DateTime(timezone=True), nullable=False, server_default=func.now()
        ),
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "label": self.label,
            "score": self.score,
            "rank": self.rank,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<LeaderboardEntry(subject_id={self.subject_id!r}, "
            f"score={self.score}, rank={self.rank})>"
        )
