"""Team model"""

from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from app.models.base import Base


class Team(Base):
    """Team mirrored from the upstream tracker"""

    __tablename__ = "teams"

    id = Column(String(255), primary_key=True)
    name = Column(String, nullable=False)
    key = Column(String, nullable=True)

    # Local bookkeeping only; never overwritten by reconciliation.
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    projects = relationship("Project", back_populates="team")
    rates = relationship("Rate", back_populates="team")

    def __repr__(self):
        return f"<Team(id='{self.id}', name='{self.name}')>"
