"""Project model"""

from sqlalchemy import Column, Date, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from app.models.base import Base


class Project(Base):
    """Project mirrored from the upstream tracker"""

    __tablename__ = "projects"

    id = Column(String(255), primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    state = Column(String, nullable=True)
    start_date = Column(Date, nullable=True)
    target_date = Column(Date, nullable=True)

    # Ownership is decided by which team's listing the project appeared under.
    team_id = Column(String(255), ForeignKey("teams.id"), nullable=False, index=True)

    # Upstream timestamps
    created_at = Column(DateTime, nullable=True, index=True)
    updated_at = Column(DateTime, nullable=True)

    # Relationships
    team = relationship("Team", back_populates="projects")

    def __repr__(self):
        return f"<Project(id='{self.id}', name='{self.name}', team_id='{self.team_id}')>"
