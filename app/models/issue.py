"""Issue model"""

from sqlalchemy import Column, Date, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from app.models.base import Base


class Issue(Base):
    """Issue mirrored from the upstream tracker.

    Issues are the record of work, so they outlive their upstream context:
    when the project or team disappears, the reference is nulled instead of
    deleting the row.
    """

    __tablename__ = "issues"

    id = Column(String(255), primary_key=True)
    identifier = Column(String, nullable=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    state = Column(String, nullable=True)
    assignee_name = Column(String, nullable=True)
    priority_label = Column(String, nullable=True)
    due_date = Column(Date, nullable=True)

    project_id = Column(
        String(255), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True
    )
    project_name = Column(String, nullable=True)

    # Denormalized team reference; holds the upstream team id.
    team_key = Column(String(255), nullable=True, index=True)
    team_name = Column(String, nullable=True)

    # Upstream timestamps
    created_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)

    # Relationships
    labels = relationship(
        "Label",
        back_populates="issue",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Label.id",
    )

    def __repr__(self):
        return f"<Issue(id='{self.id}', identifier='{self.identifier}')>"
