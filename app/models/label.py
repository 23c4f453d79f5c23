"""Label model"""

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship

from app.models.base import Base


class Label(Base):
    """Label attached to one issue.

    The same upstream label id shows up on every issue carrying it, so rows are
    keyed by (issue_id, id).
    """

    __tablename__ = "labels"

    issue_id = Column(
        String(255), ForeignKey("issues.id", ondelete="CASCADE"), primary_key=True
    )
    id = Column(String(255), primary_key=True)
    name = Column(String, nullable=False)
    color = Column(String(7), nullable=True)
    parent_id = Column(String(255), nullable=True)

    # Relationships
    issue = relationship("Issue", back_populates="labels")

    def __repr__(self):
        return f"<Label(id='{self.id}', name='{self.name}', issue_id='{self.issue_id}')>"
