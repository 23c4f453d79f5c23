"""Rate model"""

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from app.models.base import Base


class Rate(Base):
    """Hourly billing rate owned by a team.

    Rates exist only locally. Reconciliation never writes them; it only removes
    rates whose team is gone.
    """

    __tablename__ = "rates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    rate = Column(Numeric(10, 2), nullable=False)
    team_id = Column(String(255), ForeignKey("teams.id"), nullable=False, index=True)

    # Relationships
    team = relationship("Team", back_populates="rates")

    def __repr__(self):
        return f"<Rate(name='{self.name}', rate={self.rate}, team_id='{self.team_id}')>"
