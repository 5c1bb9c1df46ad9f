from sqlalchemy import Column, Integer, Date, Time, Boolean, DateTime, func
from sqlalchemy.orm import relationship
from ..database import Base


class TimeSlot(Base):
    __tablename__ = "time_slots"

    id = Column(Integer, primary_key=True)
    slot_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    # written only by services/confirmation.py
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    enquiries = relationship("Enquiry", back_populates="slot")

    def __repr__(self):
        return f"<TimeSlot {self.id} {self.slot_date} {self.start_time}-{self.end_time}>"
