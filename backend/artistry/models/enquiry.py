from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Enum, ForeignKey, func
from sqlalchemy.orm import relationship
import enum
from ..database import Base


class EnquiryStatus(str, enum.Enum):
    PENDING = "pending"        # submitted, slot not reserved
    CONFIRMED = "confirmed"    # slot reserved
    CANCELLED = "cancelled"    # rejected, auto-cancelled or cancelled after confirm
    COMPLETED = "completed"    # service delivered


class Enquiry(Base):
    __tablename__ = "enquiries"

    id = Column(Integer, primary_key=True)

    service_type_id = Column(Integer, nullable=True)
    service_option = Column(String(200), nullable=False)
    booking_date = Column(Date, nullable=True)
    time_slot_id = Column(Integer, ForeignKey("time_slots.id", ondelete="SET NULL"), nullable=True, index=True)

    client_name = Column(String(200), nullable=False)
    client_email = Column(String(320), nullable=False)
    client_phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)

    status = Column(
        Enum(EnquiryStatus, name="enquiry_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=EnquiryStatus.PENDING,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    slot = relationship("TimeSlot", back_populates="enquiries")
