import enum
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base, enum_column, utcnow


class GenderType(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    MIXED = "mixed"


class RoomStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    RESERVED = "reserved"


class BedStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"


class AllocationStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"


class HostelFeeStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class HostelBuilding(Base):
    __tablename__ = "hostel_buildings"
    __table_args__ = (UniqueConstraint("organization_id", "building_code", name="uq_building_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    building_code: Mapped[str] = mapped_column(String(32), nullable=False)
    building_name: Mapped[str] = mapped_column(String(255), nullable=False)
    gender_type: Mapped[GenderType] = mapped_column(enum_column(GenderType), default=GenderType.MIXED, nullable=False)
    total_floors: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    warden_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    warden_phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    rooms: Mapped[list["HostelRoom"]] = relationship("HostelRoom", back_populates="building")


class HostelRoom(Base):
    __tablename__ = "hostel_rooms"
    __table_args__ = (UniqueConstraint("building_id", "room_number", name="uq_room_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    building_id: Mapped[int] = mapped_column(ForeignKey("hostel_buildings.id"), nullable=False, index=True)
    room_number: Mapped[str] = mapped_column(String(32), nullable=False)
    floor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    room_type: Mapped[str] = mapped_column(String(32), default="shared", nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    monthly_fee: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    status: Mapped[RoomStatus] = mapped_column(enum_column(RoomStatus), default=RoomStatus.AVAILABLE, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    building: Mapped[HostelBuilding] = relationship("HostelBuilding", back_populates="rooms")
    beds: Mapped[list["HostelBed"]] = relationship("HostelBed", back_populates="room")


class HostelBed(Base):
    __tablename__ = "hostel_beds"
    __table_args__ = (UniqueConstraint("room_id", "bed_number", name="uq_bed_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("hostel_rooms.id"), nullable=False, index=True)
    bed_number: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[BedStatus] = mapped_column(enum_column(BedStatus), default=BedStatus.AVAILABLE, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    room: Mapped[HostelRoom] = relationship("HostelRoom", back_populates="beds")


class HostelAllocation(Base):
    __tablename__ = "hostel_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    trainee_id: Mapped[int] = mapped_column(ForeignKey("trainees.id"), nullable=False, index=True)
    building_id: Mapped[int] = mapped_column(ForeignKey("hostel_buildings.id"), nullable=False)
    room_id: Mapped[int] = mapped_column(ForeignKey("hostel_rooms.id"), nullable=False)
    bed_id: Mapped[int] = mapped_column(ForeignKey("hostel_beds.id"), nullable=False, index=True)
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_check_out_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    actual_check_out_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    monthly_fee: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    status: Mapped[AllocationStatus] = mapped_column(
        enum_column(AllocationStatus), default=AllocationStatus.ACTIVE, nullable=False, index=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    allocated_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    bed: Mapped[HostelBed] = relationship("HostelBed")


class HostelFee(Base):
    __tablename__ = "hostel_fees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    trainee_id: Mapped[int] = mapped_column(ForeignKey("trainees.id"), nullable=False, index=True)
    allocation_id: Mapped[int | None] = mapped_column(ForeignKey("hostel_allocations.id"), nullable=True, index=True)
    # First day of the month the fee covers.
    fee_month: Mapped[date] = mapped_column(Date, nullable=False)
    fee_amount: Mapped[float] = mapped_column(Float, nullable=False)
    amount_paid: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    balance: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_status: Mapped[HostelFeeStatus] = mapped_column(
        enum_column(HostelFeeStatus), default=HostelFeeStatus.PENDING, nullable=False, index=True
    )
    payment_method: Mapped[str | None] = mapped_column(String(40), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
