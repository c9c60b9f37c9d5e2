from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import select
from sqlalchemy.orm import Session

from common import availability
from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import Caller, require_trusted_caller
from common.errors import ConflictError, NotFoundError, ValidationError, register_error_handlers
from common.logging_middleware import add_audit_middleware
from common.models import Booking, BookingStatus, HotelService, Room, RoomStatus, RoomType
from common.rate_limit import apply_rate_limiter, limiter
from common.repository import BookingRepository
from common.schemas import (
    AvailabilityRead,
    AvailableRoomRead,
    BookingCreate,
    BookingRead,
    BookingStatusUpdate,
    HotelServiceRead,
    RoomRead,
    RoomTypeRead,
    ServiceBookingCreate,
    ServicePing,
)

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Bookings Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    register_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "bookings")
    Instrumentator(registry=CollectorRegistry()).instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


def _require_window(check_in: datetime, check_out: datetime) -> Tuple[datetime, datetime, int]:
    """Normalize the window to naive UTC and reject empty stays."""

    check_in, check_out = availability.as_naive_utc(check_in), availability.as_naive_utc(check_out)
    nights = availability.calculate_nights(check_in, check_out)
    if nights <= 0:
        raise ValidationError("checkOut must be after checkIn")
    return check_in, check_out, nights


@app.get("/health", response_model=ServicePing, tags=["health"])
def health() -> ServicePing:
    return ServicePing(status="ok", service="bookings")


@app.get("/bookings/availability", response_model=AvailabilityRead)
@limiter.limit("40/minute")
def check_availability(
    request: Request,
    room_id: str = Query(..., alias="roomId"),
    check_in: datetime = Query(..., alias="checkIn"),
    check_out: datetime = Query(..., alias="checkOut"),
    db: Session = Depends(get_db),
) -> AvailabilityRead:
    check_in, check_out, nights = _require_window(check_in, check_out)
    room = db.get(Room, room_id)
    if room is None:
        raise NotFoundError("Room not found")
    if room.status == RoomStatus.MAINTENANCE:
        return AvailabilityRead(room_id=room_id, available=False, nights=nights)

    existing = BookingRepository(db).list_for_room_window(room_id, check_in, check_out)
    available = availability.is_room_available(room_id, check_in, check_out, existing)
    return AvailabilityRead(room_id=room_id, available=available, nights=nights)


@app.get("/rooms/available", response_model=List[AvailableRoomRead])
@limiter.limit("40/minute")
def list_available_rooms(
    request: Request,
    check_in: datetime = Query(..., alias="checkIn"),
    check_out: datetime = Query(..., alias="checkOut"),
    room_type_id: Optional[str] = Query(None, alias="roomTypeId"),
    db: Session = Depends(get_db),
) -> List[AvailableRoomRead]:
    check_in, check_out, nights = _require_window(check_in, check_out)
    rooms = list(db.scalars(select(Room).where(Room.status != RoomStatus.MAINTENANCE).order_by(Room.number)))
    bookings = BookingRepository(db).list_for_window(check_in, check_out)
    results = []
    for room in availability.get_available_rooms(rooms, check_in, check_out, bookings, room_type_id):
        room_type: Optional[RoomType] = room.room_type
        total = room_type.base_price * nights if room_type else Decimal("0")
        results.append(
            AvailableRoomRead(
                room=RoomRead.model_validate(room),
                room_type=RoomTypeRead.model_validate(room_type) if room_type else None,
                nights=nights,
                total_price=total,
            )
        )
    return results


@app.post("/bookings", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_booking(
    request: Request,
    booking_in: BookingCreate,
    db: Session = Depends(get_db),
) -> Booking:
    _, _, nights = _require_window(booking_in.check_in, booking_in.check_out)
    room = db.get(Room, booking_in.room_id)
    if room is None:
        raise NotFoundError("Room not found")

    room_price = room.room_type.base_price * nights
    booking = Booking(
        room_id=room.id,
        check_in=booking_in.check_in,
        check_out=booking_in.check_out,
        guests=booking_in.guests,
        guest_name=booking_in.guest_name,
        guest_email=booking_in.guest_email,
        special_requests=booking_in.special_requests,
        room_price=room_price,
        services_price=booking_in.services_price,
        total_price=room_price + booking_in.services_price,
        currency=(booking_in.currency or settings.default_currency).lower(),
        status=BookingStatus.PENDING,
    )
    return BookingRepository(db).reserve_room(booking)


@app.get("/services", response_model=List[HotelServiceRead])
def list_services(db: Session = Depends(get_db)) -> List[HotelService]:
    return list(db.scalars(select(HotelService).where(HotelService.is_active.is_(True)).order_by(HotelService.name)))


@app.post("/bookings/service", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_service_booking(
    request: Request,
    booking_in: ServiceBookingCreate,
    db: Session = Depends(get_db),
) -> Booking:
    _require_window(booking_in.check_in, booking_in.check_out)
    service = db.get(HotelService, booking_in.service_id)
    if service is None or not service.is_active:
        raise NotFoundError("Service not found")

    booking = Booking(
        service_id=service.id,
        check_in=booking_in.check_in,
        check_out=booking_in.check_out,
        guests=booking_in.guests,
        guest_name=booking_in.guest_name,
        guest_email=booking_in.guest_email,
        special_requests=booking_in.special_requests,
        room_price=Decimal("0"),
        services_price=service.price,
        total_price=service.price,
        currency=(booking_in.currency or settings.default_currency).lower(),
        status=BookingStatus.PENDING,
    )
    return BookingRepository(db).add(booking)


@app.get("/bookings/{booking_id}", response_model=BookingRead)
def get_booking(
    booking_id: str,
    _: Caller = Depends(require_trusted_caller),
    db: Session = Depends(get_db),
) -> Booking:
    booking = BookingRepository(db).get_by_id(booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


@app.post("/bookings/{booking_id}/status", response_model=BookingRead)
@limiter.limit("20/minute")
def update_booking_status(
    request: Request,
    booking_id: str,
    update: BookingStatusUpdate,
    _: Caller = Depends(require_trusted_caller),
    db: Session = Depends(get_db),
) -> Booking:
    repo = BookingRepository(db)
    booking = repo.get_by_id(booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")

    reinstating = booking.status == BookingStatus.CANCELLED and update.status != BookingStatus.CANCELLED
    if reinstating and booking.room_id:
        clashes = [
            other
            for other in repo.list_for_room_window(booking.room_id, booking.check_in, booking.check_out)
            if other.id != booking.id
        ]
        if clashes:
            raise ConflictError("Room has been booked by someone else for that window")

    return repo.update_fields(booking, status=update.status)
