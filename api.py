import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from availability import toggle_slot
from calendar_view import MonthView
from config import configure_logging, settings
from i18n import SUPPORTED_LOCALES, Translator
from library import Library
from preferences import Preferences, PreferencesStore
from reservation import InvalidDateFormat, Reservation, ReservationStatus, parse_date_value
from room import Room, TimeSlot
from store import NotFound, StorageFailure
from utils.validators import SlotValidator

logger = logging.getLogger(__name__)

_library: Optional[Library] = None
_preferences: Optional[PreferencesStore] = None


def get_library() -> Library:
    global _library
    if _library is None:
        _library = Library()
    return _library


def get_preferences_store() -> PreferencesStore:
    global _preferences
    if _preferences is None:
        _preferences = PreferencesStore()
    return _preferences


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _library
    configure_logging()
    try:
        yield
    finally:
        if _library is not None:
            _library.close()
            _library = None

app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")

def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency guarding librarian-only writes."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Error mapping ---
@app.exception_handler(StorageFailure)
async def storage_failure_handler(request: Request, exc: StorageFailure):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "The library database is unavailable. Please try again.", "error": str(exc)},
    )

@app.exception_handler(InvalidDateFormat)
async def invalid_date_handler(request: Request, exc: InvalidDateFormat):
    return JSONResponse(status_code=422, content={"detail": str(exc)})

@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# --- Models ---
class ReservationModel(BaseModel):
    id: str
    user_id: str
    item_id: str
    item_type: str
    title: str
    start_date: str
    end_date: str
    status: str
    notes: Optional[str] = None
    created_at: Optional[str] = None

class ReservationCreateModel(BaseModel):
    user_id: str
    item_id: str
    item_type: str = Field(description="book | room")
    title: str
    start_date: str
    end_date: str
    notes: Optional[str] = None

class StatusUpdateModel(BaseModel):
    status: str = Field(description="Pending | Approved | Declined | Completed")

class TimeSlotModel(BaseModel):
    start_time: str
    end_time: str
    is_available: bool

class AvailabilityModel(BaseModel):
    room_id: str
    date: str
    slots: List[TimeSlotModel]
    source: str
    repairs: List[str] = []
    notice: Optional[str] = None

class AvailabilityUpdateModel(BaseModel):
    slots: List[TimeSlotModel]

class RoomModel(BaseModel):
    id: Optional[str] = None
    name: str
    capacity: int
    location: str = ""
    description: str = ""
    amenities: List[str] = []
    images: List[str] = []
    floor_map_position: Dict[str, float] = {"x": 0, "y": 0}

class RoomUpdateModel(BaseModel):
    name: Optional[str] = None
    capacity: Optional[int] = None
    location: Optional[str] = None
    description: Optional[str] = None
    amenities: Optional[List[str]] = None
    images: Optional[List[str]] = None

class CalendarEntryModel(BaseModel):
    id: str
    title: str
    item_type: str
    status: str

class CalendarDayModel(BaseModel):
    date: str
    is_today: bool
    reservations: List[CalendarEntryModel]
    preview: List[CalendarEntryModel]
    more: int

class CalendarMonthModel(BaseModel):
    month: str
    year: int
    month_number: int
    leading_padding: int
    trailing_padding: int
    days: List[CalendarDayModel]

class DayDetailEntryModel(BaseModel):
    title: str
    icon: str
    date_range: str
    status: str
    badge: str

class DayDetailModel(BaseModel):
    date: str
    reservations: List[DayDetailEntryModel]

class PreferencesModel(BaseModel):
    theme: str = "system"
    language: str = "en"

class TranslationModel(BaseModel):
    key: str
    locale: str
    value: str


# --- Helpers ---
def _reservation_model(r: Reservation) -> ReservationModel:
    return ReservationModel(**r.to_dict())

def _entry(r: Reservation) -> CalendarEntryModel:
    return CalendarEntryModel(id=r.id, title=r.title, item_type=r.item_type.value, status=r.status.value)

def _slot_models(slots: List[TimeSlot]) -> List[TimeSlotModel]:
    return [TimeSlotModel(start_time=s.start_time, end_time=s.end_time, is_available=s.is_available) for s in slots]

def _calendar_reservations(lib: Library, user_id: Optional[str]) -> List[Reservation]:
    return lib.get_user_reservations(user_id) if user_id else lib.get_all_reservations()

def _require_room(lib: Library, room_id: str) -> Room:
    room = lib.get_room(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail=f"Room {room_id} not found")
    return room


# --- Health ---
@app.get("/health")
def health(lib: Library = Depends(get_library)):
    """Lightweight health endpoint: pings the store and reports the backend in use."""
    db_ok = True
    try:
        lib.store.select("rooms")
    except StorageFailure:
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "storage_backend": settings.storage_backend,
        "db": db_ok,
    }


# --- Reservations ---
@app.get("/reservations", response_model=List[ReservationModel])
def list_reservations(user_id: Optional[str] = Query(None), status: Optional[str] = Query(None),
                      lib: Library = Depends(get_library)):
    if user_id:
        reservations = lib.get_user_reservations(user_id)
        if status:
            reservations = [r for r in reservations if r.status.value == status]
    else:
        try:
            reservations = lib.get_all_reservations(status)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return [_reservation_model(r) for r in reservations]

@app.get("/reservations/pending", response_model=List[ReservationModel])
def list_pending(lib: Library = Depends(get_library)):
    return [_reservation_model(r) for r in lib.get_pending_reservations()]

@app.post("/reservations", response_model=ReservationModel, status_code=201)
def create_reservation(payload: ReservationCreateModel, lib: Library = Depends(get_library)):
    try:
        reservation = lib.create_reservation(**payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _reservation_model(reservation)

@app.put("/reservations/{reservation_id}/status", response_model=ReservationModel,
         dependencies=[Depends(get_api_key)])
def update_reservation_status(reservation_id: str, payload: StatusUpdateModel, lib: Library = Depends(get_library)):
    try:
        ReservationStatus(payload.status)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status {payload.status!r}")
    reservation = lib.update_reservation_status(reservation_id, payload.status)
    if reservation is None:
        raise HTTPException(status_code=404, detail=f"Reservation {reservation_id} not found")
    return _reservation_model(reservation)

@app.post("/reservations/{reservation_id}/complete", response_model=ReservationModel,
          dependencies=[Depends(get_api_key)])
def complete_reservation(reservation_id: str, lib: Library = Depends(get_library)):
    reservation = lib.complete_reservation(reservation_id)
    if reservation is None:
        raise HTTPException(status_code=404, detail=f"Reservation {reservation_id} not found")
    return _reservation_model(reservation)


# --- Calendar ---
@app.get("/calendar", response_model=CalendarMonthModel)
def get_calendar(user_id: Optional[str] = Query(None),
                 year: Optional[int] = Query(None, ge=1, le=9999),
                 month: Optional[int] = Query(None, ge=1, le=12),
                 lib: Library = Depends(get_library)):
    """Month grid with the reservations overlapping each day."""
    today = date.today()
    reference = date(year or today.year, month or today.month, 1)
    view = MonthView(_calendar_reservations(lib, user_id), reference=reference, today=today)
    days = [
        CalendarDayModel(
            date=cell.day.isoformat(),
            is_today=cell.is_today,
            reservations=[_entry(r) for r in cell.reservations],
            preview=[_entry(r) for r in cell.preview],
            more=cell.more_count,
        )
        for cell in view.cells() if not cell.is_padding
    ]
    return CalendarMonthModel(
        month=view.title,
        year=reference.year,
        month_number=reference.month,
        leading_padding=view.leading_padding,
        trailing_padding=view.trailing_padding,
        days=days,
    )

@app.get("/calendar/day/{day}", response_model=DayDetailModel)
def get_calendar_day(day: str, user_id: Optional[str] = Query(None), lib: Library = Depends(get_library)):
    selected = parse_date_value(day)
    view = MonthView(_calendar_reservations(lib, user_id), reference=selected)
    view.select_day(selected)
    return DayDetailModel(
        date=selected.isoformat(),
        reservations=[DayDetailEntryModel(**e.to_dict()) for e in view.detail()],
    )


# --- Rooms ---
@app.get("/rooms", response_model=List[RoomModel])
def list_rooms(q: Optional[str] = Query(None, description="Search in name, description, location"),
               capacity: Optional[int] = Query(None, ge=1),
               amenities: Optional[List[str]] = Query(None),
               on: Optional[str] = Query(None, alias="date", description="Only rooms with a free slot on this date"),
               lib: Library = Depends(get_library)):
    try:
        rooms = lib.search_rooms(q or "", capacity, amenities, on)
    except InvalidDateFormat:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [RoomModel(**r.to_dict()) for r in rooms]

@app.get("/rooms/amenities", response_model=List[str])
def list_amenities(lib: Library = Depends(get_library)):
    return lib.all_amenities()

@app.get("/rooms/{room_id}", response_model=RoomModel)
def get_room(room_id: str, lib: Library = Depends(get_library)):
    return RoomModel(**_require_room(lib, room_id).to_dict())

@app.post("/rooms", response_model=RoomModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_room(payload: RoomModel, lib: Library = Depends(get_library)):
    try:
        room = Room.from_dict(payload.model_dump())
        created = lib.add_room(room)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return RoomModel(**created.to_dict())

@app.put("/rooms/{room_id}", response_model=RoomModel, dependencies=[Depends(get_api_key)])
def update_room(room_id: str, payload: RoomUpdateModel, lib: Library = Depends(get_library)):
    try:
        room = lib.update_room(room_id, **payload.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if room is None:
        raise HTTPException(status_code=404, detail=f"Room {room_id} not found")
    return RoomModel(**room.to_dict())

@app.delete("/rooms/{room_id}", dependencies=[Depends(get_api_key)])
def delete_room(room_id: str, lib: Library = Depends(get_library)):
    if not lib.delete_room(room_id):
        raise HTTPException(status_code=404, detail=f"Room {room_id} not found")
    return {"message": f"Room {room_id} deleted"}


# --- Availability ---
@app.get("/rooms/{room_id}/availability/{day}", response_model=AvailabilityModel)
def get_availability(room_id: str, day: str, locale: Optional[str] = Query(None),
                     lib: Library = Depends(get_library)):
    """Slots for one room and date. Falls back to the default template with a notice on failure."""
    key = parse_date_value(day).isoformat()
    result = lib.availability.load(room_id, key)
    notice = None
    if result.failed:
        notice = Translator(locale).t("rooms.loadFailed", "Failed to load room availability; showing default slots")
    return AvailabilityModel(
        room_id=room_id,
        date=key,
        slots=_slot_models(result.slots),
        source=result.source,
        repairs=result.repairs,
        notice=notice,
    )

@app.put("/rooms/{room_id}/availability/{day}", response_model=AvailabilityModel,
         dependencies=[Depends(get_api_key)])
def put_availability(room_id: str, day: str, payload: AvailabilityUpdateModel,
                     lib: Library = Depends(get_library)):
    key = parse_date_value(day).isoformat()
    _require_room(lib, room_id)
    slots = [TimeSlot(s.start_time, s.end_time, s.is_available) for s in payload.slots]
    try:
        SlotValidator.validate_slots(slots)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    lib.availability.save_availability(room_id, key, slots)
    return AvailabilityModel(room_id=room_id, date=key, slots=_slot_models(slots), source="stored")

@app.post("/rooms/{room_id}/availability/{day}/toggle/{index}", response_model=AvailabilityModel,
          dependencies=[Depends(get_api_key)])
def toggle_availability(room_id: str, day: str, index: int, lib: Library = Depends(get_library)):
    key = parse_date_value(day).isoformat()
    _require_room(lib, room_id)
    result = lib.availability.load(room_id, key)
    if result.failed:
        # A failed load holds the template, not the stored slots
        raise HTTPException(status_code=503, detail="Failed to load room availability")
    if not 0 <= index < len(result.slots):
        raise HTTPException(status_code=400, detail=f"Slot index {index} out of range")
    toggle_slot(result.slots, index)
    lib.availability.save_availability(room_id, key, result.slots)
    return AvailabilityModel(room_id=room_id, date=key, slots=_slot_models(result.slots), source="stored")


# --- Books ---
@app.get("/books")
def list_books(q: Optional[str] = Query(None, description="Search query"), lib: Library = Depends(get_library)):
    books = lib.search_books(q) if q else lib.list_books()
    return [dict(b.to_dict(), available_copies=b.available_copies) for b in books]

@app.get("/books/{book_id}")
def get_book(book_id: str, lib: Library = Depends(get_library)):
    book = lib.find_book(book_id)
    if book is None:
        raise HTTPException(status_code=404, detail=f"Book {book_id} not found")
    return dict(book.to_dict(), available_copies=book.available_copies)


# --- Notifications ---
@app.get("/notifications")
def list_notifications(user_id: str = Query(...), lib: Library = Depends(get_library)) -> Dict[str, Any]:
    items = lib.get_user_notifications(user_id)
    return {"items": items, "unread": sum(1 for n in items if not n.get("is_read"))}

@app.post("/notifications/{notification_id}/read")
def read_notification(notification_id: str, lib: Library = Depends(get_library)):
    if not lib.mark_notification_as_read(notification_id):
        raise HTTPException(status_code=404, detail=f"Notification {notification_id} not found")
    return {"message": "Notification marked as read"}


# --- Translation and preferences ---
@app.get("/i18n/{locale}/{key}", response_model=TranslationModel)
def get_translation(locale: str, key: str, path: Optional[str] = Query(None, description="View path"),
                    default: Optional[str] = Query(None)):
    translator = Translator(locale, path=path)
    return TranslationModel(key=key, locale=translator.locale, value=translator.t(key, default))

@app.get("/i18n/locales", response_model=List[str])
def list_locales():
    return list(SUPPORTED_LOCALES)

@app.get("/preferences/{user_id}", response_model=PreferencesModel)
def get_preferences(user_id: str, prefs_store: PreferencesStore = Depends(get_preferences_store)):
    return PreferencesModel(**prefs_store.load(user_id).to_dict())

@app.put("/preferences/{user_id}", response_model=PreferencesModel)
def put_preferences(user_id: str, payload: PreferencesModel,
                    prefs_store: PreferencesStore = Depends(get_preferences_store)):
    try:
        prefs = Preferences(theme=payload.theme, language=payload.language)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    prefs_store.save(user_id, prefs)
    return PreferencesModel(**prefs.to_dict())
