"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the platform.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    model_validator,
)

from shared.utils.security import check_password_strength


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class PaginationMeta(BaseSchema):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit)


class MessageResponse(BaseSchema):
    message: str
    success: bool = True


class FieldError(BaseSchema):
    field: str
    message: str


class ErrorResponse(BaseSchema):
    detail: str
    code: Optional[str] = None
    errors: Optional[List[FieldError]] = None
    request_id: Optional[str] = None


def _strong_password(value: str) -> str:
    problems = check_password_strength(value)
    if problems:
        raise ValueError("; ".join(problems))
    return value


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]
StrongPassword = Annotated[str, AfterValidator(_strong_password)]
ContactType = Literal["email", "mobile"]


# ── User ──────────────────────────────────────────────────────

class Address(BaseSchema):
    street: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    zip_code: str = ""


class NotificationPreferences(BaseSchema):
    email: bool = True
    sms: bool = False
    push: bool = True


class Preferences(BaseSchema):
    language: str = "en"
    currency: str = "INR"
    theme: str = "dark"
    notifications: NotificationPreferences = NotificationPreferences()


class TravelPreferences(BaseSchema):
    default_search_location: str = ""
    preferred_airline: str = ""
    seat_preference: str = "window"
    meal_preference: str = "vegetarian"
    baggage_preference: str = "standard"
    class_preference: str = "economy"


class UserResponse(BaseSchema):
    id: uuid.UUID
    name: str
    email: EmailStr
    mobile: str
    profile_picture: str = ""
    date_of_birth: Optional[date] = None
    gender: str = ""
    address: Address
    preferences: Preferences
    travel_preferences: TravelPreferences
    role: str
    is_active: bool
    is_email_verified: bool
    is_mobile_verified: bool
    created_at: datetime


class ProfileUpdateRequest(BaseSchema):
    """Partial update; omitted fields are left alone."""
    name: Optional[NonBlankStr] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    mobile: Optional[NonBlankStr] = Field(None, max_length=20)
    profile_picture: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Literal["male", "female", "other", ""]] = None
    address: Optional[Address] = None
    preferences: Optional[Preferences] = None
    travel_preferences: Optional[TravelPreferences] = None


# ── Auth ──────────────────────────────────────────────────────

class RegisterAddress(Address):
    street: NonBlankStr
    city: NonBlankStr
    state: NonBlankStr
    country: NonBlankStr


class RegisterRequest(BaseSchema):
    name: NonBlankStr = Field(..., max_length=255)
    email: EmailStr
    mobile: NonBlankStr = Field(..., max_length=20)
    password: StrongPassword
    gender: Literal["male", "female", "other"]
    address: RegisterAddress


class LoginRequest(BaseSchema):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseSchema):
    contact: str = Field(..., min_length=1)
    contact_type: ContactType


class VerifyOTPRequest(ForgotPasswordRequest):
    otp: str = Field(..., min_length=1, max_length=12)


class ResetPasswordRequest(ForgotPasswordRequest):
    new_password: StrongPassword


class ChangePasswordRequest(BaseSchema):
    current_password: str = Field(..., min_length=1)
    new_password: StrongPassword


class AuthResponse(BaseSchema):
    token: str
    token_type: str = "bearer"
    user: UserResponse


class OTPSentResponse(BaseSchema):
    sent: bool = True
    message: str = "If an account exists for this contact, an OTP has been sent"


class OTPVerifiedResponse(BaseSchema):
    verified: bool = True


# ── Booking details ───────────────────────────────────────────

class Passenger(BaseSchema):
    name: str = Field(..., min_length=1)
    age: int = Field(..., ge=0, le=130)
    gender: Literal["male", "female", "other"]
    seat_number: str = ""
    special_requests: str = ""


class FlightEndpoint(BaseSchema):
    airport: str
    city: str
    date: date
    time: str = ""


class StationEndpoint(BaseSchema):
    station: str
    city: str
    date: date
    time: str = ""


class FlightDetails(BaseSchema):
    airline: str
    flight_number: str
    departure: FlightEndpoint
    arrival: FlightEndpoint
    travel_class: Literal["economy", "business", "first"] = Field("economy", alias="class")
    passengers: List[Passenger] = Field(..., min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class HotelDetails(BaseSchema):
    name: str
    address: str = ""
    city: str
    check_in: date
    check_out: date
    rooms: int = Field(1, ge=1)
    guests: int = Field(1, ge=1)
    room_type: str = ""

    @model_validator(mode="after")
    def _stay_has_length(self):
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


class TrainDetails(BaseSchema):
    train_number: str
    train_name: str = ""
    departure: StationEndpoint
    arrival: StationEndpoint
    travel_class: Literal["sleeper", "3ac", "2ac", "1ac"] = Field("sleeper", alias="class")
    passengers: List[Passenger] = Field(..., min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class CarRentalDetails(BaseSchema):
    car_type: str
    pickup_location: str
    dropoff_location: str = ""
    pickup_date: date
    dropoff_date: date
    driver_name: str
    driver_license: str

    @model_validator(mode="after")
    def _dropoff_after_pickup(self):
        if self.dropoff_date < self.pickup_date:
            raise ValueError("dropoff_date must not be before pickup_date")
        return self


class TourPackageDetails(BaseSchema):
    package_name: str
    destination: str
    start_date: date
    end_date: date
    travelers: int = Field(1, ge=1)
    package_details: Dict[str, Any] = Field(default_factory=dict)


class CruiseDetails(BaseSchema):
    cruise_name: str
    ship_name: str = ""
    departure_port: str
    arrival_port: str
    departure_date: date
    arrival_date: date
    cabin_type: str = ""
    passengers: List[Passenger] = Field(..., min_length=1)


# ── Booking ───────────────────────────────────────────────────

class PricingIn(BaseSchema):
    """total_price is accepted for compatibility and ignored; the server computes it."""
    base_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    taxes: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    fees: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    discount: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    total_price: Optional[Decimal] = None
    currency: str = Field("INR", min_length=3, max_length=3)

    @model_validator(mode="after")
    def _discount_within_total(self):
        if self.discount > self.base_price + self.taxes + self.fees:
            raise ValueError("discount cannot exceed base_price + taxes + fees")
        return self


class _BookingCreateBase(BaseSchema):
    pricing: PricingIn
    booking_reference: Optional[str] = Field(None, min_length=4, max_length=32)
    notes: str = ""


class FlightBookingCreate(_BookingCreateBase):
    type: Literal["flight"]
    booking_details: FlightDetails


class HotelBookingCreate(_BookingCreateBase):
    type: Literal["hotel"]
    booking_details: HotelDetails


class TrainBookingCreate(_BookingCreateBase):
    type: Literal["train"]
    booking_details: TrainDetails


class CarRentalBookingCreate(_BookingCreateBase):
    type: Literal["car-rental"]
    booking_details: CarRentalDetails


class TourPackageBookingCreate(_BookingCreateBase):
    type: Literal["tour-package"]
    booking_details: TourPackageDetails


class CruiseBookingCreate(_BookingCreateBase):
    type: Literal["cruise"]
    booking_details: CruiseDetails


BookingCreate = Annotated[
    Union[
        FlightBookingCreate,
        HotelBookingCreate,
        TrainBookingCreate,
        CarRentalBookingCreate,
        TourPackageBookingCreate,
        CruiseBookingCreate,
    ],
    Field(discriminator="type"),
]


class BookingUpdateRequest(BaseSchema):
    notes: Optional[str] = None
    pricing: Optional[PricingIn] = None


class BookingConfirmRequest(BaseSchema):
    payment_method: Literal["credit-card", "debit-card", "upi", "net-banking", "wallet", "cash"]
    transaction_id: Optional[str] = Field(None, max_length=100)


class BookingCancelRequest(BaseSchema):
    reason: Optional[str] = Field(None, max_length=500)


class PricingOut(BaseSchema):
    base_price: Decimal
    taxes: Decimal
    fees: Decimal
    discount: Decimal
    total_price: Decimal
    currency: str


class PaymentOut(BaseSchema):
    method: Optional[str] = None
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    status: str


class CancellationOut(BaseSchema):
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_status: Optional[str] = None


class BookingResponse(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    type: str
    status: str
    booking_reference: str
    booking_details: Dict[str, Any]
    pricing: PricingOut
    payment: PaymentOut
    cancellation: Optional[CancellationOut] = None
    notes: str = ""
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _group_columns(cls, data: Any) -> Any:
        """Fold the flat ORM columns into pricing/payment/cancellation groups."""
        if isinstance(data, dict):
            return data
        cancellation = None
        if data.cancelled_at is not None:
            cancellation = {
                "cancelled_at": data.cancelled_at,
                "cancellation_reason": data.cancellation_reason,
                "refund_amount": data.refund_amount,
                "refund_status": data.refund_status,
            }
        return {
            "id": data.id,
            "user_id": data.user_id,
            "type": data.type,
            "status": data.status,
            "booking_reference": data.booking_reference,
            "booking_details": data.booking_details,
            "pricing": {
                "base_price": data.base_price,
                "taxes": data.taxes,
                "fees": data.fees,
                "discount": data.discount,
                "total_price": data.total_price,
                "currency": data.currency,
            },
            "payment": {
                "method": data.payment_method,
                "transaction_id": data.payment_transaction_id,
                "paid_at": data.paid_at,
                "status": data.payment_status,
            },
            "cancellation": cancellation,
            "notes": data.notes,
            "created_at": data.created_at,
            "updated_at": data.updated_at,
        }


class BookingListResponse(BaseSchema):
    items: List[BookingResponse]
    pagination: PaginationMeta


# ── Notification ──────────────────────────────────────────────

NotificationTypeLiteral = Literal[
    "booking-confirmation",
    "booking-cancelled",
    "booking-reminder",
    "payment-success",
    "payment-failed",
    "password-changed",
    "profile-updated",
    "system-update",
    "promotion",
    "reminder",
    "alert",
]


class NotificationCreate(BaseSchema):
    type: NotificationTypeLiteral
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    booking_id: Optional[uuid.UUID] = None
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    action_url: str = ""
    expires_at: Optional[datetime] = None


class NotificationResponse(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    type: str
    title: str
    message: str
    data: Dict[str, Any]
    read: bool
    read_at: Optional[datetime]
    priority: str
    booking_id: Optional[uuid.UUID]
    action_url: str
    expires_at: Optional[datetime]
    created_at: datetime


class NotificationListResponse(BaseSchema):
    items: List[NotificationResponse]
    unread_count: int
    pagination: PaginationMeta


class UnreadCountResponse(BaseSchema):
    unread_count: int


class MarkAllReadResponse(BaseSchema):
    updated_count: int


# ── Permissions ───────────────────────────────────────────────

class CategoryState(BaseSchema):
    enabled: bool
    granted_at: Optional[datetime] = None


class LastKnownLocation(BaseSchema):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    zip_code: str = ""
    updated_at: Optional[datetime] = None


class LocationPermissionOut(CategoryState):
    last_known_location: LastKnownLocation


class ContactPermissionOut(CategoryState):
    share_with_partners: bool


class NotificationPermissionsOut(BaseSchema):
    push: CategoryState
    email: CategoryState
    sms: CategoryState


class PermissionsResponse(BaseSchema):
    location: LocationPermissionOut
    contact: ContactPermissionOut
    camera: CategoryState
    notifications: NotificationPermissionsOut
    storage: CategoryState
    analytics: CategoryState


class CoordinatesIn(BaseSchema):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None


class LocationPermissionUpdate(CoordinatesIn):
    enabled: Optional[bool] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class ContactPermissionUpdate(BaseSchema):
    enabled: Optional[bool] = None
    share_with_partners: Optional[bool] = None


class TogglePermissionUpdate(BaseSchema):
    enabled: bool


class NotificationPermissionUpdate(BaseSchema):
    push: Optional[bool] = None
    email: Optional[bool] = None
    sms: Optional[bool] = None


# ── Location ──────────────────────────────────────────────────

class LocationUpdateRequest(CoordinatesIn):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


# ── Admin ─────────────────────────────────────────────────────

class AdminStats(BaseSchema):
    total_users: int
    active_users: int
    admin_users: int
    total_bookings: int
    bookings_by_status: Dict[str, int]
    total_revenue: Decimal
    total_notifications: int


class AdminDashboardResponse(BaseSchema):
    stats: AdminStats
    recent_users: List[UserResponse]
    recent_bookings: List[BookingResponse]


class UserListResponse(BaseSchema):
    items: List[UserResponse]
    pagination: PaginationMeta


class AdminUserDetailResponse(BaseSchema):
    user: UserResponse
    recent_bookings: List[BookingResponse]
    permissions: Optional[PermissionsResponse] = None


class RoleUpdateRequest(BaseSchema):
    role: Literal["user", "admin"]


class StatusUpdateRequest(BaseSchema):
    """Omit is_active to toggle."""
    is_active: Optional[bool] = None
