from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from passlib.context import CryptContext
from pydantic import BaseModel, ConfigDict, Field

from .dates import utcnow
from .enums import CollectorStatus, DeliveryType, TransferFormType, UserRole


class PyObjectId(ObjectId):
    @classmethod
    def __get_pydantic_core_schema__(cls, source, handler):
        # ObjectIds stay ObjectIds in python mode so documents can be inserted as dumped
        from pydantic_core import core_schema
        return core_schema.json_or_python_schema(
            json_schema=core_schema.str_schema(),
            python_schema=core_schema.is_instance_schema(ObjectId),
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda v: str(v), when_used="json"
            ),
        )


class Document(BaseModel):
    model_config = ConfigDict(validate_by_name=True, arbitrary_types_allowed=True, use_enum_values=True)

    id: Optional[PyObjectId] = Field(default_factory=PyObjectId, alias="_id")

    def to_mongo(self) -> dict:
        return self.model_dump(by_alias=True)


class GeoPoint(BaseModel):
    """GeoJSON point; coordinates are ``[longitude, latitude]``."""

    type: str = "Point"
    coordinates: List[float]

    @classmethod
    def from_lat_lng(cls, latitude: float, longitude: float) -> "GeoPoint":
        return cls(coordinates=[longitude, latitude])


class User(Document):
    username: str
    email: str
    password: str
    role: UserRole = UserRole.CUSTOMER
    phone_number: Optional[str] = None
    institution: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    points: int = 0
    balance: int = 0
    location: Optional[GeoPoint] = None
    is_email_verified: bool = False
    is_accepting_customer: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class RefreshToken(Document):
    user_id: PyObjectId
    token: str
    is_revoked: bool = False
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)


class SalaryTransaction(Document):
    sender_id: PyObjectId
    receiver_id: PyObjectId
    amount: int
    transaction_type: str
    status: str = "pending"
    notes: Optional[str] = None
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PointConversion(Document):
    user_id: PyObjectId
    amount: int
    status: str = "pending"
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CollectorManagement(Document):
    waste_bank_id: PyObjectId
    collector_id: PyObjectId
    status: CollectorStatus = CollectorStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WasteCategory(Document):
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class WasteSubcategory(Document):
    category_id: PyObjectId
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class WasteType(Document):
    category_id: PyObjectId
    subcategory_id: Optional[PyObjectId] = None
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class WasteBankPricedType(Document):
    waste_bank_id: PyObjectId
    waste_type_id: PyObjectId
    custom_price_per_kgs: float
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Storage(Document):
    user_id: PyObjectId
    length: float
    width: float
    height: float
    is_for_recycled_material: bool = False
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class StorageItem(Document):
    storage_id: PyObjectId
    waste_type_id: PyObjectId
    weight_kgs: float = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WasteDropRequest(Document):
    delivery_type: DeliveryType
    customer_id: PyObjectId
    user_phone_number: Optional[str] = None
    waste_bank_id: Optional[PyObjectId] = None
    assigned_collector_id: Optional[PyObjectId] = None
    total_price: int = 0
    image_url: Optional[str] = None
    status: str = "pending"  # pending, assigned, in_progress, completed, cancelled
    appointment_location: Optional[GeoPoint] = None
    appointment_date: Optional[str] = None
    appointment_start_time: Optional[str] = None
    appointment_end_time: Optional[str] = None
    notes: Optional[str] = None
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WasteDropRequestItem(Document):
    request_id: PyObjectId
    waste_type_id: PyObjectId
    quantity: int
    verified_weight: float = 0
    verified_price_per_kgs: float = 0
    verified_subtotal: int = 0
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WasteTransferRequest(Document):
    source_user_id: PyObjectId
    destination_user_id: PyObjectId
    form_type: TransferFormType
    assigned_collector_id: Optional[PyObjectId] = None
    total_weight: float = 0
    total_price: int = 0
    status: str = "pending"  # pending, assigned, collecting, completed, cancelled
    image_url: Optional[str] = None
    notes: Optional[str] = None
    source_phone_number: Optional[str] = None
    destination_phone_number: Optional[str] = None
    appointment_location: Optional[GeoPoint] = None
    appointment_date: Optional[str] = None
    appointment_start_time: Optional[str] = None
    appointment_end_time: Optional[str] = None
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WasteTransferItemOffering(Document):
    transfer_request_id: PyObjectId
    waste_type_id: PyObjectId
    offering_weight: float = 0
    offering_price_per_kgs: float = 0
    accepted_weight: float = 0
    accepted_price_per_kgs: float = 0
    verified_weight: float = 0
    recycled_weight: float = 0
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)



class CustomerProfile(Document):
    user_id: PyObjectId
    carbon_deficit: int = 0
    water_saved: int = 0
    bags_stored: int = 0
    trees: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WasteBankProfile(Document):
    user_id: PyObjectId
    total_waste_weight: float = 0
    total_workers: int = 0
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WasteCollectorProfile(Document):
    user_id: PyObjectId
    total_waste_weight: float = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class IndustryProfile(Document):
    user_id: PyObjectId
    total_waste_weight: float = 0
    total_recycled_weight: float = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

# Password hashing utilities
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)
