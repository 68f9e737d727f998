"""Request and response bodies of the HTTP API."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, computed_field

from .enums import CollectorStatus, DeliveryType, TransactionType, TransferFormType, UserRole

TIME_OF_DAY = r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$"


class Location(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Paging(BaseModel):
    page: int
    size: int
    total_item: int
    total_page: int


# Auth

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    role: UserRole = UserRole.CUSTOMER
    phone_number: Optional[str] = Field(None, max_length=20)
    institution: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    location: Optional[Location] = None
    # Collectors join a waste bank when they sign up
    institution_id: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class UserResponse(BaseModel):
    id: str
    username: str
    email: str
    role: str
    phone_number: Optional[str] = None
    institution: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    points: int = 0
    balance: int = 0
    location: Optional[Location] = None
    is_email_verified: bool = False
    is_accepting_customer: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class UserSearchResult(UserResponse):
    distance: Optional[float] = None


# Role profiles

class CustomerProfileUpdate(BaseModel):
    carbon_deficit: Optional[int] = Field(None, ge=0)
    water_saved: Optional[int] = Field(None, ge=0)
    bags_stored: Optional[int] = Field(None, ge=0)
    trees: Optional[int] = Field(None, ge=0)


class WasteBankProfileUpdate(BaseModel):
    total_waste_weight: Optional[float] = Field(None, ge=0)
    total_workers: Optional[int] = Field(None, ge=0)
    open_time: Optional[str] = Field(None, pattern=TIME_OF_DAY)
    close_time: Optional[str] = Field(None, pattern=TIME_OF_DAY)


class WasteCollectorProfileUpdate(BaseModel):
    total_waste_weight: Optional[float] = Field(None, ge=0)


class IndustryProfileUpdate(BaseModel):
    total_waste_weight: Optional[float] = Field(None, ge=0)
    total_recycled_weight: Optional[float] = Field(None, ge=0)


class CustomerProfileResponse(BaseModel):
    id: str
    user_id: str
    carbon_deficit: int = 0
    water_saved: int = 0
    bags_stored: int = 0
    trees: int = 0
    user: Optional[UserResponse] = None


class WasteBankProfileResponse(BaseModel):
    id: str
    user_id: str
    total_waste_weight: float = 0
    total_workers: int = 0
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    user: Optional[UserResponse] = None


class WasteCollectorProfileResponse(BaseModel):
    id: str
    user_id: str
    total_waste_weight: float = 0
    user: Optional[UserResponse] = None


class IndustryProfileResponse(BaseModel):
    id: str
    user_id: str
    total_waste_weight: float = 0
    total_recycled_weight: float = 0
    user: Optional[UserResponse] = None


# Salary transactions

class SalaryTransactionCreate(BaseModel):
    receiver_id: str
    amount: int = Field(..., gt=0)
    transaction_type: TransactionType
    status: str = "pending"
    notes: Optional[str] = Field(None, max_length=1000)


class SalaryTransactionUpdate(BaseModel):
    transaction_type: Optional[TransactionType] = None
    status: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)


class SalaryTransactionResponse(BaseModel):
    id: str
    sender_id: str
    receiver_id: str
    amount: int
    transaction_type: str
    status: str
    notes: Optional[str] = None
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Point conversions

class PointConversionCreate(BaseModel):
    user_id: Optional[str] = None
    amount: int = Field(..., gt=0)


class PointConversionUpdate(BaseModel):
    user_id: Optional[str] = None
    status: Optional[str] = None
    is_deleted: Optional[bool] = None


class PointConversionResponse(BaseModel):
    id: str
    user_id: str
    amount: int
    status: str
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Collector management

class CollectorManagementCreate(BaseModel):
    waste_bank_id: Optional[str] = None
    collector_id: str
    status: CollectorStatus = CollectorStatus.ACTIVE


class CollectorManagementUpdate(BaseModel):
    waste_bank_id: Optional[str] = None
    collector_id: Optional[str] = None
    status: Optional[CollectorStatus] = None


class CollectorManagementResponse(BaseModel):
    id: str
    waste_bank_id: str
    collector_id: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    waste_bank: Optional[UserResponse] = None
    collector: Optional[UserResponse] = None


# Catalog

class WasteCategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class WasteCategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


class WasteSubcategoryCreate(WasteCategoryCreate):
    category_id: str


class WasteSubcategoryUpdate(WasteCategoryUpdate):
    category_id: Optional[str] = None


class WasteTypeCreate(WasteCategoryCreate):
    category_id: str
    subcategory_id: Optional[str] = None


class WasteTypeUpdate(WasteCategoryUpdate):
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None


class CatalogEntryResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    created_at: Optional[datetime] = None


class WasteBankPricedTypeCreate(BaseModel):
    waste_bank_id: Optional[str] = None
    waste_type_id: str
    custom_price_per_kgs: float = Field(..., ge=0)


class WasteBankPricedTypeBatchCreate(BaseModel):
    waste_bank_id: Optional[str] = None
    items: List[WasteBankPricedTypeCreate] = Field(..., min_length=1)


class WasteBankPricedTypeUpdate(BaseModel):
    custom_price_per_kgs: float = Field(..., ge=0)


class WasteBankPricedTypeResponse(BaseModel):
    id: str
    waste_bank_id: str
    waste_type_id: str
    custom_price_per_kgs: float
    waste_type: Optional[CatalogEntryResponse] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Storages

class StorageCreate(BaseModel):
    user_id: Optional[str] = None
    length: float = Field(..., gt=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    is_for_recycled_material: bool = False


class StorageUpdate(BaseModel):
    length: Optional[float] = Field(None, gt=0)
    width: Optional[float] = Field(None, gt=0)
    height: Optional[float] = Field(None, gt=0)
    is_for_recycled_material: Optional[bool] = None


class StorageResponse(BaseModel):
    id: str
    user_id: str
    length: float
    width: float
    height: float
    is_for_recycled_material: bool
    created_at: Optional[datetime] = None

    @computed_field
    @property
    def volume(self) -> float:
        return self.length * self.width * self.height


class StorageItemCreate(BaseModel):
    storage_id: str
    waste_type_id: str
    weight_kgs: float = Field(..., ge=0)


class StorageItemUpdate(BaseModel):
    weight_kgs: float = Field(..., ge=0)


class DeductStorageItemRequest(BaseModel):
    weight_kgs: float = Field(..., gt=0)


class StorageItemResponse(BaseModel):
    id: str
    storage_id: str
    waste_type_id: str
    weight_kgs: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Waste drop requests

class WasteDropItemsInput(BaseModel):
    waste_type_ids: List[str] = Field(..., min_length=1)
    quantities: List[int] = Field(..., min_length=1)


class WasteDropRequestCreate(BaseModel):
    delivery_type: DeliveryType
    customer_id: Optional[str] = None
    user_phone_number: Optional[str] = None
    waste_bank_id: Optional[str] = None
    image_url: Optional[str] = None
    appointment_location: Optional[Location] = None
    appointment_date: Optional[str] = None
    appointment_start_time: Optional[str] = None
    appointment_end_time: Optional[str] = None
    notes: Optional[str] = None
    items: WasteDropItemsInput


class WasteDropRequestUpdate(BaseModel):
    delivery_type: Optional[DeliveryType] = None
    status: Optional[str] = None
    assigned_collector_id: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str = ""


class AssignCollectorRequest(BaseModel):
    assigned_collector_id: str


class CompletionItemsInput(BaseModel):
    waste_type_ids: List[str] = Field(..., min_length=1)
    weights: List[float] = Field(..., min_length=1)


class CompleteRequest(BaseModel):
    items: CompletionItemsInput


class WasteDropRequestItemUpdate(BaseModel):
    quantity: Optional[int] = Field(None, gt=0)
    verified_weight: Optional[float] = Field(None, ge=0)
    verified_subtotal: Optional[int] = Field(None, ge=0)


class WasteDropRequestItemResponse(BaseModel):
    id: str
    request_id: str
    waste_type_id: str
    quantity: int
    verified_weight: float = 0
    verified_price_per_kgs: float = 0
    verified_subtotal: int = 0
    waste_type: Optional[CatalogEntryResponse] = None


class WasteDropRequestResponse(BaseModel):
    id: str
    delivery_type: str
    customer_id: str
    user_phone_number: Optional[str] = None
    waste_bank_id: Optional[str] = None
    assigned_collector_id: Optional[str] = None
    total_price: int = 0
    image_url: Optional[str] = None
    status: str
    appointment_location: Optional[Location] = None
    appointment_date: Optional[str] = None
    appointment_start_time: Optional[str] = None
    appointment_end_time: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    distance: Optional[float] = None
    customer: Optional[UserResponse] = None
    waste_bank: Optional[UserResponse] = None
    assigned_collector: Optional[UserResponse] = None
    items: Optional[List[WasteDropRequestItemResponse]] = None


# Waste transfer requests

class WasteTransferItemsInput(BaseModel):
    waste_type_ids: List[str] = Field(..., min_length=1)
    offering_weights: List[float] = Field(..., min_length=1)
    offering_prices_per_kgs: List[float] = Field(..., min_length=1)


class WasteTransferRequestCreate(BaseModel):
    source_user_id: Optional[str] = None
    destination_user_id: str
    form_type: TransferFormType
    image_url: Optional[str] = None
    notes: Optional[str] = None
    source_phone_number: str = Field(..., max_length=100)
    destination_phone_number: str = Field(..., max_length=100)
    appointment_date: str
    appointment_start_time: Optional[str] = None
    appointment_end_time: Optional[str] = None
    appointment_location: Optional[Location] = None
    items: WasteTransferItemsInput


class WasteTransferRequestUpdate(BaseModel):
    form_type: Optional[TransferFormType] = None
    status: Optional[str] = None
    appointment_date: Optional[str] = None
    appointment_start_time: Optional[str] = None
    appointment_end_time: Optional[str] = None


class AssignWasteTypePricing(BaseModel):
    waste_type_id: str
    accepted_weight: float
    accepted_price_per_kgs: float


class AssignCollectorByWasteTypeRequest(BaseModel):
    assigned_collector_id: Optional[str] = None
    waste_types: List[AssignWasteTypePricing] = Field(..., min_length=1)


class WasteTransferItemOfferingResponse(BaseModel):
    id: str
    transfer_request_id: str
    waste_type_id: str
    offering_weight: float = 0
    offering_price_per_kgs: float = 0
    accepted_weight: float = 0
    accepted_price_per_kgs: float = 0
    verified_weight: float = 0
    recycled_weight: float = 0
    waste_type: Optional[CatalogEntryResponse] = None

    @computed_field
    @property
    def loss_weight(self) -> float:
        if self.verified_weight == 0:
            return 0.0
        return abs(self.accepted_weight - self.verified_weight)


class WasteTransferRequestResponse(BaseModel):
    id: str
    source_user_id: str
    destination_user_id: str
    form_type: str
    assigned_collector_id: Optional[str] = None
    total_weight: float = 0
    total_price: int = 0
    status: str
    image_url: Optional[str] = None
    notes: Optional[str] = None
    source_phone_number: Optional[str] = None
    destination_phone_number: Optional[str] = None
    appointment_date: Optional[str] = None
    appointment_start_time: Optional[str] = None
    appointment_end_time: Optional[str] = None
    appointment_location: Optional[Location] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    distance: Optional[float] = None
    source_user: Optional[UserResponse] = None
    destination_user: Optional[UserResponse] = None
    items: Optional[List[WasteTransferItemOfferingResponse]] = None


# Government dashboard

class CollectionTrend(BaseModel):
    month: str
    waste_bank_unit: float = 0
    waste_bank_central: float = 0
    industry: float = 0
    collection_requests_weight: float = 0
    transfer_requests_weight: float = 0

    @computed_field
    @property
    def total_requests_weight(self) -> float:
        return self.collection_requests_weight + self.transfer_requests_weight


class TopOfftaker(BaseModel):
    id: str
    name: str
    institution: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    total_weight: float = 0
    total_price: int = 0


class LargestBank(BaseModel):
    id: str
    name: str
    institution: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    total_weight: float = 0
    volume: float = 0

    @computed_field
    @property
    def score(self) -> float:
        return 0.3 * self.total_weight + 0.7 * self.volume


class GovernmentDashboardResponse(BaseModel):
    total_bank_sampah: int = 0
    total_offtaker: int = 0
    total_collected: float = 0
    collection_trends: List[CollectionTrend] = []
    top_offtakers: List[TopOfftaker] = []
    largest_banks: List[LargestBank] = []
