from enum import Enum


class UserRole(str, Enum):
    CUSTOMER = "customer"
    WASTE_BANK_UNIT = "waste_bank_unit"
    WASTE_BANK_CENTRAL = "waste_bank_central"
    WASTE_COLLECTOR_UNIT = "waste_collector_unit"
    WASTE_COLLECTOR_CENTRAL = "waste_collector_central"
    INDUSTRY = "industry"
    GOVERNMENT = "government"
    ADMIN = "admin"


WASTE_BANK_ROLES = (UserRole.WASTE_BANK_UNIT, UserRole.WASTE_BANK_CENTRAL)
COLLECTOR_ROLES = (UserRole.WASTE_COLLECTOR_UNIT, UserRole.WASTE_COLLECTOR_CENTRAL)


class DeliveryType(str, Enum):
    PICKUP = "pickup"
    DROPOFF = "dropoff"


class WasteDropStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WasteTransferStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    COLLECTING = "collecting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = ("completed", "cancelled")


class TransferFormType(str, Enum):
    WASTE_BANK_REQUEST = "waste_bank_request"
    INDUSTRY_REQUEST = "industry_request"


class TransactionType(str, Enum):
    SALARY = "salary"
    POINTS_CONVERSION = "points_conversion"
    WASTE_PAYMENT = "waste_payment"


class CollectorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
