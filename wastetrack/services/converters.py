"""Mongo documents -> API response schemas."""
from typing import List, Optional

from .. import schemas
from ..utils import location_response, to_response

_SECRET_FIELDS = ("password",)


def _with_location(doc: dict, *fields: str) -> dict:
    data = to_response(doc, exclude=_SECRET_FIELDS)
    for field in fields:
        data[field] = location_response(doc.get(field))
    return data


def user_response(doc: Optional[dict]) -> Optional[schemas.UserResponse]:
    if not doc:
        return None
    return schemas.UserResponse(**_with_location(doc, "location"))


def user_search_response(doc: dict, distance: Optional[float] = None) -> schemas.UserSearchResult:
    return schemas.UserSearchResult(**_with_location(doc, "location"), distance=distance)


def salary_transaction_response(doc: dict) -> schemas.SalaryTransactionResponse:
    return schemas.SalaryTransactionResponse(**to_response(doc))


def point_conversion_response(doc: dict) -> schemas.PointConversionResponse:
    return schemas.PointConversionResponse(**to_response(doc))


def collector_management_response(
    doc: dict, waste_bank: Optional[dict] = None, collector: Optional[dict] = None
) -> schemas.CollectorManagementResponse:
    return schemas.CollectorManagementResponse(
        **to_response(doc),
        waste_bank=user_response(waste_bank),
        collector=user_response(collector),
    )


def catalog_entry_response(doc: Optional[dict]) -> Optional[schemas.CatalogEntryResponse]:
    if not doc:
        return None
    return schemas.CatalogEntryResponse(**to_response(doc))


def priced_type_response(doc: dict, waste_type: Optional[dict] = None) -> schemas.WasteBankPricedTypeResponse:
    return schemas.WasteBankPricedTypeResponse(**to_response(doc), waste_type=catalog_entry_response(waste_type))


def storage_response(doc: dict) -> schemas.StorageResponse:
    return schemas.StorageResponse(**to_response(doc))


def storage_item_response(doc: dict) -> schemas.StorageItemResponse:
    return schemas.StorageItemResponse(**to_response(doc))


def drop_item_response(doc: dict, waste_type: Optional[dict] = None) -> schemas.WasteDropRequestItemResponse:
    return schemas.WasteDropRequestItemResponse(**to_response(doc), waste_type=catalog_entry_response(waste_type))


def drop_request_response(
    doc: dict,
    distance: Optional[float] = None,
    customer: Optional[dict] = None,
    waste_bank: Optional[dict] = None,
    collector: Optional[dict] = None,
    items: Optional[List[schemas.WasteDropRequestItemResponse]] = None,
) -> schemas.WasteDropRequestResponse:
    return schemas.WasteDropRequestResponse(
        **_with_location(doc, "appointment_location"),
        distance=distance,
        customer=user_response(customer),
        waste_bank=user_response(waste_bank),
        assigned_collector=user_response(collector),
        items=items,
    )


def transfer_item_response(
    doc: dict, waste_type: Optional[dict] = None
) -> schemas.WasteTransferItemOfferingResponse:
    return schemas.WasteTransferItemOfferingResponse(
        **to_response(doc), waste_type=catalog_entry_response(waste_type)
    )


def transfer_request_response(
    doc: dict,
    distance: Optional[float] = None,
    source_user: Optional[dict] = None,
    destination_user: Optional[dict] = None,
    items: Optional[List[schemas.WasteTransferItemOfferingResponse]] = None,
) -> schemas.WasteTransferRequestResponse:
    return schemas.WasteTransferRequestResponse(
        **_with_location(doc, "appointment_location"),
        distance=distance,
        source_user=user_response(source_user),
        destination_user=user_response(destination_user),
        items=items,
    )


def profile_response(response_model, doc: dict, user: Optional[dict] = None):
    """Any role profile; ``response_model`` picks the role's shape."""
    return response_model(**to_response(doc), user=user_response(user))
