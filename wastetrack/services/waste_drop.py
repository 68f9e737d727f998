"""Customer pickup/dropoff requests and their line items.

Lifecycle::

    pending -> assigned -> in_progress -> completed
    pending | assigned | in_progress -> cancelled

``assigned`` is entered through :meth:`WasteDropRequestService.assign_collector`
and ``completed`` only through :meth:`WasteDropRequestService.complete`, which
prices every item with the waste bank's own rates, credits the customer with
points and moves the verified weight into the bank's storage.
"""
import logging
from datetime import tzinfo
from typing import List, Optional, Tuple

from bson import ObjectId

from ..database import transaction
from ..dates import parse_appointment
from ..enums import TERMINAL_STATUSES, WasteDropStatus
from ..errors import BadRequestError, NotFoundError
from ..models import GeoPoint, WasteDropRequest, WasteDropRequestItem
from ..repository import (
    UserRepository,
    WasteBankPricedTypeRepository,
    WasteDropRequestItemRepository,
    WasteDropRequestRepository,
)
from ..schemas import CompleteRequest, WasteDropRequestCreate, WasteDropRequestItemUpdate, WasteDropRequestUpdate
from ..utils import distance_to, parse_object_id, parse_optional_object_id, sort_by_distance
from .catalog import CatalogService
from .profiles import ProfileService
from .storage import StorageService

logger = logging.getLogger(__name__)

DROP_STATUSES = {status.value for status in WasteDropStatus}


class WasteDropRequestService:
    def __init__(self, db, tz: tzinfo):
        self.tz = tz
        self.users = UserRepository(db)
        self.requests = WasteDropRequestRepository(db)
        self.items = WasteDropRequestItemRepository(db)
        self.priced_types = WasteBankPricedTypeRepository(db)
        self.catalog = CatalogService(db)
        self.storage = StorageService(db)
        self.profiles = ProfileService(db)

    async def _require_request(self, request_id: ObjectId, session=None) -> dict:
        doc = await self.requests.find_by_id(request_id, session=session)
        if not doc:
            raise NotFoundError("Waste drop request not found")
        return doc

    async def _require_user(self, user_id: ObjectId, label: str, session=None) -> dict:
        user = await self.users.find_by_id(user_id, session=session)
        if not user:
            raise NotFoundError(f"{label} not found")
        return user

    async def create(self, customer_id: ObjectId, request: WasteDropRequestCreate) -> dict:
        waste_type_ids = [parse_object_id(value, "waste_type_id") for value in request.items.waste_type_ids]
        if len(waste_type_ids) != len(request.items.quantities):
            raise BadRequestError("waste_type_ids and quantities must have the same length")
        if any(quantity <= 0 for quantity in request.items.quantities):
            raise BadRequestError("quantities must be positive")
        waste_bank_id = parse_optional_object_id(request.waste_bank_id, "waste_bank_id")
        appointment_date, start_time, end_time = parse_appointment(
            request.appointment_date,
            request.appointment_start_time,
            request.appointment_end_time,
            self.tz,
        )

        async with transaction() as session:
            customer = await self._require_user(customer_id, "Customer", session)
            if waste_bank_id:
                await self._require_user(waste_bank_id, "Waste bank", session)
            await self.catalog.require_waste_types(waste_type_ids, session=session)

            location = request.appointment_location
            drop_request = WasteDropRequest(
                delivery_type=request.delivery_type,
                customer_id=customer_id,
                user_phone_number=request.user_phone_number or customer.get("phone_number"),
                waste_bank_id=waste_bank_id,
                image_url=request.image_url,
                status=WasteDropStatus.PENDING.value,
                appointment_location=(
                    GeoPoint.from_lat_lng(location.latitude, location.longitude) if location else None
                ),
                appointment_date=appointment_date,
                appointment_start_time=start_time,
                appointment_end_time=end_time,
                notes=request.notes,
            )
            doc = await self.requests.insert(drop_request.to_mongo(), session=session)

            items = [
                WasteDropRequestItem(request_id=doc["_id"], waste_type_id=waste_type_id, quantity=quantity).to_mongo()
                for waste_type_id, quantity in zip(waste_type_ids, request.items.quantities)
            ]
            await self.items.insert_many(items, session=session)

        logger.info("Waste drop request %s created by customer %s", doc["_id"], customer_id)
        return doc

    async def get(
        self, request_id: ObjectId, latitude: Optional[float] = None, longitude: Optional[float] = None
    ) -> Tuple[dict, Optional[float], List[dict]]:
        doc = await self._require_request(request_id)
        items = await self.items.find_many({"request_id": request_id}, sort=[("created_at", 1)])
        return doc, distance_to(doc.get("appointment_location"), latitude, longitude), items

    async def search(
        self,
        page: int,
        size: int,
        customer_id: Optional[ObjectId] = None,
        waste_bank_id: Optional[ObjectId] = None,
        assigned_collector_id: Optional[ObjectId] = None,
        status: Optional[str] = None,
        delivery_type: Optional[str] = None,
        appointment_date: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        order_dir: str = "desc",
    ) -> Tuple[List[Tuple[dict, Optional[float]]], int]:
        filters = {}
        if customer_id:
            filters["customer_id"] = customer_id
        if waste_bank_id:
            filters["waste_bank_id"] = waste_bank_id
        if assigned_collector_id:
            filters["assigned_collector_id"] = assigned_collector_id
        if status:
            filters["status"] = status
        if delivery_type:
            filters["delivery_type"] = delivery_type
        if appointment_date:
            filters["appointment_date"] = appointment_date

        if latitude is None or longitude is None:
            direction = 1 if order_dir.lower() == "asc" else -1
            docs, total = await self.requests.search(filters, page, size, sort=[("created_at", direction)])
            return [(doc, None) for doc in docs], total

        # $geoNear would drop documents without a location, which must still be listed last
        docs = await self.requests.find_many(filters)
        distances = {
            doc["_id"]: distance_to(doc.get("appointment_location"), latitude, longitude) for doc in docs
        }
        ordered = sort_by_distance(docs, distances)
        start = (page - 1) * size
        return [(doc, distances[doc["_id"]]) for doc in ordered[start:start + size]], len(docs)

    async def update(self, request_id: ObjectId, request: WasteDropRequestUpdate) -> dict:
        collector_id = parse_optional_object_id(request.assigned_collector_id, "assigned_collector_id")
        if request.status and request.status not in DROP_STATUSES:
            raise BadRequestError(f"Invalid status: {request.status}")

        async with transaction() as session:
            await self._require_request(request_id, session)
            fields = {}
            if request.delivery_type:
                fields["delivery_type"] = request.delivery_type.value
            if request.status:
                fields["status"] = request.status
            if collector_id:
                await self._require_user(collector_id, "Waste collector", session)
                fields["assigned_collector_id"] = collector_id
            if fields:
                await self.requests.update(request_id, fields, session=session)
            return await self.requests.find_by_id(request_id, session=session)

    async def update_status(self, request_id: ObjectId, status: str) -> dict:
        if not status:
            raise BadRequestError("status is required")
        if status == WasteDropStatus.COMPLETED.value:
            raise BadRequestError("Use the complete endpoint to complete a waste drop request")
        if status not in DROP_STATUSES:
            raise BadRequestError(f"Invalid status: {status}")

        async with transaction() as session:
            doc = await self._require_request(request_id, session)
            if doc["status"] in TERMINAL_STATUSES:
                raise BadRequestError(f"Waste drop request is already {doc['status']}")
            await self.requests.update(request_id, {"status": status}, session=session)
            logger.info("Waste drop request %s moved from %s to %s", request_id, doc["status"], status)
            return await self.requests.find_by_id(request_id, session=session)

    async def assign_collector(self, request_id: ObjectId, collector_id: ObjectId) -> dict:
        async with transaction() as session:
            await self._require_request(request_id, session)
            await self._require_user(collector_id, "Waste collector", session)
            await self.requests.update(
                request_id,
                {"assigned_collector_id": collector_id, "status": WasteDropStatus.ASSIGNED.value},
                session=session,
            )
            logger.info("Collector %s assigned to waste drop request %s", collector_id, request_id)
            return await self.requests.find_by_id(request_id, session=session)

    async def complete(self, request_id: ObjectId, request: CompleteRequest) -> dict:
        if len(request.items.waste_type_ids) != len(request.items.weights):
            raise BadRequestError("waste_type_ids and weights must have the same length")
        if any(weight < 0 for weight in request.items.weights):
            raise BadRequestError("weights must be non-negative")
        weights = {
            parse_object_id(value, "waste_type_id"): weight
            for value, weight in zip(request.items.waste_type_ids, request.items.weights)
        }

        async with transaction() as session:
            doc = await self._require_request(request_id, session)
            if doc["status"] in TERMINAL_STATUSES:
                raise BadRequestError(f"Waste drop request is already {doc['status']}")
            if not doc.get("waste_bank_id"):
                raise BadRequestError("Cannot complete a request without a waste bank")

            items = await self.items.find_many({"request_id": request_id}, session=session)
            if not items:
                raise NotFoundError("Waste drop request has no items")
            if len(request.items.waste_type_ids) != len(items):
                raise BadRequestError("A verified weight is required for every item")

            # Price everything before the first write
            verified = []
            for item in items:
                if item["waste_type_id"] not in weights:
                    raise BadRequestError(f"Weight not provided for waste type {item['waste_type_id']}")
                priced = await self.priced_types.find_one(
                    {"waste_bank_id": doc["waste_bank_id"], "waste_type_id": item["waste_type_id"]},
                    session=session,
                )
                if not priced:
                    raise NotFoundError(f"Waste bank has no price for waste type {item['waste_type_id']}")
                weight = weights[item["waste_type_id"]]
                price = priced["custom_price_per_kgs"]
                verified.append((item, weight, price, int(weight * price)))

            total_price = 0
            for item, weight, price, subtotal in verified:
                await self.items.update(
                    item["_id"],
                    {"verified_weight": weight, "verified_price_per_kgs": price, "verified_subtotal": subtotal},
                    session=session,
                )
                total_price += subtotal

            await self.requests.update(
                request_id,
                {"status": WasteDropStatus.COMPLETED.value, "total_price": total_price},
                session=session,
            )
            await self.users.increment(doc["customer_id"], {"points": total_price}, session=session)

            storage = await self.storage.raw_material_storage(doc["waste_bank_id"], session=session)
            for item, weight, _, _ in verified:
                await self.storage.add_stock(storage["_id"], item["waste_type_id"], weight, session=session)

            await self.profiles.record_drop(
                doc["customer_id"],
                doc["waste_bank_id"],
                doc.get("assigned_collector_id"),
                sum(weight for _, weight, _, _ in verified),
                len(verified),
                session=session,
            )

            logger.info(
                "Waste drop request %s completed, %s points credited to customer %s",
                request_id, total_price, doc["customer_id"],
            )
            return await self.requests.find_by_id(request_id, session=session)

    async def delete(self, request_id: ObjectId) -> None:
        async with transaction() as session:
            await self._require_request(request_id, session)
            await self.items.update_many({"request_id": request_id}, {"is_deleted": True}, session=session)
            await self.requests.soft_delete(request_id, session=session)

    # Line items

    async def get_item(self, item_id: ObjectId) -> dict:
        item = await self.items.find_by_id(item_id)
        if not item:
            raise NotFoundError("Waste drop request item not found")
        return item

    async def search_items(
        self,
        page: int,
        size: int,
        request_id: Optional[ObjectId] = None,
        waste_type_id: Optional[ObjectId] = None,
    ) -> Tuple[List[dict], int]:
        filters = {}
        if request_id:
            filters["request_id"] = request_id
        if waste_type_id:
            filters["waste_type_id"] = waste_type_id
        return await self.items.search(filters, page, size, sort=[("created_at", 1)])

    async def update_item(self, item_id: ObjectId, request: WasteDropRequestItemUpdate) -> dict:
        # verified_subtotal is taken as given; only complete() derives it from the bank's price
        await self.get_item(item_id)
        fields = request.model_dump(exclude_none=True)
        if fields:
            await self.items.update(item_id, fields)
        return await self.items.find_by_id(item_id)

    async def delete_item(self, item_id: ObjectId) -> None:
        await self.get_item(item_id)
        await self.items.soft_delete(item_id)
