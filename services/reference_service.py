"""
Reference Service

Lookups for drivers, vehicles, routes and stations used to validate trip
foreign keys. Lookups run inside the caller's transaction and take a shared
row lock so a referenced row cannot be soft-deleted before the trip commits.
"""

from typing import Optional
import logging

from models import Driver, Vehicle, Route, Station
from .errors import NotFoundError

logger = logging.getLogger(__name__)

class ReferenceService:
    """Service class for reference data lookups"""

    @staticmethod
    def _find_active(model, entity_id: Optional[int], label: str, lock: bool = True):
        query = model.active_query().filter(model.id == entity_id, model.is_active.is_(True))
        if lock:
            query = query.with_for_update(read=True)
        entity = query.first() if entity_id is not None else None
        if entity is None:
            logger.warning(f"{label} lookup failed for id {entity_id}")
            raise NotFoundError(f"{label} not found")
        return entity

    def find_driver(self, driver_id: int, lock: bool = True) -> Driver:
        return self._find_active(Driver, driver_id, 'Driver', lock)

    def find_vehicle(self, vehicle_id: int, lock: bool = True) -> Vehicle:
        return self._find_active(Vehicle, vehicle_id, 'Vehicle', lock)

    def find_route(self, route_id: int, lock: bool = True) -> Route:
        return self._find_active(Route, route_id, 'Route', lock)

    def find_station(self, station_id: int, label: str = 'Station', lock: bool = True) -> Station:
        return self._find_active(Station, station_id, label, lock)

    def validate_trip_references(self, driver_id, vehicle_id, route_id, origin_id, destination_id):
        """
        Check all five trip references in a fixed order.

        Raises:
            NotFoundError: naming the first reference that does not resolve
        """
        self.find_driver(driver_id)
        self.find_vehicle(vehicle_id)
        self.find_route(route_id)
        self.find_station(origin_id, 'Origin station')
        self.find_station(destination_id, 'Destination station')
