from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Sequence

from .errors import ConflictError, NotFoundError
from .models import ACTIVE_STATUSES, BookingStatus


@dataclass(frozen=True)
class Reservation:
    """Headcount held on a catalog resource by one booking item."""
    resource_id: int
    booking_id: str
    headcount: int
    status: BookingStatus


class CapacityTracker:
    """
    Capacity accounting for headcount-limited catalog resources.

    The tracker is built from already-fetched data: the resources involved
    and the stored reservations against them. While a new request is
    being validated, every admitted line item is added to a running tally
    so several items of the same request that reference the same resource
    are counted together.

    Parameters
    ----------
    resources : Mapping[int, CatalogResource]
        Resources by id; only ``capacity`` and ``name`` are used.
    reservations : iterable of Reservation
        Stored reservations for those resources.
    counting_statuses : sequence of BookingStatus
        Booking statuses whose headcount counts as used. Cancelled
        reservations never count.
    """

    def __init__(
        self,
        resources: Mapping[int, object],
        reservations: Iterable[Reservation],
        counting_statuses: Sequence[BookingStatus] = ACTIVE_STATUSES,
    ):
        self.resources = dict(resources)
        self.counting_statuses = tuple(s for s in counting_statuses if s != BookingStatus.CANCELLED)
        self.reservations = [r for r in reservations if r.status in self.counting_statuses]
        self._tally: Dict[int, int] = defaultdict(int)

    def _resource(self, resource_id: int):
        resource = self.resources.get(resource_id)
        if resource is None:
            raise NotFoundError(f"Catalog resource {resource_id} not found")
        return resource

    def used_capacity(self, resource_id: int, exclude_booking_id: Optional[str] = None) -> int:
        stored = sum(
            r.headcount
            for r in self.reservations
            if r.resource_id == resource_id
            and not (exclude_booking_id is not None and r.booking_id == exclude_booking_id)
        )
        return stored + self._tally[resource_id]

    def remaining(self, resource_id: int, exclude_booking_id: Optional[str] = None) -> int:
        capacity = self._resource(resource_id).capacity
        return max(capacity - self.used_capacity(resource_id, exclude_booking_id), 0)

    def can_admit(
        self, resource_id: int, additional_headcount: int, exclude_booking_id: Optional[str] = None
    ) -> bool:
        capacity = self._resource(resource_id).capacity
        return self.used_capacity(resource_id, exclude_booking_id) + additional_headcount <= capacity

    def admit(self, resource_id: int, headcount: int, exclude_booking_id: Optional[str] = None) -> int:
        """
        Admit ``headcount`` people and record them in the running tally.

        Returns
        -------
        int
            Seats left after admission.

        Raises
        ------
        ConflictError
            If the resource does not have enough seats left.
        """
        if not self.can_admit(resource_id, headcount, exclude_booking_id):
            resource = self._resource(resource_id)
            remaining = self.remaining(resource_id, exclude_booking_id)
            if remaining > 0:
                raise ConflictError(f"{resource.name} has only {remaining} seat(s) remaining.")
            raise ConflictError(f"{resource.name} is fully booked.")
        self._tally[resource_id] += headcount
        return self.remaining(resource_id, exclude_booking_id)
