"""
Domain errors raised by the service layer.

Endpoints in main.py translate them to HTTP responses; store errors are not
wrapped and reach the caller unchanged.
"""

from datetime import date
from typing import Optional


class SmartWasteError(Exception):
    """Base class for expected, user-facing failures."""


class NotFoundError(SmartWasteError):
    resource = "Resource"

    def __init__(self, resource_id):
        self.resource_id = resource_id
        super().__init__(f"{self.resource} {resource_id} not found")


class CollectionPointNotFound(NotFoundError):
    resource = "Collection point"


class VisitNotFound(NotFoundError):
    resource = "Visit"


class ReviewNotFound(NotFoundError):
    resource = "Review"


class ProfileNotFound(NotFoundError):
    resource = "Profile of user"


class NotOwner(SmartWasteError):
    def __init__(self, resource: str, resource_id):
        self.resource_id = resource_id
        super().__init__(f"Not authorized to modify {resource} {resource_id}")


class DateNotAvailable(SmartWasteError):
    def __init__(self, space_id: int, day: date):
        self.space_id = space_id
        self.day = day
        super().__init__(f"Selected date {day.isoformat()} is not available")


class DuplicateVisit(SmartWasteError):
    def __init__(self, space_id: int, day: Optional[date] = None):
        self.space_id = space_id
        self.day = day
        when = f" for date {day.isoformat()}" if day else ""
        super().__init__(f"Visit already exists{when}")


class DuplicateReview(SmartWasteError):
    def __init__(self, space_id: int):
        self.space_id = space_id
        super().__init__(f"Collection point {space_id} already reviewed by this user")
