from enum import Enum


class PaymentState(str, Enum):
    """Payment progress recorded on a listing."""

    UNPAID = "unpaid"
    APPROVED = "approved"
    PAID = "paid"


class Visibility(str, Enum):
    """Whether a listing is part of the public, queryable set."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    EXPIRED = "expired"


class Category(str, Enum):
    VEHICLES = "vehicles"
    REAL_ESTATE = "real_estate"
    ELECTRONICS = "electronics"
    HOME = "home"
    FASHION = "fashion"
    JOBS = "jobs"
    SERVICES = "services"
    OTHER = "other"
