"""Pydantic schemas for request/response validation."""

from .booking import *
from .common import *
from .health import *
from .invoice import *
from .itinerary import *
from .payment import *
