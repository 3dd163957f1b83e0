"""Data models for the dialer."""

from .booking import Availability, Booking, BookingRequest
from .lead import CallRequest, CallSession

__all__ = ["Availability", "Booking", "BookingRequest", "CallRequest", "CallSession"]
