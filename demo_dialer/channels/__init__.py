from .base import MediaFrame, TelephonyChannel
from .twilio_channel import TwilioMediaStreamChannel

__all__ = ["MediaFrame", "TelephonyChannel", "TwilioMediaStreamChannel"]
