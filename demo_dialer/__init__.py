"""Outbound demo-booking voice agent.

Places a Twilio call to a lead, relays the call audio to a realtime speech
model and lets the model check availability and book demos mid-call.
"""

__version__ = "0.1.0"
