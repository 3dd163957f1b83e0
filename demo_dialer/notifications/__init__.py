"""Out-of-call booking notifications (Slack, SMS)."""

from .base import Notifier
from .slack import SlackNotifier
from .sms import SmsNotifier

__all__ = ["Notifier", "SlackNotifier", "SmsNotifier"]
