from .relay import AudioRelayBridge
from .state import BridgePhase, BridgeState

__all__ = ["AudioRelayBridge", "BridgePhase", "BridgeState"]
