from .channel import ActivationState, DeviceRole, SyncChannel
from .transport import STATE_MESSAGE_KEY, Transport, UdpTransport

__all__ = ["ActivationState", "DeviceRole", "STATE_MESSAGE_KEY", "SyncChannel",
           "Transport", "UdpTransport"]
