from .fanout_channel import IChannelConnection, IFanoutChannel
from .fleet_directory import IFleetDirectory
from .position_store import IPositionStore
from .tracking_api import ITrackingApi, TrackingApiError, TransportClosed

__all__ = [
    "IChannelConnection",
    "IFanoutChannel",
    "IFleetDirectory",
    "IPositionStore",
    "ITrackingApi",
    "TrackingApiError",
    "TransportClosed",
]
