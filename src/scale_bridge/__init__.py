"""Puente entre básculas UDP en modo streaming y suscriptores MQTT."""

from .cache import ReadingCache
from .config import LinkSessionConfig, MQTTConfig, load_link_config
from .events import ConnectivityChanged, ReadingUpdated
from .frame_decoder import START_FRAME, STOP_FRAME, decode_frame
from .link_session import LinkSession
from .main import ScaleBridgeService, main
from .models import ConnectionState, Snapshot, WeightReading
from .mqtt_client import ScaleMQTTClient
from .sink import BroadcastSink, FanoutSink

__version__ = "0.1.0"

__all__ = [
    "BroadcastSink",
    "ConnectionState",
    "ConnectivityChanged",
    "FanoutSink",
    "LinkSession",
    "LinkSessionConfig",
    "MQTTConfig",
    "ReadingCache",
    "ReadingUpdated",
    "START_FRAME",
    "STOP_FRAME",
    "ScaleBridgeService",
    "ScaleMQTTClient",
    "Snapshot",
    "WeightReading",
    "decode_frame",
    "load_link_config",
    "main",
]
