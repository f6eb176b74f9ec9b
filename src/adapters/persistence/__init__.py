from .dynamodb_position_store import DynamoDbPositionStore
from .in_memory_position_store import InMemoryPositionStore
from .local_fleet_repository import LocalFleetRepository

__all__ = [
    "DynamoDbPositionStore",
    "InMemoryPositionStore",
    "LocalFleetRepository",
]
