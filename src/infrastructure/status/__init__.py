"""Status store infrastructure."""

from infrastructure.status.dynamodb_store import DynamoStatusStore
from infrastructure.status.memory_store import InMemoryStatusStore

__all__ = ['DynamoStatusStore', 'InMemoryStatusStore']
