from .api_client import ApiClient, ApiError, NetworkError
from .events import MutationEvent, SyncEventBus
from .messages import describe_mutation
from .optimistic import MutationPhase, OptimisticExecutor, UndoToken
from .project_cache import ProjectCache
from .sync import ProjectSyncClient

__all__ = [
    "ApiClient",
    "ApiError",
    "describe_mutation",
    "MutationEvent",
    "MutationPhase",
    "NetworkError",
    "OptimisticExecutor",
    "ProjectCache",
    "ProjectSyncClient",
    "SyncEventBus",
    "UndoToken",
]
