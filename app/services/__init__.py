"""Services"""

from app.services.delta_service import DeltaService
from app.services.linear_client import LinearClient
from app.services.sync_service import SyncService

__all__ = ["DeltaService", "LinearClient", "SyncService"]
