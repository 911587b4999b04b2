import logging
from typing import Any

from services.sync_coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


async def load_or_seed(coordinator: SyncCoordinator, key: str, default: Any) -> Any:
    """Guarded read of ``key`` that also repairs a missing side.

    Nothing anywhere: ``default`` is written. Remote answered with no
    document but a local backup exists: the backup is pushed back.
    """
    result = await coordinator.guarded_read(key)
    if not result.found:
        logger.info(f"No stored data for {key}, initialising")
        await coordinator.guarded_write(key, default)
        return default

    if result.source == "local" and result.remote_checked:
        logger.info(f"Restoring remote copy of {key} from local backup")
        await coordinator.guarded_write(key, result.value)
    return result.value
