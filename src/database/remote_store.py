import asyncio
import functools
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import redis
from ulid import ULID

from database.errors import ConnectivityError

logger = logging.getLogger(__name__)


class RemoteStore(ABC):
    """Key-addressed remote document service.

    Documents are JSON objects addressed by ``(collection, doc_id)``. There
    are no cross-document transactions. Every operation raises
    ``ConnectivityError`` when the service cannot be reached or rejects the
    call.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def set(self, collection: str, doc_id: str, document: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def add(self, collection: str, document: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    async def query(self, collection: str, field: str, value: Any) -> List[Tuple[str, Dict[str, Any]]]:
        ...

    @abstractmethod
    async def ping(self) -> bool:
        ...

    def close(self) -> None:
        pass


class RedisRemoteStore(RemoteStore):
    """RemoteStore backed by Redis, one JSON string per ``collection:doc_id``.

    redis-py is blocking, so calls run on the default executor and the event
    loop stays free while a request is in flight.
    """

    def __init__(self, host: str = 'localhost', port: int = 6379, db: int = 0,
                 password: Optional[str] = None, socket_timeout: Optional[float] = 5.0,
                 client: Optional[redis.Redis] = None):
        self.client = client or redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            decode_responses=True
        )

    @staticmethod
    def _doc_key(collection: str, doc_id: str) -> str:
        return f"{collection}:{doc_id}"

    async def _call(self, fn: Callable, *args, **kwargs):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))
        except (redis.RedisError, OSError) as e:
            raise ConnectivityError(f"Redis call failed: {e}") from e

    @staticmethod
    def _decode(key: str, raw: Optional[str]) -> Optional[Dict[str, Any]]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise ConnectivityError(f"Remote document {key!r} is not valid JSON") from e

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        key = self._doc_key(collection, doc_id)
        raw = await self._call(self.client.get, key)
        return self._decode(key, raw)

    async def set(self, collection: str, doc_id: str, document: Dict[str, Any]) -> None:
        key = self._doc_key(collection, doc_id)
        await self._call(self.client.set, key, json.dumps(document))
        logger.debug(f"Remote set {key}")

    async def add(self, collection: str, document: Dict[str, Any]) -> str:
        doc_id = f"u_{ULID.from_datetime(datetime.now())}" if collection == "users" \
            else str(ULID())
        await self.set(collection, doc_id, document)
        return doc_id

    async def query(self, collection: str, field: str, value: Any) -> List[Tuple[str, Dict[str, Any]]]:
        def _scan() -> List[Tuple[str, Optional[str]]]:
            keys = list(self.client.scan_iter(match=f"{collection}:*"))
            if not keys:
                return []
            return list(zip(keys, self.client.mget(keys)))

        matches = []
        for key, raw in await self._call(_scan):
            document = self._decode(key, raw)
            if document is not None and document.get(field) == value:
                matches.append((key.split(':', 1)[1], document))
        return matches

    async def ping(self) -> bool:
        try:
            return bool(await self._call(self.client.ping))
        except ConnectivityError:
            return False

    def close(self):
        self.client.close()
