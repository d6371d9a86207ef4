"""
Async adapter for SQLiteStore.

Runs store operations on a small thread pool, one SQLite connection per
worker thread.
"""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Tuple

from .sqlite_store import SQLiteStore
from ..logging import get_smart_logger, log_execution

logger = get_smart_logger("storage")


class AsyncStoreAdapter:
    """Simple async adapter for SQLiteStore using thread pool executor."""

    def __init__(self, db_path: Optional[str] = None, max_workers: Optional[int] = None):
        from ..config import config

        self.db_path = db_path or config.db_path
        self.max_workers = max_workers or config.get('database.thread_pool_size', 4)

        self._thread_local = threading.local()
        self._stores: List[SQLiteStore] = []
        self._stores_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix=config.get('database.thread_prefix', 'sqlite_')
        )
        logger.info("async_store_adapter_initialized", db_path=self.db_path)

    def _get_store(self) -> SQLiteStore:
        """Get thread-local SQLiteStore instance."""
        if not hasattr(self._thread_local, 'store'):
            # Closed from the caller's thread in close()
            store = SQLiteStore(self.db_path, check_same_thread=False)
            with self._stores_lock:
                self._stores.append(store)
            self._thread_local.store = store
            logger.debug("thread_local_store_created",
                         thread_id=threading.current_thread().ident,
                         db_path=self.db_path)
        return self._thread_local.store

    async def _run(self, func):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func)

    @log_execution(component="storage", operation="async_get", include_result=False)
    async def get(self, namespace: Tuple[str, ...], key: str) -> Optional[Any]:
        """Get a value from the store asynchronously."""
        result = await self._run(lambda: self._get_store().get(namespace, key))

        logger.info("async_storage_read_success",
                    namespace=str(namespace),
                    key=key,
                    found=result is not None)
        return result

    @log_execution(component="storage", operation="async_put", include_args=False)
    async def put(self, namespace: Tuple[str, ...], key: str, value: Any) -> None:
        """Put a value into the store asynchronously."""
        await self._run(lambda: self._get_store().put(namespace, key, value))

        logger.info("async_storage_write_success",
                    namespace=str(namespace),
                    key=key,
                    value_size=len(str(value)))

    @log_execution(component="storage", operation="async_delete")
    async def delete(self, namespace: Tuple[str, ...], key: str) -> bool:
        """Delete a value from the store asynchronously."""
        deleted = await self._run(lambda: self._get_store().delete(namespace, key))

        logger.info("async_storage_delete_success",
                    namespace=str(namespace),
                    key=key,
                    deleted=deleted)
        return deleted

    @log_execution(component="storage", operation="list_keys")
    async def list_keys(self, namespace: Tuple[str, ...]) -> List[str]:
        """List all keys in a namespace asynchronously."""
        return await self._run(lambda: self._get_store().list_keys(namespace))

    async def close(self):
        """Shut down the worker pool and close every connection it opened.

        Safe to call more than once.
        """
        self._executor.shutdown(wait=True)
        with self._stores_lock:
            stores, self._stores = self._stores, []
        for store in stores:
            store.close()
        logger.info("async_store_adapter_closed", db_path=self.db_path, connections_closed=len(stores))
