"""Remote table store used by the session log.

The log only needs three operations against a table-like sink: insert a row,
update rows matching a filter, and select rows matching a filter. Any failure
surfaces as StoreUnavailableError.
"""
import asyncio
import copy
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

import aiohttp

from ..config import StoreConfig, get_config
from ..exceptions import StoreUnavailableError
from ..logging_config import setup_logger

logger = setup_logger("avatalk.store")

Row = Dict[str, Any]


class BaseSessionStore(ABC):
    """Base class for session store implementations."""

    @abstractmethod
    async def insert(self, table: str, row: Row) -> None:
        """Insert a single row."""
        pass

    @abstractmethod
    async def update(self, table: str, values: Row, match: Row) -> None:
        """Update every row whose columns equal ``match``."""
        pass

    @abstractmethod
    async def select(self, table: str, match: Row) -> List[Row]:
        """Return every row whose columns equal ``match``."""
        pass

    async def close(self) -> None:
        """Release any underlying resources."""
        pass


class InMemoryStore(BaseSessionStore):
    """Process-local store for tests and offline use.

    ``fail_on`` holds operation names ("insert", "update", "select") that
    should raise StoreUnavailableError, to simulate an unreachable backend.
    """

    def __init__(self, fail_on: Optional[Set[str]] = None):
        self.tables: Dict[str, List[Row]] = {}
        self.fail_on: Set[str] = set(fail_on or ())

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise StoreUnavailableError(f"Store {operation} unavailable")

    @staticmethod
    def _matches(row: Row, match: Row) -> bool:
        return all(row.get(key) == value for key, value in match.items())

    async def insert(self, table: str, row: Row) -> None:
        self._check("insert")
        self.tables.setdefault(table, []).append(dict(row))

    async def update(self, table: str, values: Row, match: Row) -> None:
        self._check("update")
        for row in self.tables.get(table, []):
            if self._matches(row, match):
                row.update(values)

    async def select(self, table: str, match: Row) -> List[Row]:
        self._check("select")
        return [
            copy.deepcopy(row)
            for row in self.tables.get(table, [])
            if self._matches(row, match)
        ]

    def rows(self, table: str) -> List[Row]:
        """All rows of a table (test helper)."""
        return list(self.tables.get(table, []))


class SupabaseStore(BaseSessionStore):
    """Supabase store speaking PostgREST over aiohttp.

    Tables are addressed as ``{url}/rest/v1/{table}``; filters are sent as
    ``column=eq.value`` query parameters.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout_s: float = 10.0
    ):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        need_new_session = self._session is None or self._session.closed

        # Sessions are bound to the loop they were created on
        if self._session is not None and not self._session.closed:
            current_loop = asyncio.get_running_loop()
            session_loop = getattr(self._session, "_loop", None)
            if session_loop is not None and session_loop is not current_loop:
                logger.debug("Event loop mismatch, creating new aiohttp session")
                need_new_session = True
                await self._session.close()

        if need_new_session:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_s)
            )
        return self._session

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=minimal",
        }

    def _endpoint(self, table: str) -> str:
        return f"{self.url}/rest/v1/{table}"

    @staticmethod
    def _filters(match: Row) -> Dict[str, str]:
        return {key: f"eq.{value}" for key, value in match.items()}

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Row] = None
    ) -> Any:
        try:
            session = await self._get_session()
            async with session.request(
                method,
                self._endpoint(table),
                params=params,
                json=payload,
                headers=self._headers(),
            ) as response:
                if response.status >= 300:
                    error_text = await response.text()
                    logger.error(f"Store {method} {table} failed: {response.status} - {error_text}")
                    raise StoreUnavailableError(f"Store {method} {table} failed: {response.status}")
                if method == "GET":
                    return await response.json()
                return None
        except StoreUnavailableError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StoreUnavailableError(f"Store {method} {table} failed: {e}") from e

    async def insert(self, table: str, row: Row) -> None:
        await self._request("POST", table, payload=row)

    async def update(self, table: str, values: Row, match: Row) -> None:
        await self._request("PATCH", table, params=self._filters(match), payload=values)

    async def select(self, table: str, match: Row) -> List[Row]:
        params = self._filters(match)
        params["select"] = "*"
        rows = await self._request("GET", table, params=params)
        return list(rows or [])

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None


def create_store(config: Optional[StoreConfig] = None) -> BaseSessionStore:
    """Factory function to create a session store.

    Uses Supabase when both URL and key are configured, otherwise falls back
    to a process-local store.
    """
    config = config or get_config().store
    if config.is_remote:
        logger.info(f"Using Supabase session store at {config.supabase_url}")
        return SupabaseStore(
            url=config.supabase_url,
            api_key=config.supabase_key,
            timeout_s=config.request_timeout_s,
        )
    logger.warning("Supabase not configured, session log kept in memory only")
    return InMemoryStore()
