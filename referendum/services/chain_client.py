"""Chain node HTTP RPC client for the referendum tables"""
import asyncio
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

import httpx
import structlog

from referendum.config import Settings, get_settings
from referendum.exceptions import MalformedAmount, TransportFailure
from referendum.schemas.tables import CurrencyStats, DelegatedStakeRecord, Proposal, Vote, VoterRecord

logger = structlog.get_logger()

T = TypeVar("T")


class ChainClient:
    """Async chain RPC client with table helpers"""

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.rpc_url = (rpc_url or self.settings.rpc_url).rstrip("/")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        """Open the HTTP connection pool"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.rpc_url,
                timeout=self.settings.request_timeout,
                transport=self._transport,
            )
            logger.info("Connected to chain RPC", url=self.rpc_url)

    async def disconnect(self) -> None:
        """Close the HTTP connection pool"""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from chain RPC")

    async def __aenter__(self) -> "ChainClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.disconnect()

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, raise if not connected"""
        if self._client is None:
            raise RuntimeError("Chain client not connected. Call connect() first.")
        return self._client

    async def _post(self, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self.client.post(endpoint, json=payload or {})
        except httpx.HTTPError as e:
            raise TransportFailure(endpoint, str(e)) from e

        if response.status_code >= 400:
            raise TransportFailure(endpoint, response.text[:200], status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise TransportFailure(endpoint, "response body is not JSON", response.status_code) from e

    async def get_info(self) -> Dict[str, Any]:
        """Get chain info"""
        return await self._post("/v1/chain/get_info")

    async def get_head_block_num(self) -> int:
        """Get current head block number"""
        info = await self.get_info()
        try:
            return int(info["head_block_num"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransportFailure("/v1/chain/get_info", "missing head_block_num") from e

    async def get_table_rows(
        self,
        code: str,
        scope: str,
        table: str,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Get every row of a table, following ``more``/``next_key`` pagination"""
        limit = limit or self.settings.table_page_limit
        rows: List[Dict[str, Any]] = []
        lower_bound = ""

        while True:
            result = await self._post("/v1/chain/get_table_rows", {
                "code": code,
                "scope": scope,
                "table": table,
                "json": True,
                "limit": limit,
                "lower_bound": lower_bound,
            })
            try:
                page = result["rows"]
            except (KeyError, TypeError) as e:
                raise TransportFailure("/v1/chain/get_table_rows", f"no rows in {code}/{table}") from e
            rows.extend(page)

            if not result.get("more"):
                break
            next_key = str(result.get("next_key") or "")
            if not next_key or not page or next_key == lower_bound:
                raise TransportFailure(
                    "/v1/chain/get_table_rows",
                    f"{code}/{scope}/{table} reports more rows but no usable next_key",
                )
            lower_bound = next_key

        return rows

    async def get_currency_stats(self, code: str, symbol: str) -> Dict[str, Any]:
        """Get currency stats of a token symbol"""
        return await self._post("/v1/chain/get_currency_stats", {"code": code, "symbol": symbol})

    async def fetch_currency_stats(self, code: Optional[str] = None, symbol: Optional[str] = None) -> CurrencyStats:
        """Get the currency stats of the configured token"""
        code = code or self.settings.token_contract
        symbol = symbol or self.settings.token_symbol
        result = await self.get_currency_stats(code, symbol)
        try:
            return CurrencyStats.model_validate(result[symbol])
        except (KeyError, TypeError, ValueError) as e:
            raise TransportFailure("/v1/chain/get_currency_stats", f"no stats for {symbol}") from e

    async def fetch_votes(self) -> List[Vote]:
        """Get all forum votes"""
        contract = self.settings.forum_contract
        rows = await self.get_table_rows(contract, contract, "vote")
        logger.info("Fetched forum votes", rows=len(rows))
        return _decode_rows("vote", rows, Vote.model_validate)

    async def fetch_proposals(self) -> List[Proposal]:
        """Get all forum proposals"""
        contract = self.settings.forum_contract
        rows = await self.get_table_rows(contract, contract, "proposal")
        logger.info("Fetched forum proposals", rows=len(rows))
        return _decode_rows("proposal", rows, Proposal.model_validate)

    async def fetch_voters(self) -> List[VoterRecord]:
        """Get the full voters table"""
        contract = self.settings.system_contract
        rows = await self.get_table_rows(contract, contract, "voters")
        logger.info("Fetched voters", rows=len(rows))
        precision = self.settings.token_precision
        return _decode_rows("voters", rows, lambda row: VoterRecord.from_chain_row(row, precision))

    async def fetch_delegated_stake(self, owners: Iterable[str]) -> List[DelegatedStakeRecord]:
        """Get the delband rows scoped by each owner"""
        contract = self.settings.system_contract
        symbol = self.settings.token_symbol
        precision = self.settings.token_precision
        semaphore = asyncio.Semaphore(self.settings.delband_concurrency)

        async def fetch_owner(owner: str) -> List[Dict[str, Any]]:
            async with semaphore:
                return await self.get_table_rows(contract, owner, "delband")

        owners = sorted(set(owners))
        tasks = [asyncio.ensure_future(fetch_owner(owner)) for owner in owners]
        try:
            pages = await asyncio.gather(*tasks)
        except Exception:
            # One failed lookup fails the batch; don't leave the rest running
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        records = _decode_rows(
            "delband",
            [row for page in pages for row in page],
            lambda row: DelegatedStakeRecord.from_chain_row(row, symbol, precision),
        )
        records.sort(key=lambda r: (r.from_, r.to))
        logger.info("Fetched delegated stake", owners=len(owners), rows=len(records))
        return records


def _decode_rows(table: str, rows: List[Dict[str, Any]], decode: Callable[[Dict[str, Any]], T]) -> List[T]:
    """Convert raw table rows, turning undecodable rows into TransportFailure"""
    decoded = []
    for row in rows:
        try:
            decoded.append(decode(row))
        except MalformedAmount:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise TransportFailure("/v1/chain/get_table_rows", f"undecodable {table} row: {e}") from e
    return decoded
