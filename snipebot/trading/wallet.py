"""Per-user Solana wallets: signer resolution and on-chain balance queries.

Secret keys come from a pluggable lookup (user_id → base58 secret) and are
turned into solders Keypairs once per user. Only public keys are logged.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

import httpx
from loguru import logger
from solders.keypair import Keypair  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from snipebot.errors import NoWalletError, WalletRpcError

LAMPORTS_PER_SOL = 1_000_000_000

KeyLookup = Callable[[int], str | None]


@runtime_checkable
class WalletProvider(Protocol):
    async def resolve_signer(self, user_id: int) -> Keypair:
        """Raise NoWalletError when the user has no usable key."""
        ...

    async def get_balance(self, user_id: int) -> float:
        """SOL balance."""
        ...

    async def get_token_balance(self, user_id: int, mint: str) -> float:
        """Token balance in UI units (0.0 when the user holds no account for the mint)."""
        ...


class SolanaRpcWallet:
    """WalletProvider over Solana JSON-RPC."""

    def __init__(self, key_lookup: KeyLookup, rpc_url: str) -> None:
        if not rpc_url:
            raise ValueError("RPC URL is empty")
        self._key_lookup = key_lookup
        self._rpc_url = rpc_url
        self._keypairs: dict[int, Keypair] = {}
        self._http = httpx.AsyncClient(timeout=10.0)

    def __repr__(self) -> str:
        return f"SolanaRpcWallet(users={len(self._keypairs)})"

    async def resolve_signer(self, user_id: int) -> Keypair:
        keypair = self._keypairs.get(user_id)
        if keypair is not None:
            return keypair

        secret = self._key_lookup(user_id)
        if not secret:
            raise NoWalletError(user_id)
        try:
            keypair = Keypair.from_base58_string(secret)
        except ValueError as e:
            logger.warning(f"[WALLET] Invalid key for user {user_id}")
            raise NoWalletError(user_id) from e

        self._keypairs[user_id] = keypair
        logger.info(f"[WALLET] Loaded wallet for user {user_id}: {keypair.pubkey()}")
        return keypair

    async def pubkey(self, user_id: int) -> Pubkey:
        return (await self.resolve_signer(user_id)).pubkey()

    async def _rpc(self, method: str, params: list) -> dict:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            resp = await self._http.post(self._rpc_url, json=payload)
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            raise WalletRpcError(f"{method} failed: {e}") from e
        if resp.status_code != 200:
            raise WalletRpcError(f"{method} HTTP {resp.status_code}")
        data = resp.json()
        if "error" in data:
            raise WalletRpcError(f"{method} error: {data['error']}")
        return data.get("result", {})

    async def get_balance(self, user_id: int) -> float:
        owner = str(await self.pubkey(user_id))
        result = await self._rpc("getBalance", [owner])
        lamports = result.get("value", 0)
        return lamports / LAMPORTS_PER_SOL

    async def get_token_balance(self, user_id: int, mint: str) -> float:
        owner = str(await self.pubkey(user_id))
        result = await self._rpc(
            "getTokenAccountsByOwner",
            [owner, {"mint": mint}, {"encoding": "jsonParsed"}],
        )
        total = 0.0
        try:
            for account in result.get("value", []):
                amount = account["account"]["data"]["parsed"]["info"]["tokenAmount"]
                total += float(amount.get("uiAmountString") or amount.get("uiAmount") or 0)
        except (KeyError, TypeError, ValueError) as e:
            raise WalletRpcError(f"unexpected token account layout for {mint[:12]}: {e}") from e
        return total

    async def close(self) -> None:
        await self._http.aclose()
