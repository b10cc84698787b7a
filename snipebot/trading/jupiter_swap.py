"""Jupiter swap execution: quote, build transaction, sign, send, confirm.

Pipeline:
  1. GET /swap/v1/quote for the route
  2. POST /swap/v1/swap-instructions for the individual instructions
  3. Build a v0 transaction with a fresh blockhash from our RPC
  4. Sign with the user's keypair, send via sendTransaction
  5. Poll getSignatureStatuses, re-sending the same signed TX until confirmed

Amounts cross this boundary in UI units; raw units (lamports, token base
units) stay inside. Mint decimals are resolved via getTokenSupply and cached.
"""

from __future__ import annotations

import asyncio
import base64
from typing import Protocol, runtime_checkable

import httpx
from loguru import logger
from solders.address_lookup_table_account import AddressLookupTableAccount  # type: ignore[import-untyped]
from solders.hash import Hash  # type: ignore[import-untyped]
from solders.instruction import AccountMeta, Instruction  # type: ignore[import-untyped]
from solders.keypair import Keypair  # type: ignore[import-untyped]
from solders.message import MessageV0  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]
from solders.transaction import VersionedTransaction  # type: ignore[import-untyped]

from snipebot.errors import QuoteUnavailableError, SwapExecutionError
from snipebot.models.trade import Quote, SwapReceipt
from snipebot.utils.rate_limiter import RateLimiter

QUOTE_URL = "https://api.jup.ag/swap/v1/quote"
SWAP_INSTRUCTIONS_URL = "https://api.jup.ag/swap/v1/swap-instructions"
WSOL_MINT = "So11111111111111111111111111111111111111112"
SOL_DECIMALS = 9

MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]

# Confirmation polling
CONFIRM_POLL_INTERVAL = 2.0  # seconds
CONFIRM_TIMEOUT = 60  # seconds
RESEND_INTERVAL = 4.0  # seconds


@runtime_checkable
class SwapAggregator(Protocol):
    async def quote(self, input_mint: str, output_mint: str, amount: float, slippage_bps: int) -> Quote:
        """Raise QuoteUnavailableError when no route exists."""
        ...

    async def swap(self, signer: Keypair, quote: Quote) -> SwapReceipt:
        """Raise SwapExecutionError when the transaction does not land."""
        ...


def _parse_instruction(ix_data: dict) -> Instruction:
    """Parse a Jupiter instruction JSON into solders Instruction."""
    program_id = Pubkey.from_string(ix_data["programId"])
    accounts = [
        AccountMeta(
            pubkey=Pubkey.from_string(a["pubkey"]),
            is_signer=a["isSigner"],
            is_writable=a["isWritable"],
        )
        for a in ix_data["accounts"]
    ]
    data = base64.b64decode(ix_data["data"])
    return Instruction(program_id, data, accounts)


def parse_lookup_table(key: str, raw: bytes) -> AddressLookupTableAccount | None:
    """Decode an address lookup table account: 56-byte header, then 32-byte keys."""
    if len(raw) < 56:
        return None
    addresses = [Pubkey.from_bytes(raw[i : i + 32]) for i in range(56, len(raw) - 31, 32)]
    return AddressLookupTableAccount(key=Pubkey.from_string(key), addresses=addresses)


class JupiterSwapClient:
    """SwapAggregator backed by the Jupiter v1 swap API."""

    def __init__(
        self,
        *,
        rpc_url: str,
        api_key: str = "",
        max_rps: float = 1.0,
        priority_fee_lamports: int | str = "auto",
    ) -> None:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            headers["x-api-key"] = api_key

        self._http = httpx.AsyncClient(timeout=15.0, headers=headers)
        self._rpc_http = httpx.AsyncClient(timeout=30.0)
        self._rpc_url = rpc_url
        self._rate_limiter = RateLimiter(max_rps)
        self._priority_fee = priority_fee_lamports
        self._decimals: dict[str, int] = {WSOL_MINT: SOL_DECIMALS}

    # ─── Public API ──────────────────────────────────────────────────

    async def quote(self, input_mint: str, output_mint: str, amount: float, slippage_bps: int) -> Quote:
        in_decimals = await self.get_decimals(input_mint)
        out_decimals = await self.get_decimals(output_mint)
        raw_amount = int(amount * 10**in_decimals)
        if raw_amount <= 0:
            raise QuoteUnavailableError(f"amount too small: {amount}")

        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(raw_amount),
            "slippageBps": str(slippage_bps),
        }
        data = await self._jupiter_request("GET", QUOTE_URL, params=params)
        if data is None or "outAmount" not in data:
            raise QuoteUnavailableError(f"no route {input_mint[:12]} → {output_mint[:12]}")

        return Quote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=int(data.get("inAmount", raw_amount)) / 10**in_decimals,
            out_amount=int(data["outAmount"]) / 10**out_decimals,
            slippage_bps=slippage_bps,
            price_impact_pct=float(data.get("priceImpactPct", 0) or 0) * 100,
            raw=data,
        )

    async def swap(self, signer: Keypair, quote: Quote) -> SwapReceipt:
        payload = {
            "quoteResponse": quote.raw,
            "userPublicKey": str(signer.pubkey()),
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": self._priority_fee,
        }
        ix_data = await self._jupiter_request("POST", SWAP_INSTRUCTIONS_URL, json=payload)
        if ix_data is None or "swapInstruction" not in ix_data:
            raise SwapExecutionError("swap instructions unavailable")

        try:
            tx_b64 = await self._build_and_sign_tx(signer, ix_data)
        except (KeyError, ValueError, httpx.HTTPError) as e:
            raise SwapExecutionError(f"TX build/sign failed: {e}") from e

        signature = await self._send_raw_transaction(tx_b64)
        if not await self._wait_for_confirmation_with_resend(signature, tx_b64):
            raise SwapExecutionError(f"TX {signature[:16]} not confirmed within {CONFIRM_TIMEOUT}s")

        logger.info(
            f"[SWAP] Confirmed {quote.input_mint[:12]} → {quote.output_mint[:12]} "
            f"out≈{quote.out_amount:.6g} tx={signature}"
        )
        # Quoted output; actual fill may differ within slippage
        return SwapReceipt(signature=signature, received_amount=quote.out_amount)

    async def get_decimals(self, mint: str) -> int:
        if mint in self._decimals:
            return self._decimals[mint]
        try:
            result = await self._rpc("getTokenSupply", [mint])
            decimals = int(result["value"]["decimals"])
        except (KeyError, TypeError, ValueError, httpx.HTTPError) as e:
            raise QuoteUnavailableError(f"cannot resolve decimals for {mint[:12]}: {e}") from e
        self._decimals[mint] = decimals
        return decimals

    # ─── Jupiter HTTP ────────────────────────────────────────────────

    async def _jupiter_request(self, method: str, url: str, **kwargs) -> dict | None:
        """Jupiter call with retry on 429/5xx/timeouts. None on terminal failure."""
        for attempt in range(MAX_RETRIES + 1):
            delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
            try:
                await self._rate_limiter.acquire()
                resp = await self._http.request(method, url, **kwargs)

                if resp.status_code == 429 or resp.status_code >= 500:
                    if attempt < MAX_RETRIES:
                        logger.debug(f"[SWAP] HTTP {resp.status_code}, retry in {delay}s")
                        await asyncio.sleep(delay)
                        continue
                    logger.warning(f"[SWAP] {url.rsplit('/', 1)[-1]} failed: HTTP {resp.status_code}")
                    return None

                if resp.status_code != 200:
                    data = resp.json() if resp.content else {}
                    error_msg = data.get("error", data.get("message", f"HTTP {resp.status_code}"))
                    logger.warning(f"[SWAP] {url.rsplit('/', 1)[-1]} rejected: {error_msg}")
                    return None

                return resp.json()

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < MAX_RETRIES:
                    logger.debug(f"[SWAP] {type(e).__name__}, retry in {delay}s")
                    await asyncio.sleep(delay)
                else:
                    logger.warning(f"[SWAP] {url.rsplit('/', 1)[-1]} failed after retries: {e}")
        return None

    # ─── TX building ─────────────────────────────────────────────────

    async def _build_and_sign_tx(self, signer: Keypair, ix_data: dict) -> str:
        """Build a v0 transaction from instructions + fresh blockhash. Returns base64."""
        instructions = [_parse_instruction(ix) for ix in ix_data.get("computeBudgetInstructions", [])]
        instructions += [_parse_instruction(ix) for ix in ix_data.get("setupInstructions", [])]
        instructions.append(_parse_instruction(ix_data["swapInstruction"]))
        if ix_data.get("cleanupInstruction"):
            instructions.append(_parse_instruction(ix_data["cleanupInstruction"]))

        alts = []
        for alt_key in ix_data.get("addressLookupTableAddresses", []):
            alt = await self._fetch_alt(alt_key)
            if alt is not None:
                alts.append(alt)

        latest = await self._rpc("getLatestBlockhash", [{"commitment": "finalized"}])
        blockhash = Hash.from_string(latest["value"]["blockhash"])

        msg = MessageV0.try_compile(
            payer=signer.pubkey(),
            instructions=instructions,
            address_lookup_table_accounts=alts,
            recent_blockhash=blockhash,
        )
        tx = VersionedTransaction(msg, [signer])
        logger.debug(f"[SWAP] TX built: {len(instructions)} instructions, {len(alts)} ALTs")
        return base64.b64encode(bytes(tx)).decode("ascii")

    async def _fetch_alt(self, alt_key: str) -> AddressLookupTableAccount | None:
        try:
            result = await self._rpc("getAccountInfo", [alt_key, {"encoding": "base64", "commitment": "confirmed"}])
        except httpx.HTTPError as e:
            logger.warning(f"[SWAP] ALT fetch failed for {alt_key[:12]}: {e}")
            return None
        value = result.get("value")
        if not value:
            return None
        return parse_lookup_table(alt_key, base64.b64decode(value["data"][0]))

    # ─── RPC ─────────────────────────────────────────────────────────

    async def _rpc(self, method: str, params: list) -> dict:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        resp = await self._rpc_http.post(self._rpc_url, json=payload)
        resp.raise_for_status()
        data = resp.json()
        if "error" in data:
            raise ValueError(f"{method}: {data['error'].get('message', data['error'])}")
        return data.get("result") or {}

    async def _send_raw_transaction(self, tx_b64: str) -> str:
        params = [tx_b64, {"encoding": "base64", "skipPreflight": True, "maxRetries": 5}]
        last_error = ""
        for attempt in range(MAX_RETRIES + 1):
            try:
                payload = {"jsonrpc": "2.0", "id": 1, "method": "sendTransaction", "params": params}
                resp = await self._rpc_http.post(self._rpc_url, json=payload)
                data = resp.json() if resp.status_code == 200 else {"error": {"message": f"HTTP {resp.status_code}"}}
                if "error" in data:
                    last_error = data["error"].get("message", str(data["error"]))
                    logger.warning(f"[SWAP] sendTransaction error: {last_error}")
                    if "Blockhash not found" in last_error or "insufficient" in last_error.lower():
                        break
                elif data.get("result"):
                    return str(data["result"])
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_error = f"{type(e).__name__}: {e}"
            if attempt < MAX_RETRIES:
                await asyncio.sleep(RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)])
        raise SwapExecutionError(f"sendTransaction failed: {last_error}")

    async def _wait_for_confirmation_with_resend(
        self,
        signature: str,
        tx_b64: str,
        timeout: int = CONFIRM_TIMEOUT,
    ) -> bool:
        """Poll status; re-send the same signed TX every few seconds (same signature, idempotent)."""
        status_params = [[signature], {"searchTransactionHistory": True}]
        resend_params = [tx_b64, {"encoding": "base64", "skipPreflight": True, "maxRetries": 0}]

        elapsed = 0.0
        last_resend = 0.0
        while elapsed < timeout:
            try:
                result = await self._rpc("getSignatureStatuses", status_params)
                statuses = result.get("value", [])
                if statuses and statuses[0] is not None:
                    status = statuses[0]
                    if status.get("err"):
                        logger.warning(f"[SWAP] TX {signature[:16]} error on-chain: {status['err']}")
                        return False
                    if status.get("confirmationStatus") in ("confirmed", "finalized"):
                        logger.debug(f"[SWAP] TX {signature[:16]} confirmed in {elapsed:.1f}s")
                        return True
            except (httpx.HTTPError, ValueError) as e:
                logger.debug(f"[SWAP] Status poll failed: {e}")

            if elapsed - last_resend >= RESEND_INTERVAL and elapsed < timeout - 5:
                try:
                    await self._rpc("sendTransaction", resend_params)
                except (httpx.HTTPError, ValueError) as e:
                    logger.debug(f"[SWAP] Resend failed: {e}")
                last_resend = elapsed

            await asyncio.sleep(CONFIRM_POLL_INTERVAL)
            elapsed += CONFIRM_POLL_INTERVAL

        logger.warning(f"[SWAP] TX {signature[:16]} confirmation timeout after {timeout}s")
        return False

    async def close(self) -> None:
        await self._http.aclose()
        await self._rpc_http.aclose()
