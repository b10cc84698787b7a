"""Tests for JupiterSwapClient: quote unit conversion, swap pipeline, errors.

All HTTP calls are mocked. No real RPC or Jupiter API requests are made.
"""

from __future__ import annotations

import base64
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from solders.keypair import Keypair  # type: ignore[import-untyped]
from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from snipebot.errors import QuoteUnavailableError, SwapExecutionError
from snipebot.trading.jupiter_swap import (
    QUOTE_URL,
    WSOL_MINT,
    JupiterSwapClient,
    SwapAggregator,
    _parse_instruction,
    parse_lookup_table,
)

RPC_URL = "https://api.mainnet-beta.solana.com"
MINT = "Mint1111111111111111111111111111111111111111"


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def client() -> JupiterSwapClient:
    return JupiterSwapClient(rpc_url=RPC_URL, api_key="test-key", max_rps=1000.0)


def _response(payload: dict, status: int = 200, method: str = "GET", url: str = QUOTE_URL) -> httpx.Response:
    return httpx.Response(status, json=payload, request=httpx.Request(method, url))


def _quote_response(in_amount: int = 100_000_000, out_amount: int = 1_500_000_000_000) -> dict:
    return {
        "inputMint": WSOL_MINT,
        "outputMint": MINT,
        "inAmount": str(in_amount),
        "outAmount": str(out_amount),
        "priceImpactPct": "0.012",
        "routePlan": [{"swapInfo": {"label": "Raydium"}}],
    }


def _supply_response(decimals: int = 6) -> httpx.Response:
    return _response(
        {"jsonrpc": "2.0", "id": 1, "result": {"value": {"amount": "1000", "decimals": decimals}}},
        method="POST",
        url=RPC_URL,
    )


# ── Quote ──────────────────────────────────────────────────────────────


class TestQuote:
    def test_satisfies_protocol(self, client):
        assert isinstance(client, SwapAggregator)

    @pytest.mark.asyncio
    async def test_buy_quote_converts_units(self, client):
        client._rpc_http.post = AsyncMock(return_value=_supply_response(6))
        client._http.request = AsyncMock(return_value=_response(_quote_response()))

        quote = await client.quote(WSOL_MINT, MINT, 0.1, 1000)

        assert quote.in_amount == pytest.approx(0.1)
        assert quote.out_amount == pytest.approx(1_500_000.0)
        assert quote.price_impact_pct == pytest.approx(1.2)
        params = client._http.request.call_args.kwargs["params"]
        assert params["amount"] == "100000000"
        assert params["slippageBps"] == "1000"
        await client.close()

    @pytest.mark.asyncio
    async def test_decimals_are_cached(self, client):
        client._rpc_http.post = AsyncMock(return_value=_supply_response(6))
        client._http.request = AsyncMock(return_value=_response(_quote_response()))

        await client.quote(WSOL_MINT, MINT, 0.1, 1000)
        await client.quote(MINT, WSOL_MINT, 1_500_000.0, 1000)

        assert client._rpc_http.post.await_count == 1
        sell_params = client._http.request.call_args.kwargs["params"]
        assert sell_params["amount"] == "1500000000000"
        await client.close()

    @pytest.mark.asyncio
    async def test_no_route(self, client):
        client._rpc_http.post = AsyncMock(return_value=_supply_response(6))
        client._http.request = AsyncMock(return_value=_response({"error": "No routes found"}, status=400))

        with pytest.raises(QuoteUnavailableError, match="no route"):
            await client.quote(WSOL_MINT, MINT, 0.1, 1000)
        await client.close()

    @pytest.mark.asyncio
    async def test_unknown_mint_decimals(self, client):
        client._rpc_http.post = AsyncMock(return_value=_response(
            {"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "Invalid param: not a Token mint"}},
            method="POST",
            url=RPC_URL,
        ))

        with pytest.raises(QuoteUnavailableError, match="decimals"):
            await client.quote(WSOL_MINT, MINT, 0.1, 1000)
        await client.close()

    @pytest.mark.asyncio
    async def test_dust_amount_rejected(self, client):
        client._rpc_http.post = AsyncMock(return_value=_supply_response(6))
        with pytest.raises(QuoteUnavailableError, match="too small"):
            await client.quote(WSOL_MINT, MINT, 1e-12, 1000)
        await client.close()

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self, client):
        client._rpc_http.post = AsyncMock(return_value=_supply_response(6))
        client._http.request = AsyncMock(side_effect=[
            _response({}, status=503),
            _response(_quote_response()),
        ])

        with patch("snipebot.trading.jupiter_swap.asyncio.sleep", new=AsyncMock()):
            quote = await client.quote(WSOL_MINT, MINT, 0.1, 1000)

        assert quote.out_amount == pytest.approx(1_500_000.0)
        assert client._http.request.await_count == 2
        await client.close()


# ── Swap ───────────────────────────────────────────────────────────────


class TestSwap:
    @pytest.mark.asyncio
    async def test_swap_returns_quoted_output(self, client):
        client._rpc_http.post = AsyncMock(return_value=_supply_response(6))
        client._http.request = AsyncMock(return_value=_response(_quote_response()))
        quote = await client.quote(WSOL_MINT, MINT, 0.1, 1000)
        client._http.request = AsyncMock(return_value=_response({"swapInstruction": {}}, method="POST"))
        client._build_and_sign_tx = AsyncMock(return_value="dHg=")
        client._send_raw_transaction = AsyncMock(return_value="5sig")
        client._wait_for_confirmation_with_resend = AsyncMock(return_value=True)
        signer = Keypair()

        receipt = await client.swap(signer, quote)

        assert receipt.signature == "5sig"
        assert receipt.received_amount == quote.out_amount
        body = client._http.request.call_args.kwargs["json"]
        assert body["userPublicKey"] == str(signer.pubkey())
        assert body["quoteResponse"]["outAmount"] == "1500000000000"
        await client.close()

    @pytest.mark.asyncio
    async def test_unconfirmed_swap_fails(self, client):
        client._rpc_http.post = AsyncMock(return_value=_supply_response(6))
        client._http.request = AsyncMock(return_value=_response(_quote_response()))
        quote = await client.quote(WSOL_MINT, MINT, 0.1, 1000)
        client._http.request = AsyncMock(return_value=_response({"swapInstruction": {}}, method="POST"))
        client._build_and_sign_tx = AsyncMock(return_value="dHg=")
        client._send_raw_transaction = AsyncMock(return_value="5sig")
        client._wait_for_confirmation_with_resend = AsyncMock(return_value=False)

        with pytest.raises(SwapExecutionError, match="not confirmed"):
            await client.swap(Keypair(), quote)
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_instructions_fail(self, client):
        client._rpc_http.post = AsyncMock(return_value=_supply_response(6))
        client._http.request = AsyncMock(return_value=_response(_quote_response()))
        quote = await client.quote(WSOL_MINT, MINT, 0.1, 1000)
        client._http.request = AsyncMock(return_value=_response({"error": "bad quote"}, status=400, method="POST"))

        with pytest.raises(SwapExecutionError, match="instructions unavailable"):
            await client.swap(Keypair(), quote)
        await client.close()

    @pytest.mark.asyncio
    async def test_send_transaction_error_stops_on_blockhash(self, client):
        client._rpc_http.post = AsyncMock(return_value=_response(
            {"jsonrpc": "2.0", "id": 1, "error": {"message": "Blockhash not found"}}, method="POST", url=RPC_URL,
        ))

        with pytest.raises(SwapExecutionError, match="Blockhash not found"):
            await client._send_raw_transaction("dHg=")

        assert client._rpc_http.post.await_count == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_confirmation_polling(self, client):
        client._rpc = AsyncMock(side_effect=[
            {"value": [None]},
            {},
            {"value": [{"confirmationStatus": "confirmed", "err": None}]},
        ])

        with patch("snipebot.trading.jupiter_swap.asyncio.sleep", new=AsyncMock()):
            assert await client._wait_for_confirmation_with_resend("5sig", "dHg=") is True
        await client.close()

    @pytest.mark.asyncio
    async def test_onchain_error_is_not_confirmed(self, client):
        client._rpc = AsyncMock(return_value={"value": [{"err": {"InstructionError": [2, "Custom"]}}]})
        assert await client._wait_for_confirmation_with_resend("5sig", "dHg=") is False
        await client.close()


# ── Parsing ────────────────────────────────────────────────────────────


class TestParsing:
    def test_parse_instruction(self):
        program = Pubkey.new_unique()
        account = Pubkey.new_unique()
        ix = _parse_instruction({
            "programId": str(program),
            "accounts": [{"pubkey": str(account), "isSigner": False, "isWritable": True}],
            "data": base64.b64encode(b"\x01\x02").decode(),
        })

        assert ix.program_id == program
        assert ix.accounts[0].pubkey == account
        assert ix.accounts[0].is_writable
        assert bytes(ix.data) == b"\x01\x02"

    def test_parse_lookup_table(self):
        key = Pubkey.new_unique()
        addresses = [Pubkey.new_unique(), Pubkey.new_unique()]
        raw = bytes(56) + b"".join(bytes(a) for a in addresses)

        table = parse_lookup_table(str(key), raw)

        assert table.key == key
        assert list(table.addresses) == addresses

    def test_short_lookup_table_is_ignored(self):
        assert parse_lookup_table(str(Pubkey.new_unique()), bytes(40)) is None
