"""Component wiring.

Builds the discovery → scoring → sniper → execution → monitor pipeline
from Settings. Every collaborator can be injected, which is how tests
and alternative deployments swap in their own adapters.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from config.settings import Settings
from snipebot.discovery.aggregator import DiscoveryAggregator
from snipebot.discovery.feed import TokenFeed
from snipebot.discovery.registry import TokenRegistry
from snipebot.discovery.sources.base import MarketSource
from snipebot.discovery.sources.birdeye.client import BirdeyeClient
from snipebot.discovery.sources.dexscreener.client import DexScreenerClient
from snipebot.discovery.sources.pumpfun.client import PumpfunClient
from snipebot.models.trade import Position, SniperPolicy
from snipebot.notifications import LogNotifier, Notifier, TelegramNotifier
from snipebot.scoring.base import NeutralScorer, Scorer
from snipebot.scoring.board import RecommendationBoard
from snipebot.scoring.llm_client import LLMScorer
from snipebot.scoring.service import ScoringService
from snipebot.sniper.decision import DecisionLimits
from snipebot.sniper.engine import SniperEngine
from snipebot.trading.executor import ExecutionEngine
from snipebot.trading.jupiter_swap import JupiterSwapClient, SwapAggregator
from snipebot.trading.monitor import MonitorConfig, PositionMonitor, PositionSupervisor
from snipebot.trading.positions import PositionBook
from snipebot.trading.price_feed import JupiterPriceFeed, PriceFeed
from snipebot.trading.wallet import SolanaRpcWallet, WalletProvider

STATS_INTERVAL_SEC = 300


def build_sources(cfg: Settings) -> list[MarketSource]:
    sources: list[MarketSource] = []
    if cfg.enable_dexscreener:
        sources.append(DexScreenerClient(max_rps=cfg.dexscreener_max_rps))
    if cfg.enable_birdeye and cfg.birdeye_api_key:
        sources.append(BirdeyeClient(cfg.birdeye_api_key, max_rps=cfg.birdeye_max_rps))
    elif cfg.enable_birdeye:
        logger.warning("[APP] Birdeye enabled but BIRDEYE_API_KEY is empty, skipping")
    if cfg.enable_pumpfun:
        sources.append(PumpfunClient(max_rps=cfg.pumpfun_max_rps))
    return sources


class SnipeBot:
    def __init__(
        self,
        cfg: Settings,
        *,
        sources: list[MarketSource] | None = None,
        scorer: Scorer | None = None,
        wallet: WalletProvider | None = None,
        swap: SwapAggregator | None = None,
        price_feed: PriceFeed | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.cfg = cfg
        rpc_url = cfg.helius_rpc_url or cfg.solana_rpc_url

        self.registry = TokenRegistry(eviction_window_sec=cfg.eviction_window_sec)
        self.feed = TokenFeed()
        self.aggregator = DiscoveryAggregator(
            sources if sources is not None else build_sources(cfg),
            self.registry,
            self.feed,
            source_timeout_sec=cfg.discovery_source_timeout_sec,
            full_refresh_sec=cfg.discovery_full_refresh_sec,
            fast_scan_sec=cfg.discovery_fast_scan_sec,
            eviction_window_sec=cfg.eviction_window_sec,
        )

        if scorer is None:
            if cfg.openrouter_api_key:
                scorer = LLMScorer(cfg.openrouter_api_key, model=cfg.llm_model)
            else:
                logger.warning("[APP] OPENROUTER_API_KEY is empty, every token gets the neutral score")
                scorer = NeutralScorer()
        self.scorer = scorer
        self.board = RecommendationBoard(
            min_score=cfg.recommendation_min_score,
            max_items=cfg.recommendation_max_items,
            max_age_sec=cfg.recommendation_max_age_sec,
        )
        self.scoring = ScoringService(
            scorer,
            self.registry,
            board=self.board,
            ttl_sec=cfg.scoring_ttl_sec,
            loop_interval_sec=cfg.scoring_loop_interval_sec,
            batch_size=cfg.scoring_batch_size,
            call_delay_sec=cfg.scoring_call_delay_sec,
        )

        if notifier is None:
            if cfg.enable_telegram_notifications and cfg.telegram_bot_token:
                notifier = TelegramNotifier(cfg.telegram_bot_token)
            else:
                notifier = LogNotifier()
        self.notifier = notifier

        self.wallet = wallet or SolanaRpcWallet(cfg.wallet_keys.get, rpc_url)
        self.swap = swap or JupiterSwapClient(
            rpc_url=rpc_url,
            api_key=cfg.jupiter_api_key,
            max_rps=cfg.jupiter_max_rps,
            priority_fee_lamports=cfg.priority_fee_lamports,
        )
        self.price_feed = price_feed or JupiterPriceFeed(cfg.jupiter_api_key, max_rps=cfg.jupiter_max_rps)

        self.book = PositionBook()
        self.executor = ExecutionEngine(
            wallet=self.wallet,
            swap=self.swap,
            book=self.book,
            notifier=self.notifier,
            fee_reserve_sol=cfg.fee_reserve_sol,
            default_target_multiple=cfg.default_target_multiple,
        )
        self.monitor_config = MonitorConfig(
            take_profit_pct=cfg.take_profit_pct,
            initial_delay_sec=cfg.monitor_initial_delay_sec,
            poll_interval_sec=cfg.monitor_poll_interval_sec,
            backoff_ceiling_sec=cfg.monitor_backoff_ceiling_sec,
            exit_min_confidence=cfg.exit_signal_min_confidence,
            max_sell_attempts=cfg.max_sell_attempts,
            exit_slippage_bps=tuple(cfg.exit_slippage_bps),
        )
        self.supervisor = PositionSupervisor(self._make_monitor)
        self.executor.on_position_opened = self.supervisor.start
        self.executor.on_position_closed = self.supervisor.on_position_closed

        self.sniper = SniperEngine(
            feed=self.feed,
            scoring=self.scoring,
            executor=self.executor,
            wallet=self.wallet,
            limits=DecisionLimits(
                min_liquidity_usd=cfg.sniper_min_liquidity_usd,
                max_market_cap_usd=cfg.sniper_max_market_cap_usd,
                relaxed_market_cap_usd=cfg.sniper_relaxed_market_cap_usd,
                min_buy_sol=cfg.min_buy_sol,
                max_buy_sol=cfg.max_buy_sol,
                max_slippage_cap_bps=cfg.max_slippage_cap_bps,
            ),
            fee_reserve_sol=cfg.fee_reserve_sol,
        )
        self._tasks: list[asyncio.Task] = []

    def _make_monitor(self, position: Position) -> PositionMonitor:
        return PositionMonitor(
            position.id,
            book=self.book,
            price_feed=self.price_feed,
            executor=self.executor,
            notifier=self.notifier,
            registry=self.registry,
            config=self.monitor_config,
        )

    async def enable_auto_snipers(self) -> None:
        if not self.cfg.trading_enabled:
            if self.cfg.auto_snipe_user_ids:
                logger.warning("[APP] TRADING_ENABLED is false, auto snipers not started")
            return
        for user_id in self.cfg.auto_snipe_user_ids:
            try:
                await self.sniper.enable(user_id, SniperPolicy())
            except Exception as e:
                logger.error(f"[APP] Cannot enable sniper for user {user_id}: {type(e).__name__}: {e}")

    async def _stats_loop(self) -> None:
        while True:
            await asyncio.sleep(STATS_INTERVAL_SEC)
            stats = self.aggregator.stats()
            logger.info(
                f"[STATS] tokens={stats['total']} freshness={stats['by_freshness']} "
                f"positions={len(self.book.active())} monitors={len(self.supervisor)} "
                f"scoring_calls={self.scoring.calls} scoring_failures={self.scoring.failures}"
            )

    def start(self) -> list[asyncio.Task]:
        self._tasks = [
            asyncio.create_task(self.aggregator.run_full_refresh_loop(), name="discovery:full"),
            asyncio.create_task(self.aggregator.run_fast_scan_loop(), name="discovery:fast"),
            asyncio.create_task(self.scoring.run_scoring_loop(), name="scoring"),
            asyncio.create_task(self._stats_loop(), name="stats"),
        ]
        return self._tasks

    async def stop(self) -> None:
        await self.sniper.shutdown()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.supervisor.shutdown()
        await self.feed.close()
        await self.aggregator.close()
        for client in (self.scorer, self.swap, self.price_feed, self.wallet, self.notifier):
            close = getattr(client, "close", None)
            if close is not None:
                try:
                    await close()
                except Exception as e:
                    logger.debug(f"[APP] Close of {type(client).__name__} failed: {e}")
