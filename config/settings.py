from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Solana RPC
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    helius_rpc_url: str = ""  # preferred over solana_rpc_url when set

    # Signer keys: JSON object user_id → base58 secret key (WALLET_KEYS env)
    wallet_keys: dict[int, str] = {}
    # Users whose sniper is enabled with the default policy at startup
    auto_snipe_user_ids: list[int] = []

    # Telegram notifications (delivery only: commands live elsewhere)
    telegram_bot_token: str = ""
    enable_telegram_notifications: bool = False

    # Live trading kill-switch: when False the app runs discovery + scoring only
    trading_enabled: bool = False

    # Discovery cadence
    discovery_full_refresh_sec: int = 300  # full refresh of every source
    discovery_fast_scan_sec: int = 30  # brand-new listing sweep
    discovery_source_timeout_sec: float = 10.0  # per-source call budget
    eviction_window_sec: int = 7200  # 2h without a confirming update → evicted

    # Market sources
    enable_dexscreener: bool = True
    dexscreener_max_rps: float = 4.0
    enable_birdeye: bool = True
    birdeye_api_key: str = ""
    birdeye_max_rps: float = 10.0
    enable_pumpfun: bool = True
    pumpfun_max_rps: float = 2.0

    # Scoring (LLM via OpenRouter)
    openrouter_api_key: str = ""
    llm_model: str = "google/gemini-2.5-flash-lite"
    scoring_ttl_sec: int = 300
    scoring_loop_interval_sec: int = 60
    scoring_batch_size: int = 20  # top-N by heat per scoring pass
    scoring_call_delay_sec: float = 1.0  # pause between scorer calls

    # Recommendation board
    recommendation_min_score: int = 75
    recommendation_max_items: int = 10
    recommendation_max_age_sec: int = 1800

    # Sniper decision thresholds
    sniper_min_liquidity_usd: float = 100.0
    sniper_max_market_cap_usd: float = 50_000.0
    sniper_relaxed_market_cap_usd: float = 200_000.0  # when predicted multiple > 10x
    min_buy_sol: float = 0.01
    max_buy_sol: float = 5.0
    max_slippage_cap_bps: int = 2500

    # Execution
    fee_reserve_sol: float = 0.01  # kept in wallet for network fees
    jupiter_api_key: str = ""
    jupiter_max_rps: float = 1.0
    priority_fee_lamports: int = 100000

    # Position monitor
    take_profit_pct: float = 1000.0  # PnL% that triggers TARGET_HIT
    default_target_multiple: float = 10.0
    monitor_initial_delay_sec: float = 10.0
    monitor_poll_interval_sec: float = 15.0
    monitor_backoff_ceiling_sec: float = 300.0
    exit_signal_min_confidence: int = 70
    max_sell_attempts: int = 3
    exit_slippage_bps: list[int] = [1000, 1500, 2500]  # escalates per failed attempt

    # Logging
    log_level: str = "INFO"
    log_json: bool = False


settings = Settings()
