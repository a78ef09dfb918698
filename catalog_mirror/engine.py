"""Wiring of the sync engine.

``create_engine()`` builds the collaborators described by a
``MirrorConfig`` and registers the five strategies with a fresh
``StrategyManager``. Any collaborator can be passed in to replace the
configured one, which is how tests run the engine against fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from catalog_mirror.lib.catalog import BangumiClient, CatalogClient, RateLimitedCatalog
from catalog_mirror.lib.config import MirrorConfig
from catalog_mirror.lib.cooldown import CooldownPolicy
from catalog_mirror.lib.notify import LogNotifier, Notifier, WebhookNotifier
from catalog_mirror.lib.rate_limiter import RateLimiter
from catalog_mirror.lib.resilience import CircuitBreaker
from catalog_mirror.lib.state import Checkpoint, FileStateStore, StateStore
from catalog_mirror.lib.store import DocumentStore, JsonFileDocumentStore
from catalog_mirror.strategies import (
    BiweeklyUpdate,
    DailyIncremental,
    FullSync,
    MonthlyRotation,
    RotationCursor,
    StrategyManager,
    YearlyUpdate,
)
from catalog_mirror.sync import SubjectSyncService

logger = logging.getLogger(__name__)

__all__ = ["MirrorEngine", "create_engine", "STRATEGY_ALIASES"]

# CLI command -> registered strategy name
STRATEGY_ALIASES = {
    "daily": DailyIncremental.name,
    "yearly": YearlyUpdate.name,
    "biweekly": BiweeklyUpdate.name,
    "monthly": MonthlyRotation.name,
    "full": FullSync.name,
}


@dataclass
class MirrorEngine:
    config: MirrorConfig
    catalog: RateLimitedCatalog
    store: DocumentStore
    state_store: StateStore
    notifier: Notifier
    rotation_cursor: RotationCursor
    checkpoint: Checkpoint
    manager: StrategyManager

    def close(self) -> None:
        self.manager.stop_all_strategies()
        self.catalog.listing_limiter.clear()
        self.catalog.character_limiter.clear()
        self.catalog.close()


def _build_notifier(config: MirrorConfig) -> Notifier:
    if config.notify.webhook_url:
        return WebhookNotifier(config.notify.webhook_url, timeout=config.notify.timeout_seconds)
    return LogNotifier()


def create_engine(
    config: Optional[MirrorConfig] = None,
    *,
    client: Optional[CatalogClient] = None,
    store: Optional[DocumentStore] = None,
    state_store: Optional[StateStore] = None,
    notifier: Optional[Notifier] = None,
    breaker: Optional[CircuitBreaker] = None,
) -> MirrorEngine:
    """Build a ready-to-use engine from configuration."""
    config = config or MirrorConfig()

    if client is None:
        client = BangumiClient(
            config.api.base_url,
            access_token=config.api.access_token,
            user_agent_string=config.api.user_agent,
            timeout=config.api.timeout_seconds,
            max_retries=config.api.max_retries,
        )
    catalog = RateLimitedCatalog(
        client,
        listing_limiter=RateLimiter(config.rate_limit.default_qps, name="listing"),
        character_limiter=RateLimiter(config.rate_limit.character_qps, name="character"),
    )
    store = store if store is not None else JsonFileDocumentStore(config.sync.data_dir)
    state_store = state_store if state_store is not None else FileStateStore(config.state.state_dir)
    notifier = notifier or _build_notifier(config)

    cursor = RotationCursor(state_store, config.state.rotation_state_key)
    checkpoint = Checkpoint(
        state_store,
        config.state.checkpoint_state_key,
        ttl_seconds=config.state.checkpoint_ttl_seconds,
    )
    policy = CooldownPolicy(config.cooldown.monthly_min, config.cooldown.monthly_max)
    sync_service = SubjectSyncService(
        catalog, store, default_cooldown_days=config.cooldown.daily
    )
    common = dict(
        sync_service=sync_service,
        subject_type=config.sync.subject_type,
        batch_size=config.sync.batch_size,
    )

    manager = StrategyManager()
    manager.register_strategy(
        DailyIncremental(
            catalog,
            store,
            cooldown_days=config.cooldown.daily,
            buffer=config.sync.incremental_buffer,
            **common,
        )
    )
    manager.register_strategy(
        YearlyUpdate(catalog, store, cooldown_days=config.cooldown.daily, **common)
    )
    manager.register_strategy(
        BiweeklyUpdate(catalog, store, cooldown_days=config.cooldown.biweekly, **common)
    )
    manager.register_strategy(
        MonthlyRotation(
            catalog,
            store,
            cursor=cursor,
            cooldown_days=config.cooldown.monthly,
            cooldown_policy=policy,
            **common,
        )
    )
    manager.register_strategy(
        FullSync(
            catalog,
            store,
            checkpoint=checkpoint,
            breaker=breaker
            or CircuitBreaker(
                config.circuit_breaker.failure_threshold,
                config.circuit_breaker.backoff_seconds,
            ),
            notifier=notifier,
            channel=config.notify.channel,
            cooldown_policy=policy,
            **common,
        )
    )
    logger.debug("Engine ready with strategies: %s", ", ".join(STRATEGY_ALIASES.values()))

    return MirrorEngine(
        config=config,
        catalog=catalog,
        store=store,
        state_store=state_store,
        notifier=notifier,
        rotation_cursor=cursor,
        checkpoint=checkpoint,
        manager=manager,
    )
