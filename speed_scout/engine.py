# File: speed_scout/engine.py
"""speed_scout.engine: запуск пакетного анализа и публикация отчётов для CLI и тестов."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from speed_scout.config import ScoutConfig
from speed_scout.events import EventRecorder, EventSink, FanOutSink
from speed_scout.gateway.models import AnalysisGateway
from speed_scout.gateway.pagespeed import PageSpeedGateway
from speed_scout.logger import logger
from speed_scout.registry import PageRegistry, PageStatus
from speed_scout.scheduler import AnalysisSettings, BatchScheduler
from speed_scout.share_client import ShareClient
from speed_scout.utils import is_valid_url, remove_duplicates

__all__ = ["start_analysis", "publish_share", "results_of"]


async def start_analysis(
    cfg: ScoutConfig,
    urls: Iterable[str],
    *,
    events: Optional[EventSink] = None,
    gateway: Optional[AnalysisGateway] = None,
    registry: Optional[PageRegistry] = None,
) -> PageRegistry:
    """
    Анализирует список URL и возвращает реестр страниц с результатами.

    Parameters
    ----------
    cfg : ScoutConfig
        Конфигурация; наличие api_key включает Pro-режим.
    urls : Iterable[str]
        URL для анализа; дубликаты и некорректные URL отбрасываются.
    events : EventSink, optional
        Получатель событий пакета (прогресс, завершение).
    gateway : AnalysisGateway, optional
        Подмена шлюза анализа (для тестов).
    registry : PageRegistry, optional
        Существующий реестр; уже проанализированные URL сбрасываются в pending.
    """
    recorder = EventRecorder()
    sink = FanOutSink(recorder, events) if events is not None else recorder
    registry = registry if registry is not None else PageRegistry(sink)

    targets = []
    for url in remove_duplicates(list(urls)):
        if not is_valid_url(url):
            logger.warning("Skipping invalid URL: %s", url)
            continue
        if url not in registry:
            registry.add(url)
        elif registry.get(url).status is not PageStatus.PENDING:
            registry.update_status(url, PageStatus.PENDING, clear_reports=True)
        targets.append(url)

    if not targets:
        logger.warning("No valid URLs to analyze")
        return registry

    settings = AnalysisSettings(api_key=cfg.api_key)
    if gateway is not None:
        await BatchScheduler(registry, gateway, sink, launch_interval=cfg.launch_interval).start(settings, targets)
    else:
        async with PageSpeedGateway(cfg) as gw:
            await BatchScheduler(registry, gw, sink, launch_interval=cfg.launch_interval).start(settings, targets)

    stats = registry.statistics()
    logger.info("Analysis finished: %d ok, %d failed", stats["completed"], stats["failed"])
    return registry


async def publish_share(cfg: ScoutConfig, registry: PageRegistry, client: ShareClient) -> Dict[str, Any]:
    """Загружает отчёты успешных страниц и создаёт ссылку шаринга."""
    return await client.share_registry(registry, {"proMode": cfg.pro_mode})


def results_of(registry: PageRegistry) -> Dict[str, Dict[str, Any]]:
    """Сводка ``{url: {status, error, reports}}`` для вывода в JSON."""
    return {
        page.url: {"status": page.status.value, "error": page.error, "reports": page.reports}
        for page in registry.get_all()
    }
