"""Process-wide pipeline clients, built once at startup and injected."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from app.config import Settings
from app.jobs.dispatcher import WorkQueue
from app.jobs.in_process_queue import InProcessQueue
from app.notifications import LoggingNotifier, Notifier
from app.pipeline.description import DescriptionHandler
from app.pipeline.enrichment import EnrichmentHandler
from app.pipeline.intake import IntakeHandler
from app.pipeline.worker import StageWorker
from app.providers.description import (
    DescriptionProvider,
    OpenAIDescriptionProvider,
    TemplateDescriptionProvider,
)
from app.providers.weather import OpenWeatherProvider, WeatherProvider
from app.storage.record_store import InMemoryRecordStore, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class PipelineServices:
    settings: Settings
    store: RecordStore
    intake_queue: WorkQueue
    description_queue: WorkQueue
    notifier: Notifier
    intake: IntakeHandler
    enrichment: EnrichmentHandler
    description: DescriptionHandler
    enrichment_worker: StageWorker
    description_worker: StageWorker
    http: Optional[httpx.AsyncClient] = None
    _owns_http: bool = field(default=False, repr=False)

    @property
    def workers(self) -> List[StageWorker]:
        return [self.enrichment_worker, self.description_worker]

    async def start(self) -> None:
        for worker in self.workers:
            await worker.start()
            logger.info("Started %s", worker.name)

    async def stop(self) -> None:
        for worker in self.workers:
            await worker.stop()
        await self.intake_queue.close()
        await self.description_queue.close()
        if self.http is not None and self._owns_http:
            await self.http.aclose()

    async def run_pending(self) -> int:
        """Drive both stages until their queues have nothing visible."""
        total = 0
        while True:
            handled = await self.enrichment_worker.drain() + await self.description_worker.drain()
            if not handled:
                return total
            total += handled


def build_record_store(settings: Settings) -> RecordStore:
    if settings.record_store_backend == "supabase":
        from app.storage.supabase_store import SupabaseRecordStore

        return SupabaseRecordStore(settings.table_name)
    if settings.record_store_backend != "memory":
        raise ValueError(f"Unknown record store backend: {settings.record_store_backend}")
    return InMemoryRecordStore()


def build_description_provider(settings: Settings, http: httpx.AsyncClient) -> DescriptionProvider:
    if settings.description_provider == "template":
        return TemplateDescriptionProvider()
    return OpenAIDescriptionProvider(
        http,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.openai_model,
    )


def build_services(
    settings: Settings,
    store: Optional[RecordStore] = None,
    notifier: Optional[Notifier] = None,
    http: Optional[httpx.AsyncClient] = None,
    weather: Optional[WeatherProvider] = None,
    describer: Optional[DescriptionProvider] = None,
) -> PipelineServices:
    """Construct every client once. Any argument overrides the default."""
    owns_http = http is None
    if http is None:
        http = httpx.AsyncClient(timeout=settings.provider_timeout_seconds)

    store = store or build_record_store(settings)
    notifier = notifier or LoggingNotifier(settings.notification_topic)
    intake_queue = InProcessQueue(settings.intake_queue_url, max_receive_count=settings.max_receive_count)
    description_queue = InProcessQueue(
        settings.description_queue_url, max_receive_count=settings.max_receive_count
    )
    weather = weather or OpenWeatherProvider(
        http, api_key=settings.openweather_api_key, base_url=settings.openweather_base_url
    )
    describer = describer or build_description_provider(settings, http)

    stage_kwargs = dict(
        store=store,
        notifier=notifier,
        retry_business_failures=settings.retry_business_failures,
        strict_transitions=settings.strict_transitions,
        max_receive_count=settings.max_receive_count,
    )
    enrichment = EnrichmentHandler(weather=weather, next_queue=description_queue, **stage_kwargs)
    description = DescriptionHandler(describer=describer, **stage_kwargs)

    def worker(queue: WorkQueue, handler, budget: float) -> StageWorker:
        return StageWorker(
            queue,
            handler,
            budget_seconds=budget,
            lease_seconds=settings.visibility_timeout_seconds,
            poll_interval=settings.worker_poll_interval_seconds,
        )

    return PipelineServices(
        settings=settings,
        store=store,
        intake_queue=intake_queue,
        description_queue=description_queue,
        notifier=notifier,
        intake=IntakeHandler(store, intake_queue, notifier),
        enrichment=enrichment,
        description=description,
        enrichment_worker=worker(intake_queue, enrichment, settings.enrichment_budget_seconds),
        description_worker=worker(description_queue, description, settings.description_budget_seconds),
        http=http,
        _owns_http=owns_http,
    )
