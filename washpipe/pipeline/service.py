"""
Wires the pipeline components together from configuration.

The API holds one ``PipelineService``; tests build one from fakes.
"""

from typing import Optional

from washpipe.core.config import Config, get_config
from washpipe.core.error_logger import ErrorLogger, get_error_logger
from washpipe.core.event_logger import PipelineEventLogger, get_event_logger
from washpipe.db.store import PipelineStore
from washpipe.pipeline.cancel import BatchCanceller
from washpipe.pipeline.kicker import HttpKicker
from washpipe.pipeline.poller import ResultPoller
from washpipe.pipeline.reclassify import SavedRunReclassifier
from washpipe.pipeline.status import StatusReporter
from washpipe.pipeline.submitter import BatchSubmitter
from washpipe.pipeline.watchdog import Watchdog
from washpipe.pipeline.writer import ResultWriter


class PipelineService:
    """
    Args:
        store: PipelineStore
        provider: Crawl provider client
        classifier: PageClassifier
        kicker: HttpKicker (default built from config)
    """

    def __init__(
        self,
        store: PipelineStore,
        provider,
        classifier,
        kicker=None,
        config: Optional[Config] = None,
        error_logger: Optional[ErrorLogger] = None,
        event_logger: Optional[PipelineEventLogger] = None,
    ):
        self.config = config or get_config()
        self.store = store
        self.provider = provider
        self.classifier = classifier
        self.error_logger = error_logger or get_error_logger()
        self.event_logger = event_logger or get_event_logger()
        self.kicker = kicker or HttpKicker(self.config, self.error_logger)

        self.writer = ResultWriter(store, self.config, self.error_logger)
        self.submitter = BatchSubmitter(store, provider, self.config, self.error_logger, self.event_logger)
        self.poller = ResultPoller(
            store, provider, classifier, self.writer, self.config, self.error_logger, self.event_logger
        )
        self.watchdog = Watchdog(
            store, self.kicker, self.config, error_logger=self.error_logger, event_logger=self.event_logger
        )
        self.reporter = StatusReporter(store, provider, self.error_logger)
        self.reclassifier = SavedRunReclassifier(
            store, classifier, self.writer, self.config, self.error_logger, self.event_logger
        )
        self.canceller = BatchCanceller(store, provider, self.error_logger, self.event_logger)

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "PipelineService":
        """Build the production wiring: Supabase, Firecrawl and Gemini."""
        from washpipe.crawl.firecrawl_client import FirecrawlClient
        from washpipe.db.supabase_client import get_supabase
        from washpipe.llm.classifier import PageClassifier

        config = config or get_config()
        store = PipelineStore(get_supabase(), config)
        return cls(
            store=store,
            provider=FirecrawlClient.from_config(config),
            classifier=PageClassifier.from_config(config),
            config=config,
        )
