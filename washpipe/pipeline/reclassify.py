"""
Re-run the classifier over page text saved in run history.

Targets runs that kept their markdown but produced no verdict, typically
after a classifier outage or prompt change. Run rows are immutable, so the
set of candidate runs does not shrink as listings get verdicts and plain
offset paging walks it exactly once.
"""

from typing import Any, Dict, Optional

from washpipe.core.config import Config, get_config
from washpipe.core.error_logger import ErrorLogger, get_error_logger
from washpipe.core.error_models import ErrorComponent, ErrorSeverity, ErrorStage
from washpipe.core.event_logger import PipelineEventLogger, get_event_logger
from washpipe.core.event_models import PipelineStep
from washpipe.core.exceptions import ClassificationError
from washpipe.core.logging import get_logger
from washpipe.pipeline.state import CrawlStatus
from washpipe.pipeline.writer import PageResult, ResultWriter

logger = get_logger(__name__)


class SavedRunReclassifier:
    """
    Args:
        store: PipelineStore
        classifier: PageClassifier
        writer: ResultWriter (defaults to one backed by ``store``)
    """

    def __init__(
        self,
        store,
        classifier,
        writer: Optional[ResultWriter] = None,
        config: Optional[Config] = None,
        error_logger: Optional[ErrorLogger] = None,
        event_logger: Optional[PipelineEventLogger] = None,
    ):
        self.store = store
        self.classifier = classifier
        self.config = config or get_config()
        self.error_logger = error_logger or get_error_logger()
        self.event_logger = event_logger or get_event_logger()
        self.writer = writer or ResultWriter(store, self.config, self.error_logger)

    def reclassify_saved(self, offset: int = 0, page_size: int = 10) -> Dict[str, Any]:
        """
        Reclassify one page of saved runs.

        Returns:
            {"processed", "offset" (next offset), "done", "remaining_before"}
        """
        total = self.store.count_runs(self.store.RECLASSIFY_FILTERS)
        runs = self.store.saved_runs_for_reclassify(offset, page_size)

        processed = 0
        for run in runs:
            listing = self.store.get_listing(run["listing_id"])
            if listing is None or listing.is_touchless is not None:
                continue

            try:
                classification = self.classifier.classify(run.get("raw_markdown") or "")
            except ClassificationError as e:
                self.error_logger.log_exception(
                    e,
                    component=ErrorComponent.LLM,
                    stage=ErrorStage.RECLASSIFY,
                    listing_id=listing.id,
                    severity=ErrorSeverity.WARNING,
                    metadata={"run_id": run.get("id")},
                )
                continue

            # no markdown: the source run already holds the page text
            result = PageResult(
                CrawlStatus.CLASSIFIED.value,
                verdict=classification.verdict,
                evidence=classification.evidence,
                amenities=classification.amenities,
                description=classification.description,
            )
            if self.writer.write_listing(listing.id, result, batch_id=run.get("batch_id")):
                processed += 1

        next_offset = offset + len(runs)
        outcome = {
            "processed": processed,
            "offset": next_offset,
            "done": len(runs) < page_size or next_offset >= total,
            "remaining_before": max(total - offset, 0),
        }
        self.event_logger.log_step(PipelineStep.RECLASSIFIED, metadata=outcome)
        return outcome
