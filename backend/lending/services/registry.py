from typing import Optional

from lending.services import rules
from lending.services.coordinator import ConsistencyCoordinator
from lending.services.record_pipeline import RecordPipeline


def build_pipeline(coordinator: Optional[ConsistencyCoordinator] = None) -> RecordPipeline:
    """
    Pipeline with the record rules and the item-status coordinator wired in.
    Rules go first so a forbidden transition is reported as such and not as
    an availability conflict.
    """
    pipeline = RecordPipeline()
    rules.register(pipeline)
    (coordinator or ConsistencyCoordinator()).register(pipeline)
    return pipeline


pipeline = build_pipeline()


def get_pipeline() -> RecordPipeline:
    return pipeline
