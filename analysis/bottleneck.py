"""
Bottleneck Detector

Flags steps disproportionately responsible for total latency.
"""

import logging
from typing import List, Optional

from analysis.config import AnalysisConfig, DEFAULT_ANALYSIS_CONFIG
from schemas.analysis import AnalysisResult, StepAnalysis

logger = logging.getLogger(__name__)


class BottleneckDetector:
    """
    A step is a bottleneck if its share of total latency exceeds the threshold
    OR it is among the top-K slowest steps by average latency. The union catches
    both a dominant share of a short workflow and the clearly slowest step of a
    long one.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self._config = config or DEFAULT_ANALYSIS_CONFIG

    def annotate(self, steps: List[StepAnalysis]) -> List[StepAnalysis]:
        """
        Return copies of the records with is_bottleneck set,
        ordered by descending average latency.
        """
        # sorted() is stable: ties keep workflow order
        ranked = sorted(steps, key=lambda s: s.latency, reverse=True)
        top_ids = {
            s.step_id for s in ranked[: max(self._config.top_k, 0)]
            if s.latency > 0
        }

        annotated = []
        for step in ranked:
            flagged = (
                step.percentage_of_total > self._config.threshold_percent
                or step.step_id in top_ids
            )
            annotated.append(step.model_copy(update={"is_bottleneck": flagged}))
        return annotated

    def apply(self, result: AnalysisResult) -> AnalysisResult:
        """Annotate an aggregated result in place of its step breakdown."""
        annotated = self.annotate(result.step_analysis)
        flagged = [s.step_id for s in annotated if s.is_bottleneck]
        if flagged:
            logger.info(f"Bottlenecks in {result.workflow_id}: {flagged}")
        return result.model_copy(update={"step_analysis": annotated})
