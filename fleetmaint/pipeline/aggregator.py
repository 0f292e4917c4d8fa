import logging
from typing import Iterable, List, Optional
from fleetmaint.models.base_models import AggregatedResult, ExecutionResult, ModuleStatus, ResultTotals
from fleetmaint.models.errors import AggregationError


def sum_totals(results: Iterable[ExecutionResult]) -> ResultTotals:
    """Field-wise sum over execution results."""
    results = list(results)
    by_status = {status: 0 for status in ModuleStatus}
    for result in results:
        by_status[result.status] += 1
    return ResultTotals(
        modules=len(results),
        items_detected=sum(r.items_detected for r in results),
        items_processed=sum(r.items_processed for r in results),
        items_failed=sum(r.items_failed for r in results),
        duration_ms=round(sum(r.duration_ms for r in results), 3),
        by_status=by_status,
    )


class ResultAggregator:
    """Ordered, append-only collection of one session's ExecutionResults. Finalizes once."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self._results: List[ExecutionResult] = []
        self._finalized: Optional[AggregatedResult] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    def add(self, result: ExecutionResult):
        if self._finalized is not None:
            raise AggregationError(f"Session {self.session_id} is already finalized; cannot add {result.module_name}")
        if result.session_id != self.session_id:
            raise AggregationError(
                f"Result for {result.module_name} belongs to session {result.session_id}, not {self.session_id}"
            )
        self._results.append(result)
        self.logger.info(
            f"Recorded {result.module_name}: {result.status.value} "
            f"(detected={result.items_detected}, processed={result.items_processed}, failed={result.items_failed})"
        )

    def finalize(self) -> AggregatedResult:
        if self._finalized is not None:
            raise AggregationError(f"Session {self.session_id} was already finalized")
        self._finalized = AggregatedResult(
            session_id=self.session_id,
            results=list(self._results),
            totals=sum_totals(self._results),
        )
        self.logger.info(f"Aggregation finalized for session {self.session_id}: {len(self._results)} module results")
        return self._finalized

    @property
    def results(self) -> List[ExecutionResult]:
        return list(self._results)

    @property
    def is_finalized(self) -> bool:
        return self._finalized is not None
