"""
Metrics and observability for insight runs.
"""

from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)


class AnalysisMetrics:
    """Track metrics for categorization and insight operations."""

    def __init__(self):
        self.total_requests = 0
        self.successful_runs = 0
        self.failed_runs = 0
        self.transactions_processed = 0
        self.anomalies_detected = 0
        self.total_processing_time = 0.0
        self.operations: Dict[str, int] = {}

    def record_run(
        self,
        operation: str,
        transactions_count: int,
        processing_time: float,
        anomalies_count: int = 0,
        success: bool = True,
    ):
        """Record one engine run."""
        self.total_requests += 1
        self.total_processing_time += processing_time
        self.operations[operation] = self.operations.get(operation, 0) + 1

        if success:
            self.successful_runs += 1
            self.transactions_processed += transactions_count
            self.anomalies_detected += anomalies_count
        else:
            self.failed_runs += 1

        logger.info(
            f"Metrics: operation={operation}, requests={self.total_requests}, "
            f"success={self.successful_runs}, "
            f"failures={self.failed_runs}, "
            f"anomalies={self.anomalies_detected}, "
            f"avg_time={self.get_average_processing_time():.4f}s"
        )

    def get_average_processing_time(self) -> float:
        """Get average processing time in seconds."""
        if self.total_requests == 0:
            return 0.0
        return self.total_processing_time / self.total_requests

    def get_stats(self) -> Dict[str, Any]:
        """Get current statistics."""
        return {
            'total_requests': self.total_requests,
            'successful_runs': self.successful_runs,
            'failed_runs': self.failed_runs,
            'transactions_processed': self.transactions_processed,
            'anomalies_detected': self.anomalies_detected,
            'operations': dict(self.operations),
            'average_processing_time_seconds': self.get_average_processing_time(),
            'success_rate': (
                self.successful_runs / self.total_requests
                if self.total_requests > 0 else 0.0
            )
        }

    def reset(self):
        self.__init__()


# Global metrics instance
metrics = AnalysisMetrics()
