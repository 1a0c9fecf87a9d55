"""Deployment Rollout & Rollback Engine — Window Aggregation."""

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .models import DeploymentMetrics


@dataclass
class MetricsSummary:
    """Arithmetic means of a window of metric samples."""

    sample_count: int
    availability: float
    latency_p95: float
    latency_p99: float
    error_rate: float
    input_drift: float
    output_drift: float
    performance_drift: float
    request_count: int


def summarize_metrics(samples: Sequence[DeploymentMetrics]) -> MetricsSummary:
    """Average a window of samples.

    Drift values a sample does not carry count as zero.

    Raises:
        ValueError: if ``samples`` is empty.
    """
    if not samples:
        raise ValueError("No metrics to summarize")

    def mean(values) -> float:
        return float(np.mean(np.asarray(values, dtype=float)))

    return MetricsSummary(
        sample_count=len(samples),
        availability=mean([s.availability for s in samples]),
        latency_p95=mean([s.latency_p95 for s in samples]),
        latency_p99=mean([s.latency_p99 for s in samples]),
        error_rate=mean([s.error_rate for s in samples]),
        input_drift=mean([s.input_drift or 0.0 for s in samples]),
        output_drift=mean([s.output_drift or 0.0 for s in samples]),
        performance_drift=mean([s.performance_drift or 0.0 for s in samples]),
        request_count=int(sum(s.request_count for s in samples)),
    )
