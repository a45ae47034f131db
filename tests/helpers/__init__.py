from .fakes import FakeClock, FakeExtractor, RecordingSleep, always, fail_then
from .metric_delta import histogram_observes, metric_delta, metric_increases

__all__ = [
    "FakeClock",
    "FakeExtractor",
    "RecordingSleep",
    "always",
    "fail_then",
    "histogram_observes",
    "metric_delta",
    "metric_increases",
]
