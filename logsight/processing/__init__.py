"""Log processing stages: decode, parse, filter, slim, classify, build context, dispatch."""

from logsight.processing.analytics import AnalyticsEnhancer
from logsight.processing.classifier import ErrorClassifier, RelevanceScorer
from logsight.processing.context_builder import ContextBuilder
from logsight.processing.decoder import LogDecoder
from logsight.processing.dispatcher import AnalysisDispatcher, DispatcherConfig, DispatchResult
from logsight.processing.level_filter import LevelFilter, filter_by_level
from logsight.processing.parser import LogParser
from logsight.processing.slimmer import LogSlimmer

__all__ = [
    "AnalysisDispatcher",
    "AnalyticsEnhancer",
    "ContextBuilder",
    "DispatchResult",
    "DispatcherConfig",
    "ErrorClassifier",
    "LevelFilter",
    "LogDecoder",
    "LogParser",
    "LogSlimmer",
    "RelevanceScorer",
    "filter_by_level",
]
