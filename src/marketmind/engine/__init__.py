"""Memory maintenance engine: consolidation and compression."""

from marketmind.engine.compression import CompressionRunResult
from marketmind.engine.compression import Compressor
from marketmind.engine.concepts import concept_similarity
from marketmind.engine.consolidation import ConsolidationRunResult
from marketmind.engine.consolidation import Consolidator

__all__ = [
    "CompressionRunResult",
    "Compressor",
    "ConsolidationRunResult",
    "Consolidator",
    "concept_similarity",
]
