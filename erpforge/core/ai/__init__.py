"""AI collaborators: LLM gateway, HTTP client and the oracle built on them.

Nothing in the store depends on this package. The reconciler and the API
layer receive an oracle by constructor.
"""

from erpforge.core.ai.gateway import AIGatewayService
from erpforge.core.ai.models import (
    MIN_MATCH_CONFIDENCE,
    AIGatewayNotConfiguredError,
    AIOracleError,
    AIOutputValidationError,
    ColumnMatch,
    ExtractionResult,
    LLMResponse,
    SchemaModification,
    TargetField,
)
from erpforge.core.ai.oracle import AIOracle, targets_from_schema

__all__ = [
    "AIGatewayService",
    "AIOracle",
    "LLMResponse",
    "MIN_MATCH_CONFIDENCE",
    "AIGatewayNotConfiguredError",
    "AIOracleError",
    "AIOutputValidationError",
    "ColumnMatch",
    "ExtractionResult",
    "SchemaModification",
    "TargetField",
    "targets_from_schema",
]
