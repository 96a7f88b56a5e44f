"""Self-correction of spec documents after task failures."""

from .analyzer import CLASSIFICATION_RULES, ClassificationRule, ErrorAnalyzer
from .applier import CorrectionApplier, structure_error
from .generator import CorrectionGenerator, NoteCorrectionGenerator
from .loop import RalphLoop
from .models import (
    AnalysisContext,
    ApplyResult,
    CorrectionPlan,
    ErrorAnalysis,
    ErrorType,
    RalphLoopResult,
    RetryPhase,
    RetryState,
    TargetFile,
)

__all__ = [
    # Loop
    "RalphLoop",
    "RalphLoopResult",
    "RetryPhase",
    "RetryState",
    # Analysis
    "ErrorAnalyzer",
    "ClassificationRule",
    "CLASSIFICATION_RULES",
    "ErrorAnalysis",
    "AnalysisContext",
    "ErrorType",
    "TargetFile",
    # Correction
    "CorrectionGenerator",
    "NoteCorrectionGenerator",
    "CorrectionApplier",
    "CorrectionPlan",
    "ApplyResult",
    "structure_error",
]
