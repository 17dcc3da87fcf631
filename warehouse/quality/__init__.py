"""
Data Quality Module
"""
from .validators import (
    DataQualityError,
    DataValidator,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    build_validator,
)
from .suite import QualitySuite

__all__ = [
    "DataQualityError",
    "DataValidator",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "build_validator",
    "QualitySuite",
]
