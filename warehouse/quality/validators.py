"""
Data Validation Module

Rule-based data quality checks over Polars DataFrames, in the spirit of
Great Expectations and dbt tests.

Checks are registered with chained `add_*_check` builders and run together
by `validate()`. `build_validator()` turns the named tests declared in a
dataset definition into a validator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Fails the layer
    WARNING = "warning"  # Logged, run continues


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    @property
    def failures(self) -> List[ValidationCheck]:
        return [c for c in self.checks if not c.passed]


class DataQualityError(Exception):
    """Raised when error-severity checks fail and the run must stop"""

    def __init__(self, layer: str, results: Dict[str, ValidationResult]):
        self.layer = layer
        self.results = results
        failing = sorted(
            table for table, result in results.items()
            if result.status == ValidationStatus.FAILED
        )
        super().__init__(f"Data quality checks failed in {layer} layer for: {', '.join(failing)}")


CheckFunc = Callable[[pl.DataFrame], ValidationCheck]
ReferenceSource = Union[pl.DataFrame, Callable[[], pl.DataFrame]]


def _guard(
    df: pl.DataFrame,
    column: str,
    name: str,
    severity: ValidationSeverity,
) -> Optional[ValidationCheck]:
    """Result for a missing column or an empty table, None otherwise"""
    if column not in df.columns:
        return ValidationCheck(
            name=name,
            passed=False,
            severity=severity,
            message=f"Column '{column}' not found",
        )
    if df.is_empty():
        return ValidationCheck(
            name=name,
            passed=True,
            severity=severity,
            message="No rows to check",
        )
    return None


class DataValidator:
    """
    Data validator with a chainable check suite.

    Example:
        validator = DataValidator()
        validator.add_not_null_check("ArtistKey")
        validator.add_range_check("UnitPrice", min_value=0)
        result = validator.validate(df)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Warnings count as failures
        self._checks: List[CheckFunc] = []

    def __len__(self) -> int:
        return len(self._checks)

    def reset(self) -> None:
        """Reset validator state"""
        self._checks = []

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"not_null_{column}"
            guarded = _guard(df, column, name, severity)
            if guarded:
                return guarded

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of non-null column values"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"unique_{column}"
            guarded = _guard(df, column, name, severity)
            if guarded:
                return guarded

            values = df[column].drop_nulls()
            unique_count = values.n_unique()
            duplicate_count = len(values) - unique_count
            passed = duplicate_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {duplicate_count} duplicate values" if not passed else f"Column '{column}' values are unique",
                details={"unique_count": unique_count, "duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within an inclusive range"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"range_{column}"
            guarded = _guard(df, column, name, severity)
            if guarded:
                return guarded

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=name,
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = df.filter(combined).height
            passed = out_of_range == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_pattern_check(
        self,
        column: str,
        pattern: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add regex pattern check on non-null values"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"pattern_{column}"
            guarded = _guard(df, column, name, severity)
            if guarded:
                return guarded

            text = pl.col(column).cast(pl.Utf8)
            non_matching = df.filter(
                text.is_not_null() & ~text.str.contains(pattern)
            ).height
            total = df.filter(pl.col(column).is_not_null()).height
            passed = non_matching == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {non_matching} values not matching pattern" if not passed else "All values match pattern",
                details={"pattern": pattern, "non_matching_count": non_matching},
                failed_rows=non_matching,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values in allowed set"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"accepted_values_{column}"
            guarded = _guard(df, column, name, severity)
            if guarded:
                return guarded

            invalid_rows = df.filter(
                pl.col(column).is_not_null() & ~pl.col(column).is_in(allowed_values)
            )
            invalid = invalid_rows.height
            passed = invalid == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {invalid} invalid values" if not passed else "All values are valid",
                details={
                    "allowed_values": allowed_values,
                    "invalid_count": invalid,
                    "invalid_values": invalid_rows[column].unique().head(10).to_list(),
                },
                failed_rows=invalid,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_row_count_check(
        self,
        min_rows: int = 1,
        max_rows: Optional[int] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check on the number of rows in the table"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            total = len(df)
            passed = total >= min_rows and (max_rows is None or total <= max_rows)
            return ValidationCheck(
                name="row_count",
                passed=passed,
                severity=severity,
                message=f"Table has {total} rows, expected [{min_rows}, {max_rows}]" if not passed else f"Table has {total} rows",
                details={"min_rows": min_rows, "max_rows": max_rows},
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add custom validation check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
            except Exception as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check failed with error: {str(e)}",
                    total_rows=len(df),
                )
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference: ReferenceSource,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """
        Add referential integrity check.

        `reference` is a DataFrame or a callable returning one; callables
        are only invoked when the check runs.
        """
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"relationships_{column}"
            guarded = _guard(df, column, name, severity)
            if guarded:
                return guarded

            reference_df = reference() if callable(reference) else reference
            ref_values = reference_df[reference_column].drop_nulls().unique().to_list()

            keys = df.filter(pl.col(column).is_not_null())
            if ref_values:
                orphan_rows = keys.filter(~pl.col(column).is_in(ref_values))
            else:
                orphan_rows = keys
            orphans = orphan_rows.height
            passed = orphans == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {orphans} orphan records" if not passed else "Referential integrity maintained",
                details={
                    "orphan_count": orphans,
                    "reference_column": reference_column,
                    "orphan_values": orphan_rows[column].unique().head(10).to_list(),
                },
                failed_rows=orphans,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame, table: Optional[str] = None) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate
            table: Table name used in log context

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = []

        logger.info("Running validation checks", table=table, checks=len(self._checks), rows=len(df))

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    table=table,
                    message=result.message,
                    severity=result.severity.value,
                )

        completed_at = datetime.utcnow()

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        validation_result = ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=completed_at,
        )

        logger.info(
            f"Validation complete: {status.value}",
            table=table,
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return validation_result


# Declarative tests

ReferenceLoader = Callable[[str, str], pl.DataFrame]

_SEVERITIES = {
    "error": ValidationSeverity.ERROR,
    "warn": ValidationSeverity.WARNING,
    "warning": ValidationSeverity.WARNING,
}

# Scalar / list shorthand for each test's main parameter
_SHORTHAND = {
    "accepted_values": "values",
    "pattern": "regex",
    "min_rows": "value",
    "relationships": "to",
}


def parse_test(declaration: Union[str, Dict[str, Any]]) -> Tuple[str, Dict[str, Any]]:
    """
    Split a test declaration into its name and parameters.

    `"not_null"` -> ("not_null", {})
    `{"accepted_values": ["Y", "N"]}` -> ("accepted_values", {"values": ["Y", "N"]})
    """
    if isinstance(declaration, str):
        return declaration, {}

    if not isinstance(declaration, dict) or len(declaration) != 1:
        raise ValueError(f"Test must be a name or a single-key mapping, got: {declaration!r}")

    name, params = next(iter(declaration.items()))
    if params is None:
        return name, {}
    if not isinstance(params, dict):
        if name not in _SHORTHAND:
            raise ValueError(f"Test '{name}' takes a mapping of parameters")
        return name, {_SHORTHAND[name]: params}
    return name, dict(params)


def _severity(params: Dict[str, Any]) -> ValidationSeverity:
    value = str(params.pop("severity", "error")).lower()
    if value not in _SEVERITIES:
        raise ValueError(f"Unknown severity '{value}'. Expected one of: {sorted(_SEVERITIES)}")
    return _SEVERITIES[value]


def _add_column_test(
    validator: DataValidator,
    column: str,
    declaration: Union[str, Dict[str, Any]],
    reference_loader: Optional[ReferenceLoader],
) -> None:
    name, params = parse_test(declaration)
    severity = _severity(params)

    if name == "not_null":
        validator.add_not_null_check(column, severity=severity)
    elif name == "unique":
        validator.add_unique_check(column, severity=severity)
    elif name == "accepted_values":
        validator.add_enum_check(column, list(params["values"]), severity=severity)
    elif name == "accepted_range":
        validator.add_range_check(
            column,
            min_value=params.get("min_value"),
            max_value=params.get("max_value"),
            severity=severity,
        )
    elif name == "pattern":
        validator.add_pattern_check(column, params["regex"], severity=severity)
    elif name == "relationships":
        if reference_loader is None:
            raise ValueError(f"Test 'relationships' on '{column}' needs a reference loader")
        to_table = params["to"]
        to_field = params.get("field", column)
        validator.add_referential_integrity_check(
            column,
            lambda: reference_loader(to_table, to_field),
            to_field,
            severity=severity,
        )
    else:
        raise ValueError(f"Unknown column test '{name}' on '{column}'")


def _add_table_test(validator: DataValidator, declaration: Union[str, Dict[str, Any]]) -> None:
    name, params = parse_test(declaration)
    severity = _severity(params)

    if name == "min_rows":
        validator.add_row_count_check(
            min_rows=int(params.get("value", 1)),
            max_rows=params.get("max"),
            severity=severity,
        )
    else:
        raise ValueError(f"Unknown table test '{name}'")


def build_validator(
    columns: Sequence[Any],
    table_tests: Sequence[Union[str, Dict[str, Any]]] = (),
    reference_loader: Optional[ReferenceLoader] = None,
    strict_mode: bool = False,
) -> DataValidator:
    """
    Build a validator from declared tests.

    Args:
        columns: Objects with `name` and `tests` (clean columns or mart column tests)
        table_tests: Table-level tests such as `min_rows`
        reference_loader: `(table, column) -> DataFrame` used by `relationships`
        strict_mode: Treat warnings as failures

    Returns:
        DataValidator with one check per declared test
    """
    validator = DataValidator(strict_mode=strict_mode)
    for declaration in table_tests:
        _add_table_test(validator, declaration)
    for column in columns:
        for declaration in column.tests:
            _add_column_test(validator, column.name, declaration, reference_loader)
    return validator
