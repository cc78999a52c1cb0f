"""Arithmetic reconciliation of parsed receipts.

Cross-checks the sum of items and discounts against the declared
subtotal and, with tax added, against the declared total. A mismatch
beyond the relative tolerance is never fatal; it is reported so the
receipt can be routed to review.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from receipt_scanner.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ValidationResult:
    """Result of a single reconciliation check."""

    field_name: str
    is_valid: bool
    message: str
    rule_name: str


@dataclass(frozen=True)
class ValidationMismatch:
    """A declared amount that disagrees with the computed one."""

    field_name: str
    declared: Decimal
    calculated: Decimal
    tolerance: Decimal

    @property
    def delta(self) -> Decimal:
        return self.calculated - self.declared

    def describe(self) -> str:
        """Human-readable review reason."""
        return (
            f"{self.field_name.capitalize()} mismatch: calculated "
            f"{self.calculated} vs declared {self.declared} "
            f"(delta {self.delta:+}, allowed {self.tolerance})"
        )


@dataclass
class ValidationReport:
    """Aggregated reconciliation report for a receipt."""

    all_valid: bool
    results: list[ValidationResult]
    mismatches: list[ValidationMismatch] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class Reconciler:
    """Checks receipt arithmetic within a relative tolerance.

    Args:
        tolerance: Allowed relative difference, e.g. ``0.01`` for 1%.
    """

    def __init__(self, tolerance: float = 0.01) -> None:
        self.tolerance = Decimal(str(tolerance))

    def _check(
        self, field_name: str, declared: Decimal, calculated: Decimal
    ) -> tuple[ValidationResult, ValidationMismatch | None]:
        allowed = (abs(declared) * self.tolerance).quantize(Decimal("0.01"))
        delta = calculated - declared
        if abs(delta) > abs(declared) * self.tolerance:
            mismatch = ValidationMismatch(field_name, declared, calculated, allowed)
            return (
                ValidationResult(
                    field_name=field_name,
                    is_valid=False,
                    message=mismatch.describe(),
                    rule_name="reconciliation",
                ),
                mismatch,
            )
        return (
            ValidationResult(
                field_name=field_name,
                is_valid=True,
                message=f"{field_name} within tolerance (delta {delta:+})",
                rule_name="reconciliation",
            ),
            None,
        )

    def reconcile(
        self,
        items_total: Decimal,
        discounts_total: Decimal,
        tax_total: Decimal | None,
        subtotal: Decimal | None,
        total: Decimal | None,
    ) -> ValidationReport:
        """Reconcile computed sums against declared subtotal and total.

        Each check runs only when its declared amount was found.

        Args:
            items_total: Sum of item totals.
            discounts_total: Sum of (negative) discounts.
            tax_total: Declared tax, treated as zero when missing.
            subtotal: Declared subtotal, if any.
            total: Declared grand total, if any.

        Returns:
            Report with per-check results and mismatches.
        """
        results: list[ValidationResult] = []
        mismatches: list[ValidationMismatch] = []
        warnings: list[str] = []
        net = items_total + discounts_total

        if total is not None:
            result, mismatch = self._check("total", total, net + (tax_total or 0))
            results.append(result)
            if mismatch:
                mismatches.append(mismatch)
        else:
            warnings.append("No total found; total check skipped")

        if subtotal is not None:
            result, mismatch = self._check("subtotal", subtotal, net)
            results.append(result)
            if mismatch:
                mismatches.append(mismatch)
        else:
            warnings.append("No subtotal found; subtotal check skipped")

        for m in mismatches:
            logger.warning("Reconciliation failed: %s", m.describe())

        return ValidationReport(
            all_valid=not mismatches,
            results=results,
            mismatches=mismatches,
            warnings=warnings,
        )
