"""
Two-Stage Input Validation

DESIGN DECISION: Validation happens in two distinct stages, before any
entity is constructed or mutated:

STAGE 1 - SCHEMA VALIDATION:
- Required text present, non-blank and within its length limit
- Budget month and year are whole numbers in range
- Amounts parse as finite numbers and are greater than zero
- Dates present and parseable
- Any failure here is an error and blocks the operation

STAGE 2 - SEMANTIC VALIDATION:
- Future-dated transactions
- Absurdly large amounts
- Income filed under an expense category (and vice versa)
- Goal deadlines already in the past
- These are warnings only; the user may still proceed

IMPORTANT: Validation NEVER silently fixes issues. A bad amount is
rejected, never coerced to zero, so no NaN or zero can leak into totals.
"""

import math
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from finance_tracker.config import AppSettings, get_settings
from finance_tracker.models.ledger import (
    CATEGORY_MAX_LENGTH,
    MIN_BUDGET_YEAR,
    TEXT_MAX_LENGTH,
    BudgetDraft,
    GoalDraft,
    TransactionDraft,
    TransactionKind,
)
from finance_tracker.models.validation import ValidationIssue, ValidationResult


class ValidationError(Exception):
    """
    Malformed or out-of-range user input.

    Carries the individual issues so the caller can show them.
    """

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        super().__init__(message)
        self.issues = issues or []

    @classmethod
    def from_result(cls, result: ValidationResult) -> "ValidationError":
        errors = [issue for issue in result.issues if issue.severity == "error"]
        message = "; ".join(issue.message for issue in errors) or "Invalid input"
        return cls(message, issues=errors)


def parse_amount(value: Any, field: str = "amount") -> tuple[Optional[Decimal], list[ValidationIssue]]:
    """
    Parse a user-supplied amount.

    Accepts Decimal, int, float or numeric text. Booleans, NaN,
    infinities and non-positive values are rejected.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, [ValidationIssue(
            field=field,
            issue_type="missing",
            message="Amount is required",
            severity="error",
            suggested_fix="Enter an amount greater than zero",
        )]

    if isinstance(value, bool):
        return None, [ValidationIssue(
            field=field,
            issue_type="invalid_format",
            message="Amount must be a number",
            severity="error",
        )]

    try:
        if isinstance(value, float):
            if not math.isfinite(value):
                raise InvalidOperation
            amount = Decimal(str(value))
        else:
            amount = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None, [ValidationIssue(
            field=field,
            issue_type="invalid_format",
            message=f"Amount '{value}' is not a valid number",
            severity="error",
            suggested_fix="Use digits and an optional decimal point, e.g. 12.50",
        )]

    if not amount.is_finite():
        return None, [ValidationIssue(
            field=field,
            issue_type="invalid_format",
            message="Amount must be a finite number",
            severity="error",
        )]

    if amount <= 0:
        return None, [ValidationIssue(
            field=field,
            issue_type="invalid_value",
            message="Amount must be greater than zero",
            severity="error",
        )]

    return amount, []


def parse_date(value: Any, field: str = "date") -> tuple[Optional[date], list[ValidationIssue]]:
    """Parse a calendar date from a date, datetime or ISO 'YYYY-MM-DD' string."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, [ValidationIssue(
            field=field,
            issue_type="missing",
            message=f"{field.replace('_', ' ').capitalize()} is required",
            severity="error",
        )]

    if isinstance(value, datetime):
        return value.date(), []
    if isinstance(value, date):
        return value, []

    try:
        return date.fromisoformat(str(value).strip()), []
    except ValueError:
        return None, [ValidationIssue(
            field=field,
            issue_type="invalid_format",
            message=f"'{value}' is not a valid date",
            severity="error",
            suggested_fix="Use the YYYY-MM-DD format",
        )]


def _require_text(
    value: Any,
    field: str,
    label: str,
    max_length: int = TEXT_MAX_LENGTH,
) -> tuple[Optional[str], list[ValidationIssue]]:
    if value is None or not str(value).strip():
        return None, [ValidationIssue(
            field=field,
            issue_type="missing",
            message=f"{label} is required",
            severity="error",
        )]
    text = str(value).strip()
    if len(text) > max_length:
        return None, [ValidationIssue(
            field=field,
            issue_type="invalid_value",
            message=f"{label} must be at most {max_length} characters",
            severity="error",
            suggested_fix=f"Shorten it by {len(text) - max_length} characters",
        )]
    return text, []


def _require_int(
    value: Any,
    field: str,
    label: str,
    minimum: int,
    maximum: Optional[int] = None,
) -> list[ValidationIssue]:
    if isinstance(value, bool) or not isinstance(value, int):
        return [ValidationIssue(
            field=field,
            issue_type="invalid_format",
            message=f"{label} must be a whole number, got {value!r}",
            severity="error",
        )]
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        return [ValidationIssue(
            field=field,
            issue_type="invalid_value",
            message=f"{label} must be {bounds}, got {value}",
            severity="error",
        )]
    return []


class EntryValidator:
    """
    Validates user input for transactions, budgets, goals and contributions.

    validate_* methods report; build_* methods raise ValidationError
    on any error-level issue and otherwise return a draft ready for a store.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _check_transaction(
        self,
        description: Any,
        amount: Any,
        kind: Any,
        category: Any,
        on_date: Any,
        today: date,
    ) -> tuple[ValidationResult, Optional[TransactionDraft]]:
        issues = []

        text, found = _require_text(description, "description", "Description")
        issues.extend(found)
        parsed_amount, found = parse_amount(amount)
        issues.extend(found)
        label, found = _require_text(category, "category", "Category", CATEGORY_MAX_LENGTH)
        issues.extend(found)
        parsed_date, found = parse_date(on_date)
        issues.extend(found)

        parsed_kind = None
        try:
            parsed_kind = TransactionKind(kind)
        except ValueError:
            issues.append(ValidationIssue(
                field="kind",
                issue_type="invalid_value",
                message=f"Transaction type must be 'income' or 'expense', got '{kind}'",
                severity="error",
            ))

        schema_valid = not any(issue.severity == "error" for issue in issues)

        semantic_valid = False
        if schema_valid:
            semantic_issues = self._semantic_amount(parsed_amount)
            max_future = today + timedelta(days=self._settings.future_date_tolerance_days)
            if parsed_date > max_future:
                semantic_issues.append(ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message=f"Date ({parsed_date}) is in the future",
                    severity="warning",
                    suggested_fix="Please verify the date is correct",
                ))

            income_category = self._settings.income_category
            if parsed_kind == TransactionKind.INCOME and label != income_category:
                semantic_issues.append(ValidationIssue(
                    field="category",
                    issue_type="inconsistent",
                    message=f"Income is usually filed under '{income_category}', not '{label}'",
                    severity="warning",
                ))
            elif parsed_kind == TransactionKind.EXPENSE and label == income_category:
                semantic_issues.append(ValidationIssue(
                    field="category",
                    issue_type="inconsistent",
                    message=f"Expense filed under the '{income_category}' category",
                    severity="warning",
                    suggested_fix="Pick a spending category so budgets can track it",
                ))
            issues.extend(semantic_issues)
            semantic_valid = not any(issue.severity == "error" for issue in semantic_issues)

        result = self._result("transaction", schema_valid, semantic_valid, issues)
        draft = None
        if result.is_valid:
            draft = TransactionDraft(
                description=text,
                amount=parsed_amount,
                kind=parsed_kind,
                category=label,
                date=parsed_date,
            )
        return result, draft

    def validate_transaction(
        self,
        description: Any,
        amount: Any,
        kind: Any,
        category: Any,
        on_date: Any,
        today: Optional[date] = None,
    ) -> ValidationResult:
        result, _ = self._check_transaction(
            description, amount, kind, category, on_date, today or date.today()
        )
        return result

    def build_transaction(
        self,
        description: Any,
        amount: Any,
        kind: Any,
        category: Any,
        on_date: Any,
        today: Optional[date] = None,
    ) -> TransactionDraft:
        result, draft = self._check_transaction(
            description, amount, kind, category, on_date, today or date.today()
        )
        if draft is None:
            raise ValidationError.from_result(result)
        return draft

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    def _check_budget(
        self,
        category: Any,
        limit: Any,
        month: Any,
        year: Any,
    ) -> tuple[ValidationResult, Optional[BudgetDraft]]:
        issues = []

        label, found = _require_text(category, "category", "Category", CATEGORY_MAX_LENGTH)
        issues.extend(found)
        parsed_limit, found = parse_amount(limit, field="limit")
        issues.extend(found)
        issues.extend(_require_int(month, "month", "Month", 1, 12))
        issues.extend(_require_int(year, "year", "Year", MIN_BUDGET_YEAR))

        schema_valid = not any(issue.severity == "error" for issue in issues)
        semantic_valid = False
        if schema_valid:
            semantic_issues = self._semantic_amount(parsed_limit, field="limit")
            issues.extend(semantic_issues)
            semantic_valid = True

        result = self._result("budget", schema_valid, semantic_valid, issues)
        draft = None
        if result.is_valid:
            draft = BudgetDraft(category=label, limit=parsed_limit, month=month, year=year)
        return result, draft

    def validate_budget(self, category: Any, limit: Any, month: Any, year: Any) -> ValidationResult:
        result, _ = self._check_budget(category, limit, month, year)
        return result

    def build_budget(self, category: Any, limit: Any, month: Any, year: Any) -> BudgetDraft:
        result, draft = self._check_budget(category, limit, month, year)
        if draft is None:
            raise ValidationError.from_result(result)
        return draft

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    def _check_goal(
        self,
        name: Any,
        target_amount: Any,
        deadline: Any,
        today: date,
    ) -> tuple[ValidationResult, Optional[GoalDraft]]:
        issues = []

        text, found = _require_text(name, "name", "Goal name")
        issues.extend(found)
        parsed_target, found = parse_amount(target_amount, field="target_amount")
        issues.extend(found)
        parsed_deadline, found = parse_date(deadline, field="deadline")
        issues.extend(found)

        schema_valid = not any(issue.severity == "error" for issue in issues)
        semantic_valid = False
        if schema_valid:
            semantic_issues = self._semantic_amount(parsed_target, field="target_amount")
            if parsed_deadline < today:
                semantic_issues.append(ValidationIssue(
                    field="deadline",
                    issue_type="past_date",
                    message=f"Deadline ({parsed_deadline}) has already passed",
                    severity="warning",
                    suggested_fix="Pick a deadline in the future",
                ))
            issues.extend(semantic_issues)
            semantic_valid = True

        result = self._result("goal", schema_valid, semantic_valid, issues)
        draft = None
        if result.is_valid:
            draft = GoalDraft(name=text, target_amount=parsed_target, deadline=parsed_deadline)
        return result, draft

    def validate_goal(
        self,
        name: Any,
        target_amount: Any,
        deadline: Any,
        today: Optional[date] = None,
    ) -> ValidationResult:
        result, _ = self._check_goal(name, target_amount, deadline, today or date.today())
        return result

    def build_goal(
        self,
        name: Any,
        target_amount: Any,
        deadline: Any,
        today: Optional[date] = None,
    ) -> GoalDraft:
        result, draft = self._check_goal(name, target_amount, deadline, today or date.today())
        if draft is None:
            raise ValidationError.from_result(result)
        return draft

    # ------------------------------------------------------------------
    # Contributions
    # ------------------------------------------------------------------

    def validate_contribution(self, amount: Any) -> ValidationResult:
        _, issues = parse_amount(amount)
        schema_valid = not issues
        return self._result("contribution", schema_valid, schema_valid, issues)

    def build_contribution(self, amount: Any) -> Decimal:
        parsed, issues = parse_amount(amount)
        if parsed is None:
            raise ValidationError("; ".join(issue.message for issue in issues), issues=issues)
        return parsed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _semantic_amount(self, amount: Decimal, field: str = "amount") -> list[ValidationIssue]:
        issues = []
        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if amount > max_amount:
            issues.append(ValidationIssue(
                field=field,
                issue_type="suspicious_value",
                message=f"Amount ({self._settings.format_amount(amount)}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))
        return issues

    @staticmethod
    def _result(
        entity_type: str,
        schema_valid: bool,
        semantic_valid: bool,
        issues: list[ValidationIssue],
    ) -> ValidationResult:
        warnings = [issue.message for issue in issues if issue.severity == "warning"]
        return ValidationResult(
            entity_type=entity_type,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what the UI shows next to the form.
        """
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        if not result.schema_valid:
            lines.append("Some fields need attention:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     Tip: {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please double-check:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
