from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from engine.state import ValidationResult

SUBMITTED_STATUSES = {"Submitted", "In Review", "Approved"}

Rule = Callable[[Dict[str, Any], date], Optional[str]]

def _require_account(quote: Dict[str, Any], today: date) -> Optional[str]:
    if not quote.get("account_id"):
        return "Quote must be linked to an account"
    return None

def _require_line_items(quote: Dict[str, Any], today: date) -> Optional[str]:
    if not quote.get("line_items"):
        return "Missing line items"
    return None

def _require_positive_total(quote: Dict[str, Any], today: date) -> Optional[str]:
    total = quote.get("total_price")
    if total is None:
        return None
    try:
        if float(total) > 0:
            return None
    except (TypeError, ValueError):
        pass
    return "Quote total must be greater than zero"

def _require_not_expired(quote: Dict[str, Any], today: date) -> Optional[str]:
    expires = quote.get("expiration_date")
    if not expires:
        return None
    if isinstance(expires, str):
        try:
            expires = date.fromisoformat(expires[:10])
        except ValueError:
            return "Quote expiration date is invalid"
    elif isinstance(expires, datetime):
        expires = expires.date()
    elif not isinstance(expires, date):
        return "Quote expiration date is invalid"
    if expires < today:
        return "Quote has expired"
    return None

def _require_not_submitted(quote: Dict[str, Any], today: date) -> Optional[str]:
    if quote.get("status") in SUBMITTED_STATUSES:
        return "Quote has already been submitted for approval"
    return None

QUOTE_RULES: List[Rule] = [
    _require_account,
    _require_line_items,
    _require_positive_total,
    _require_not_expired,
    _require_not_submitted,
]

def validate_quote(quote: Dict[str, Any], today: Optional[date] = None, rules: Optional[List[Rule]] = None) -> ValidationResult:
    """
    Collect every blocking error for a quote.

    Errors reported by the CRM itself (``validation_errors``) come first and are
    kept verbatim, followed by the local rules in order. An empty result means
    the quote may be submitted for approval.
    """
    today = today or date.today()
    errors = [str(error) for error in quote.get("validation_errors") or []]

    for rule in QUOTE_RULES if rules is None else rules:
        error = rule(quote, today)
        if error:
            errors.append(error)

    return ValidationResult(errors=tuple(errors))
