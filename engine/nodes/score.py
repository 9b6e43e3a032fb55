from typing import List, Tuple
from engine.state import AccountRecord, AccountState
from loguru import logger

SCORE_RULES = {
    "name": 15,
    "long_name": 25,          # replaces "name" when the name is longer than LONG_NAME_LENGTH
    "industry": 20,
    "phone": 15,
    "website": 20,
    "complete_profile": 20,   # stacks with the per-field points
}
LONG_NAME_LENGTH = 10
MAX_SCORE = 100

BADGE_THRESHOLDS = [(80, "success"), (60, "warning")]

def _present(value) -> bool:
    return value is not None and value != ""

def score_components(record: AccountRecord) -> List[Tuple[str, int]]:
    """Return the (reason, points) pairs that fired for this record, in rule order."""
    components = []

    # Longer names signal a more specific record
    if _present(record.name):
        if len(record.name) > LONG_NAME_LENGTH:
            components.append(("Descriptive name", SCORE_RULES["long_name"]))
        else:
            components.append(("Name provided", SCORE_RULES["name"]))

    if _present(record.industry):
        components.append(("Industry provided", SCORE_RULES["industry"]))

    if _present(record.phone):
        components.append(("Phone provided", SCORE_RULES["phone"]))

    if _present(record.website):
        components.append(("Website provided", SCORE_RULES["website"]))

    # Bonus for complete profile
    fields = (record.name, record.industry, record.phone, record.website)
    if all(_present(value) for value in fields):
        components.append(("Complete profile bonus", SCORE_RULES["complete_profile"]))

    return components

def compute_score(record: AccountRecord) -> int:
    """Completeness score for an account, between 0 and MAX_SCORE."""
    total = sum(points for _, points in score_components(record))
    return max(0, min(MAX_SCORE, total))

def score_label(value: int) -> str:
    return f"{value}/{MAX_SCORE}"

def score_badge(value: int) -> str:
    for threshold, badge in BADGE_THRESHOLDS:
        if value >= threshold:
            return badge
    return "error"

def score(state: AccountState) -> AccountState:
    """Score the captured account record."""
    logger.info(f"Starting scoring for account: {state.get('account_id', 'unknown')}")

    record = state.get("record") or AccountRecord()
    components = score_components(record)
    value = compute_score(record)

    state["score"] = value
    state["score_reasons"] = [f"{reason} (+{points})" for reason, points in components]
    state["score_label"] = score_label(value)
    state["score_badge"] = score_badge(value)

    logger.info(f"Final score: {value} for {state.get('account_id')}")
    return state
