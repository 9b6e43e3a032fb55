from typing import Dict, Any, Optional
from engine.state import AccountRecord, AccountState
from loguru import logger

FIELD_ALIASES = {
    "name": ("Name", "name", "account_name"),
    "industry": ("Industry", "industry"),
    "phone": ("Phone", "phone"),
    "website": ("Website", "website", "domain"),
}

def _pick(raw: Dict[str, Any], keys) -> Optional[str]:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return str(value)
    return None

def normalize_account(raw: Dict[str, Any]) -> AccountRecord:
    """Build an AccountRecord from a CRM payload using either CRM or lower-case field names."""
    return AccountRecord(**{field: _pick(raw, keys) for field, keys in FIELD_ALIASES.items()})

def capture(state: AccountState) -> AccountState:
    """Normalize the raw account payload into a record snapshot."""
    raw = state.get("raw") or {}
    logger.info(f"Starting capture for account: {raw.get('Id') or raw.get('id') or 'unknown'}")

    if not raw:
        state.setdefault("errors", []).append("No account data available")
        logger.warning("Capture received an empty account payload")
        return state

    state["record"] = normalize_account(raw)
    state["contacts"] = list(raw.get("Contacts") or raw.get("contacts") or [])
    state["account_id"] = state.get("account_id") or raw.get("Id") or raw.get("id") or ""

    logger.info(f"Capture completed for {state['account_id']}")
    return state
