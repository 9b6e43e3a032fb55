from typing import List, Dict, Any

LIMIT_OPTIONS = [5, 10, 15, 20, 50]
DEFAULT_LIMIT = 10

INDUSTRY_OPTIONS = [
    "Technology",
    "Healthcare",
    "Finance",
    "Manufacturing",
    "Education",
    "Retail",
    "Consulting",
    "Other",
]

def with_contact_counts(accounts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Copy each account row and add its number of related contacts."""
    return [
        {**account, "ContactsCount": len(account.get("Contacts") or [])}
        for account in accounts
    ]

def filter_accounts(accounts: List[Dict[str, Any]], search_term: str = "") -> List[Dict[str, Any]]:
    """Case-insensitive substring match on account name or industry."""
    if not search_term:
        return list(accounts)

    needle = search_term.lower()
    return [
        account for account in accounts
        if needle in (account.get("Name") or "").lower()
        or needle in (account.get("Industry") or "").lower()
    ]
