import httpx
import os
from typing import Dict, Any, List, Optional
from loguru import logger

class CRMError(Exception):
    """A CRM call failed. The message is safe to show to users."""

class CRMClient:
    """CRM REST client: account/quote data source and quote approval gateway."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key or os.getenv("CRM_API_KEY")
        self.base_url = (base_url or os.getenv("CRM_BASE_URL", "https://crm.example.com/api/v1")).rstrip("/")
        self.transport = transport

        if not self.api_key:
            logger.warning("No CRM API key provided, CRM calls will fail")

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for CRM API requests."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Pull the CRM's own error message out of a failed response."""
        try:
            body = response.json()
        except ValueError:
            return "Unknown error occurred"
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return "Unknown error occurred"

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        if not self.api_key:
            raise CRMError("CRM API key not configured")

        try:
            async with httpx.AsyncClient(timeout=20, transport=self.transport) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers=self._get_headers(),
                    **kwargs
                )
        except httpx.HTTPError as e:
            logger.error(f"CRM {method} {path} failed: {e}")
            raise CRMError(str(e) or e.__class__.__name__) from e

        if response.is_error:
            message = self._error_message(response)
            logger.error(f"CRM {method} {path} returned {response.status_code}: {message}")
            raise CRMError(message)

        if not response.content:
            return {}
        # Any 2xx is a success, even when the body is not JSON
        try:
            return response.json()
        except ValueError:
            logger.warning(f"CRM {method} {path} returned a non-JSON body, treating as empty")
            return {}

    async def fetch_account(self, account_id: str) -> Dict[str, Any]:
        """Fetch one account with its related contacts."""
        return await self._request("GET", f"/accounts/{account_id}")

    async def list_accounts(self, limit: int) -> List[Dict[str, Any]]:
        """Fetch up to `limit` accounts with their related contacts."""
        data = await self._request("GET", "/accounts", params={"limit": limit})
        if isinstance(data, dict):
            return data.get("records", [])
        return data

    async def create_account(self, name: str, industry: Optional[str] = None) -> Dict[str, Any]:
        """Create a new account."""
        account = await self._request("POST", "/accounts", json={"Name": name, "Industry": industry})
        logger.info(f"Created new account {account.get('Id') or account.get('id')}")
        return account

    async def fetch_quote(self, quote_id: str) -> Dict[str, Any]:
        """
        Fetch a quote for approval validation.

        The CRM may wrap the quote as {"quote": {...}, "errors": [...]}; its
        errors are kept on the quote as ``validation_errors``.
        """
        data = await self._request("GET", f"/quotes/{quote_id}")
        if "quote" in data:
            quote = dict(data.get("quote") or {})
            quote["validation_errors"] = list(data.get("errors") or [])
            return quote
        return data

    async def submit_quote_for_approval(self, quote_id: str) -> Dict[str, Any]:
        """Submit a quote to the CRM approval process. Never retried here."""
        result = await self._request("POST", f"/quotes/{quote_id}/submit-for-approval")
        logger.info(f"CRM accepted approval submission for quote {quote_id}")
        return result

# Global CRM client instance
crm_client = CRMClient()
