"""
Gateway rules API client for the Exceptions Service.
"""

import re
from typing import Any, Dict, Optional

import httpx

from shared.config import BaseConfig
from shared.logging import get_logger
from shared.errors import RuleNotFoundError, StoreTransportError
from ..models import GatewayRule

STORE_NAME = "rule_store"

# Rule ids are UUIDs; anything else could address a different API path
RULE_ID_PATTERN = re.compile(r"[A-Za-z0-9-]+")


def is_valid_rule_id(rule_id: Optional[str]) -> bool:
    """Return True when ``rule_id`` is a single safe path segment."""
    return bool(rule_id) and RULE_ID_PATTERN.fullmatch(rule_id) is not None


class RuleStoreClient:
    """Typed GET/PUT access to Gateway rules.

    Calls are not retried; a failure is raised once as
    ``StoreTransportError`` or ``RuleNotFoundError`` and the caller decides
    what to do with it.
    """

    def __init__(
        self,
        api_url: str,
        account_id: Optional[str],
        auth_email: Optional[str],
        auth_key: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip('/')
        self.account_id = account_id
        self.auth_email = auth_email
        self.auth_key = auth_key
        self.timeout = timeout
        self._transport = transport
        self.logger = get_logger("exceptions.rule_store_client")

    @classmethod
    def from_config(cls, config: BaseConfig, **kwargs) -> "RuleStoreClient":
        return cls(
            api_url=config.rule_store_api_url,
            account_id=config.rule_store_account_id,
            auth_email=config.rule_store_auth_email,
            auth_key=config.rule_store_auth_key,
            timeout=config.rule_store_timeout_seconds,
            **kwargs
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.account_id and self.auth_email and self.auth_key)

    def _rule_url(self, rule_id: str) -> str:
        if not is_valid_rule_id(rule_id):
            self.logger.warning("Rejected malformed rule id", rule_id=rule_id)
            raise RuleNotFoundError(rule_id, details={"reason": "invalid_rule_id"})
        return f"{self.api_url}/accounts/{self.account_id}/gateway/rules/{rule_id}"

    def _headers(self) -> Dict[str, str]:
        return {
            "X-Auth-Email": self.auth_email or "",
            "X-Auth-Key": self.auth_key or "",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def get_rule(self, rule_id: str) -> GatewayRule:
        """Fetch a rule, raising ``RuleNotFoundError`` when it does not exist."""
        try:
            async with self._client() as client:
                response = await client.get(self._rule_url(rule_id), headers=self._headers())
        except httpx.HTTPError as e:
            self.logger.error("Rule store GET failed", rule_id=rule_id, error=str(e))
            raise StoreTransportError(STORE_NAME, f"GET failed: {e}")

        if response.status_code == 404:
            raise RuleNotFoundError(rule_id, details={"status_code": 404, "body": response.text})

        if not response.is_success:
            self.logger.error(
                "Failed to get Gateway rule",
                rule_id=rule_id,
                status_code=response.status_code,
                body=response.text
            )
            raise StoreTransportError(
                STORE_NAME,
                f"GET returned {response.status_code}",
                status_code=response.status_code,
                body=response.text
            )

        result = self._extract_result(response)
        if not result:
            raise RuleNotFoundError(rule_id)

        return GatewayRule.from_payload(rule_id, result)

    async def put_rule(self, rule: GatewayRule) -> GatewayRule:
        """Replace a rule with ``rule``'s full body and return the stored version."""
        try:
            async with self._client() as client:
                response = await client.put(
                    self._rule_url(rule.rule_id),
                    headers=self._headers(),
                    json=rule.to_payload()
                )
        except httpx.HTTPError as e:
            self.logger.error("Rule store PUT failed", rule_id=rule.rule_id, error=str(e))
            raise StoreTransportError(STORE_NAME, f"PUT failed: {e}")

        if not response.is_success:
            self.logger.error(
                "Failed to update Gateway rule",
                rule_id=rule.rule_id,
                status_code=response.status_code,
                body=response.text
            )
            raise StoreTransportError(
                STORE_NAME,
                f"PUT returned {response.status_code}",
                status_code=response.status_code,
                body=response.text
            )

        result = self._extract_result(response)
        if result:
            return GatewayRule.from_payload(rule.rule_id, result)
        return rule

    @staticmethod
    def _extract_result(response: httpx.Response) -> Optional[Dict[str, Any]]:
        """Return the ``result`` object of an API envelope, if any."""
        try:
            payload = response.json()
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        result = payload.get("result")
        return result if isinstance(result, dict) else None
