import asyncio
from typing import Any, Callable, Optional
from uuid import UUID

import aiohttp
from pydantic import BaseModel, ConfigDict, ValidationError

from prospector.main.exceptions import LeadDiscoveryException
from prospector.main.logging import get_logger

logger = get_logger(__name__)


class LeadDiscoveryRequest(BaseModel):
    organisation_id: UUID
    workflow_id: UUID
    domains: list[str] = []
    locations: list[str] = []
    designations: list[str] = []
    lead_count: int = 0
    company_name: Optional[str] = None
    company_website: Optional[str] = None
    custom_instructions: list[str] = []
    llm_type: Optional[str] = None


class LeadDiscoveryResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    leads: Optional[list[Any]] = None
    data: Optional[dict[str, Any]] = None
    token_usage: Optional[dict[str, Any]] = None

    @property
    def leads_generated(self) -> int:
        if self.leads is not None:
            return len(self.leads)
        if self.data and self.data.get("inserted_leads_count") is not None:
            return int(self.data["inserted_leads_count"])
        return 0


class LeadDiscoveryClient:
    """Calls the external agent API that generates and stores leads."""

    def __init__(
        self,
        http_client: Callable[[], aiohttp.ClientSession],
        base_url: str,
        auth_token: str,
        llm_type: str = "GEMINI",
        timeout_seconds: float = 1800,
    ):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.llm_type = llm_type
        self.timeout_seconds = timeout_seconds

    @property
    def url(self) -> str:
        return f"{self.base_url}/generate-leads"

    async def generate_leads(self, request: LeadDiscoveryRequest) -> LeadDiscoveryResult:
        payload = request.model_dump(mode="json")
        payload["llm_type"] = request.llm_type or self.llm_type

        try:
            async with self.http_client().post(
                self.url,
                json=payload,
                headers={"Cookie": f"auth_token={self.auth_token}"},
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise LeadDiscoveryException(
                        f"Lead discovery API call failed: status {response.status}: {body[:500]}"
                    )
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise LeadDiscoveryException(f"Lead discovery API call failed: {e}") from e

        try:
            result = LeadDiscoveryResult.model_validate(body or {})
        except ValidationError as e:
            raise LeadDiscoveryException(
                f"Lead discovery API call failed: unexpected response: {e}"
            ) from e

        logger.info(
            "Lead discovery API call completed",
            extra={
                "workflow_id": str(request.workflow_id),
                "leads_generated": result.leads_generated,
            },
        )
        return result
