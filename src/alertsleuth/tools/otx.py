"""
tools/otx.py — AlienVault OTX Threat Intelligence Tool

Queries the OTX indicator API for IPs, domains, hostnames and file hashes.
Enabled only when an OTX API key is configured (OTX_API_KEY).

Registered functions:
  - query_otx → GET /indicators/{type}/{indicator}/{section}
"""

from __future__ import annotations

import json
from typing import Any, Optional
from urllib.parse import quote

import httpx

from alertsleuth.brain.types import ToolSchema
from alertsleuth.observability.logger import get_logger
from alertsleuth.tools.base import BaseTool, ToolContext

log = get_logger(__name__)

INDICATOR_TYPES = ("IPv4", "IPv6", "domain", "hostname", "file")
SECTIONS = (
    "general", "reputation", "geo", "malware", "url_list",
    "passive_dns", "http_scans", "nids_list", "analysis", "whois",
)
_MAX_ERROR_BODY = 500


class OTXError(RuntimeError):
    """OTX answered with a non-200 status or an unreadable body."""


class OTXTool(BaseTool):

    def __init__(self, client: Optional[httpx.Client] = None):
        self._client = client
        self._api_key: Optional[str] = None
        self._base_url = "https://otx.alienvault.com/api/v1"

    def init(self, context: ToolContext) -> bool:
        self._api_key = context.otx_api_key
        self._base_url = context.otx_base_url.rstrip("/")
        if not self._api_key:
            return False
        if self._client is None:
            self._client = httpx.Client(timeout=context.http_timeout)
        return True

    def prompt(self) -> str:
        return (
            "When analyzing security indicators (IP addresses, domains, file hashes, etc.), "
            "you can use the query_otx tool to get threat intelligence from AlienVault OTX."
        )

    def specs(self) -> list[ToolSchema]:
        return [ToolSchema(
            name="query_otx",
            description=(
                "Query AlienVault OTX for threat intelligence about IP addresses, "
                "domains, hostnames, or file hashes"
            ),
            parameters={
                "type": "object",
                "properties": {
                    "indicator_type": {
                        "type": "string",
                        "description": "Type of indicator to query",
                        "enum": list(INDICATOR_TYPES),
                    },
                    "indicator": {
                        "type": "string",
                        "description": "The indicator value (IP address, domain, hostname, or file hash)",
                    },
                    "section": {
                        "type": "string",
                        "description": "Section of data to retrieve",
                        "enum": list(SECTIONS),
                    },
                },
                "required": ["indicator_type", "indicator", "section"],
            },
        )]

    def execute(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        indicator_type = args.get("indicator_type", "")
        indicator = str(args.get("indicator", "")).strip()
        section = args.get("section", "")

        if indicator_type not in INDICATOR_TYPES:
            raise ValueError(f"unsupported indicator_type '{indicator_type}'")
        if section not in SECTIONS:
            raise ValueError(f"unsupported section '{section}'")
        if not indicator:
            raise ValueError("indicator is required")

        data = self._query(indicator_type, indicator, section)
        return {"result": json.dumps(data, indent=2, ensure_ascii=False)}

    def _query(self, indicator_type: str, indicator: str, section: str) -> Any:
        url = f"{self._base_url}/indicators/{indicator_type}/{quote(indicator, safe='')}/{section}"
        log.debug("otx.query.start", indicator_type=indicator_type, section=section)

        response = self._client.get(url, headers={"X-OTX-API-KEY": self._api_key or ""})
        if response.status_code != 200:
            raise OTXError(
                f"OTX API returned status {response.status_code}: "
                f"{response.text[:_MAX_ERROR_BODY]}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise OTXError(f"failed to decode OTX response: {e}") from e

        log.info("otx.query.done", indicator_type=indicator_type, section=section)
        return data

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
