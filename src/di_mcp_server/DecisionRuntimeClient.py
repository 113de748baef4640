import asyncio
import json
import logging
from typing import Any, Optional
from urllib.parse import quote

from di_mcp_server.config import USER_AGENT_PREFIX
from di_mcp_server.DiscoveryErrors import DecisionRuntimeError, DecisionServiceIncidentError
from di_mcp_server.ToolName import metadata_override

LAST_DEPLOYED_SELECTOR = "/selectors/lastDeployedDecisionService/deploymentSpaces/"


def encode_uri_component(value: str) -> str:
    """Percent-encodes value the same way JavaScript's encodeURIComponent does."""
    return quote(value, safe="-_.!~*'()")


class DecisionRuntimeClient:
    """
    DecisionRuntimeClient is responsible for every call to the decision runtime REST API:
    enumerating decision services, fetching their OpenAPI descriptions and metadata, and
    executing operations.

    Blocking calls made with requests are moved to a worker thread so that each call is a
    suspension point for the asyncio event loop.

    Usage:
        client = DecisionRuntimeClient(configuration)
        service_ids = await client.list_deployed_service_ids("development")
        openapi = await client.fetch_service_descriptor("development", service_ids[0])
        output = await client.execute("development", service_ids[0], "approval", {"loan": {...}})
    """

    def __init__(self, configuration):
        """
        Args:
            configuration (Configuration): provides the runtime URL, the version and the credentials.
        """
        self.logger = logging.getLogger(__name__)
        self.url = configuration.url
        self.credentials = configuration.credentials
        self.user_agent = f"{USER_AGENT_PREFIX}/{configuration.version}"
        self._session = None

    @property
    def session(self):
        if self._session is None:
            self._session = self.credentials.get_session(self.url)
        return self._session

    def get_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "accept": "application/json",
            **self.credentials.get_auth(),
        }

    def close(self):
        if self._session is not None:
            self._session.close()
            self._session = None

    def _check_response(self, response):
        if 200 <= response.status_code < 300:
            return
        self.logger.error("Request to %s failed with status code: %s", response.url, response.status_code)
        self.logger.debug("Response: %s", response.text)
        raise DecisionRuntimeError(f"Request error, status: {response.status_code}, error: {response.text}",
                                   status_code=response.status_code, body=response.text)

    def _get_json(self, url: str, params: Optional[dict] = None) -> Any:
        self.logger.debug("GET %s %s", url, params or "")
        response = self.session.get(url, params=params, headers=self.get_headers())
        self._check_response(response)
        return response.json()

    def _post_json(self, url: str, params: Optional[dict], payload: Any) -> Any:
        self.logger.debug("POST %s %s", url, params or "")
        headers = {"Content-Type": "application/json", **self.get_headers()}
        response = self.session.post(url, params=params, headers=headers, json=payload)
        self._check_response(response)
        return response.json()

    def get_space_metadata(self, deployment_space: str) -> list:
        url = f"{self.url}/deploymentSpaces/{encode_uri_component(deployment_space)}/metadata"
        return self._get_json(url, params={"names": "decisionServiceId"})

    @staticmethod
    def get_decision_service_ids(space_metadata: list) -> list[str]:
        """Returns the decision service ids found in the metadata, without duplicates, in first-seen order."""
        ids = []
        for entry in space_metadata:
            service_id = entry["decisionServiceId"]["value"]
            if service_id not in ids:
                ids.append(service_id)
        return ids

    def get_decision_service_openapi(self, deployment_space: str, decision_service_id: str) -> dict:
        url = self.url + LAST_DEPLOYED_SELECTOR + encode_uri_component(deployment_space) + "/openapi"
        data = self._get_json(url, params={"decisionServiceId": decision_service_id, "outputFormat": "JSON/openapi"})
        # The runtime reports some failures as a 200 response carrying an incident
        if isinstance(data, dict) and data.get("incident"):
            raise DecisionServiceIncidentError(deployment_space, decision_service_id, data["incident"])
        return data

    def get_decision_metadata(self, deployment_space: str, decision_id: str) -> dict:
        url = (f"{self.url}/deploymentSpaces/{encode_uri_component(deployment_space)}"
               f"/decisions/{encode_uri_component(decision_id)}/metadata")
        return self._get_json(url)

    def execute_last_deployed_decision_service(self, deployment_space: str, decision_service_id: str,
                                                operation_id: str, decision_input: Any) -> str:
        url = (self.url + LAST_DEPLOYED_SELECTOR + encode_uri_component(deployment_space)
               + "/operations/" + encode_uri_component(operation_id) + "/execute")
        data = self._post_json(url, {"decisionServiceId": decision_service_id}, decision_input)
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False)

    async def list_deployed_service_ids(self, deployment_space: str) -> list[str]:
        metadata = await asyncio.to_thread(self.get_space_metadata, deployment_space)
        return self.get_decision_service_ids(metadata)

    async def fetch_service_descriptor(self, deployment_space: str, decision_service_id: str) -> dict:
        return await asyncio.to_thread(self.get_decision_service_openapi, deployment_space, decision_service_id)

    async def fetch_decision_metadata(self, deployment_space: str, decision_id: str) -> dict:
        return await asyncio.to_thread(self.get_decision_metadata, deployment_space, decision_id)

    async def fetch_operation_metadata_override(self, deployment_space: str, decision_id: str,
                                                operation_id: str) -> Optional[str]:
        metadata = await self.fetch_decision_metadata(deployment_space, decision_id)
        return metadata_override(metadata, operation_id)

    async def execute(self, deployment_space: str, decision_service_id: str, operation_id: str,
                      decision_input: Any) -> str:
        return await asyncio.to_thread(self.execute_last_deployed_decision_service,
                                       deployment_space, decision_service_id, operation_id, decision_input)

