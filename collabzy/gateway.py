"""
Remote data gateway for the Collabzy REST API.

Every call returns the `data` member of the `{success, data, message}`
envelope, parsed into record types, or raises GatewayError.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Sequence
from urllib.parse import quote

import requests
from pydantic import BaseModel, ValidationError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from collabzy.cache.core import ResourceKind
from collabzy.errors import GatewayError, extract_error_message
from collabzy.schemas import (
    RECORD_TYPES,
    Application,
    Campaign,
    Deal,
    Message,
)
from config.settings import settings

logger = logging.getLogger("collabzy.gateway")


class Operation(str, Enum):
    """Writes the data layer can perform."""
    CREATE_CAMPAIGN = "create_campaign"
    UPDATE_CAMPAIGN = "update_campaign"
    DELETE_CAMPAIGN = "delete_campaign"
    SUBMIT_APPLICATION = "submit_application"
    UPDATE_APPLICATION_STATUS = "update_application_status"
    WITHDRAW_APPLICATION = "withdraw_application"
    CREATE_DEAL = "create_deal"
    UPDATE_DEAL_STATUS = "update_deal_status"
    UPDATE_DELIVERABLE = "update_deliverable"
    SEND_APPLICATION_MESSAGE = "send_application_message"
    CREATE_COLLABORATION = "create_collaboration"


@dataclass(frozen=True)
class Route:
    method: str
    path: str
    record_type: Optional[type] = None


READ_ROUTES: Dict[ResourceKind, str] = {
    ResourceKind.INFLUENCERS: "/influencer",
    ResourceKind.CAMPAIGNS: "/campaigns",
    ResourceKind.APPLICATIONS: "/application/my-applications",
    ResourceKind.DEALS: "/deals/my-deals",
    ResourceKind.CONVERSATIONS: "/messages/my-collaborations",
}

MUTATION_ROUTES: Dict[Operation, Route] = {
    Operation.CREATE_CAMPAIGN: Route("POST", "/campaigns", Campaign),
    Operation.UPDATE_CAMPAIGN: Route("PUT", "/campaigns/{campaign_id}", Campaign),
    Operation.DELETE_CAMPAIGN: Route("DELETE", "/campaigns/{campaign_id}"),
    Operation.SUBMIT_APPLICATION: Route("POST", "/application", Application),
    Operation.UPDATE_APPLICATION_STATUS: Route("PATCH", "/application/{application_id}/status", Application),
    Operation.WITHDRAW_APPLICATION: Route("DELETE", "/application/{application_id}"),
    Operation.CREATE_DEAL: Route("POST", "/deals", Deal),
    Operation.UPDATE_DEAL_STATUS: Route("PUT", "/deals/{deal_id}/status", Deal),
    Operation.UPDATE_DELIVERABLE: Route("PUT", "/deals/{deal_id}/deliverables/{deliverable_index}", Deal),
    Operation.SEND_APPLICATION_MESSAGE: Route("POST", "/messages/application/{application_id}", Message),
    Operation.CREATE_COLLABORATION: Route("POST", "/messages", Message),
}

# Uncached owner-scoped and single-record reads
INFLUENCER_PROFILE_PATH = "/influencer/{user_id}"
CAMPAIGN_PATH = "/campaigns/{campaign_id}"
MY_CAMPAIGNS_PATH = "/campaigns/brand/my-campaigns"
ELIGIBLE_CAMPAIGNS_PATH = "/campaigns/influencer/eligible"


class Gateway(Protocol):
    """
    Interface for data gateways.

    Implementations:
    - RestGateway: HTTP calls to the Collabzy API
    - in-memory fakes in tests
    """

    def fetch(self, kind: ResourceKind, filters: Mapping[str, Any]) -> Sequence[Any]:
        """List records of one kind. Raises GatewayError."""
        ...

    def mutate(
        self,
        operation: Operation,
        payload: Optional[Mapping[str, Any]] = None,
        path_params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Perform one write and return the affected record. Raises GatewayError."""
        ...

    def get(self, path: str, params: Optional[Mapping[str, Any]] = None, record_type: Optional[type] = None) -> Any:
        """Uncached read of an arbitrary resource. Raises GatewayError."""
        ...


def _parse(record_type: Optional[type], item: Any) -> Any:
    """Validate one record, mapping schema drift to GatewayError."""
    if record_type is None or not isinstance(item, dict):
        return item
    try:
        return record_type.model_validate(item)
    except ValidationError as e:
        logger.error(f"Unexpected {record_type.__name__} payload: {e}")
        raise GatewayError("Unexpected response from server", payload=item) from e


class RestGateway:
    """
    Gateway backed by requests.

    One requests.Session per gateway, so one per user session. Idempotent
    reads may be retried on connection errors; writes never are.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: Optional[float] = None,
        read_retry_attempts: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._token_provider = token_provider or (lambda: None)
        self._timeout = timeout if timeout is not None else settings.api_timeout_seconds
        self._read_attempts = max(
            1, read_retry_attempts if read_retry_attempts is not None else settings.api_read_retry_attempts
        )
        self._session = session or requests.Session()

    def _get_headers(self) -> dict:
        """Get API authentication headers."""
        headers = {"Accept": "application/json"}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _send(self, method: str, url: str, params: Optional[dict], json_body: Any) -> requests.Response:
        return self._session.request(
            method,
            url,
            params=params,
            json=json_body,
            headers=self._get_headers(),
            timeout=self._timeout,
        )

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Any = None,
        idempotent: bool = False,
    ) -> Any:
        """
        Make an API request and unwrap the envelope.

        Returns:
            The envelope's data member (None when absent)
        """
        url = f"{self._base_url}{path}"
        query = {k: v for k, v in (params or {}).items() if v is not None} or None

        try:
            if idempotent and self._read_attempts > 1:
                retryer = Retrying(
                    stop=stop_after_attempt(self._read_attempts),
                    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
                    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
                    reraise=True,
                )
                response = retryer(self._send, method, url, query, json_body)
            else:
                response = self._send(method, url, query, json_body)
        except requests.RequestException as e:
            logger.warning(f"API request failed: {method} {path} - {e}")
            raise GatewayError("Unable to reach the Collabzy API") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.ok or (isinstance(body, dict) and body.get("success") is False):
            message = extract_error_message(body, f"Request failed with status {response.status_code}")
            logger.warning(f"API error: {method} {path} [{response.status_code}] {message}")
            raise GatewayError(message, status_code=response.status_code, payload=body)

        if not isinstance(body, dict):
            logger.error(f"Malformed envelope from {method} {path}: {body!r}")
            raise GatewayError("Unexpected response from server", status_code=response.status_code, payload=body)

        return body.get("data")

    def fetch(self, kind: ResourceKind, filters: Mapping[str, Any]) -> Sequence[Any]:
        data = self._request("GET", READ_ROUTES[kind], params=filters, idempotent=True)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.error(f"Expected a list for {kind.value}, got {type(data).__name__}")
            raise GatewayError("Unexpected response from server", payload=data)
        record_type = RECORD_TYPES[kind]
        return [_parse(record_type, item) for item in data]

    def mutate(
        self,
        operation: Operation,
        payload: Optional[Mapping[str, Any]] = None,
        path_params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        route = MUTATION_ROUTES[operation]
        encoded = {k: quote(str(v), safe="") for k, v in (path_params or {}).items()}
        path = route.path.format(**encoded)
        body = _to_json(payload) if payload is not None else None
        data = self._request(route.method, path, json_body=body)
        return _parse(route.record_type, data)

    def get(self, path: str, params: Optional[Mapping[str, Any]] = None, record_type: Optional[type] = None) -> Any:
        data = self._request("GET", path, params=params, idempotent=True)
        if isinstance(data, list):
            return [_parse(record_type, item) for item in data]
        return _parse(record_type, data)

    def close(self) -> None:
        self._session.close()


def _to_json(payload: Any) -> Any:
    """Serialize models with their API aliases."""
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(payload, Mapping):
        return {k: _to_json(v) for k, v in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [_to_json(v) for v in payload]
    if isinstance(payload, Enum):
        return payload.value
    return payload

