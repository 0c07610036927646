"""
Data access for UI consumers: cached reads and invalidating writes.

Reads go through the session's CacheCoordinator. Writes go straight to the
gateway and, on success, invalidate every kind they could have made stale.
Nothing here raises gateway failures to the caller; results carry
success/error instead.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import quote

from collabzy.cache import CacheCoordinator, CacheSource, FetchResult, ResourceKind
from collabzy.errors import GatewayError, extract_error_message
from collabzy.gateway import (
    CAMPAIGN_PATH,
    ELIGIBLE_CAMPAIGNS_PATH,
    INFLUENCER_PROFILE_PATH,
    MY_CAMPAIGNS_PATH,
    Gateway,
    Operation,
    RestGateway,
)
from collabzy.schemas import Campaign, InfluencerProfile
from collabzy.session import Session
from config.settings import settings

logger = logging.getLogger("collabzy.data_service")


@dataclass(frozen=True)
class MutationSpec:
    """Which cached kinds a write makes stale, and its fallback error."""
    affected_kinds: Tuple[ResourceKind, ...]
    fallback_message: str


MUTATIONS: Dict[Operation, MutationSpec] = {
    Operation.CREATE_CAMPAIGN: MutationSpec(
        (ResourceKind.CAMPAIGNS,), "Failed to create campaign"
    ),
    Operation.UPDATE_CAMPAIGN: MutationSpec(
        (ResourceKind.CAMPAIGNS,), "Failed to update campaign"
    ),
    Operation.DELETE_CAMPAIGN: MutationSpec(
        (ResourceKind.CAMPAIGNS,), "Failed to delete campaign"
    ),
    Operation.SUBMIT_APPLICATION: MutationSpec(
        (ResourceKind.APPLICATIONS,), "Failed to submit application"
    ),
    # Shortlisting or accepting opens a conversation
    Operation.UPDATE_APPLICATION_STATUS: MutationSpec(
        (ResourceKind.APPLICATIONS, ResourceKind.CONVERSATIONS), "Failed to update application"
    ),
    Operation.WITHDRAW_APPLICATION: MutationSpec(
        (ResourceKind.APPLICATIONS, ResourceKind.CONVERSATIONS), "Failed to withdraw application"
    ),
    Operation.CREATE_DEAL: MutationSpec(
        (ResourceKind.DEALS, ResourceKind.APPLICATIONS), "Failed to create deal"
    ),
    Operation.UPDATE_DEAL_STATUS: MutationSpec(
        (ResourceKind.DEALS,), "Failed to update deal"
    ),
    Operation.UPDATE_DELIVERABLE: MutationSpec(
        (ResourceKind.DEALS,), "Failed to update deliverable"
    ),
    Operation.SEND_APPLICATION_MESSAGE: MutationSpec(
        (ResourceKind.CONVERSATIONS,), "Failed to send message"
    ),
    Operation.CREATE_COLLABORATION: MutationSpec(
        (ResourceKind.CONVERSATIONS,), "Failed to start collaboration"
    ),
}

# Live push events routed through the same invalidation path as writes
MESSAGE_RECEIVE_EVENT = "message:receive"
NOTIFICATION_NEW_EVENT = "notification:new"

RELATED_TYPE_KINDS: Dict[str, ResourceKind] = {
    "campaign": ResourceKind.CAMPAIGNS,
    "application": ResourceKind.APPLICATIONS,
    "deal": ResourceKind.DEALS,
    "message": ResourceKind.CONVERSATIONS,
}


@dataclass
class MutationResult:
    """Outcome of a write."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    invalidated: Tuple[ResourceKind, ...] = field(default=())

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
        }


class DataService:
    """
    The data layer one UI session talks to.

    Owns the session's CacheCoordinator; consumers never reach the store.
    Construct one per session and call close() when the session ends.
    """

    def __init__(
        self,
        gateway: Gateway,
        session: Session,
        coordinator: Optional[CacheCoordinator] = None,
    ):
        self._gateway = gateway
        self._session = session
        self._coordinator = coordinator or CacheCoordinator(
            gateway,
            is_authenticated=lambda: self._session.is_authenticated,
            ttl_seconds=settings.cache_ttl_seconds,
            coalesce_timeout=settings.coalesce_timeout_seconds,
        )

    @property
    def session(self) -> Session:
        return self._session

    @property
    def coordinator(self) -> CacheCoordinator:
        return self._coordinator

    # ===== CACHED READS =====

    def fetch_influencers(self, filters: Optional[Mapping[str, Any]] = None, force_refresh: bool = False) -> FetchResult:
        return self._coordinator.fetch(ResourceKind.INFLUENCERS, filters, force_refresh)

    def fetch_campaigns(self, filters: Optional[Mapping[str, Any]] = None, force_refresh: bool = False) -> FetchResult:
        return self._coordinator.fetch(ResourceKind.CAMPAIGNS, filters, force_refresh)

    def fetch_my_applications(self, filters: Optional[Mapping[str, Any]] = None, force_refresh: bool = False) -> FetchResult:
        return self._coordinator.fetch(ResourceKind.APPLICATIONS, filters, force_refresh)

    def fetch_my_deals(self, filters: Optional[Mapping[str, Any]] = None, force_refresh: bool = False) -> FetchResult:
        return self._coordinator.fetch(ResourceKind.DEALS, filters, force_refresh)

    def fetch_collaborations(self, filters: Optional[Mapping[str, Any]] = None, force_refresh: bool = False) -> FetchResult:
        return self._coordinator.fetch(ResourceKind.CONVERSATIONS, filters, force_refresh)

    # ===== UNCACHED READS =====

    def fetch_my_campaigns(self, filters: Optional[Mapping[str, Any]] = None) -> FetchResult:
        """Campaigns owned by the signed-in brand; always fetched."""
        return self._read_uncached(MY_CAMPAIGNS_PATH, filters, Campaign, "Failed to fetch my campaigns")

    def fetch_eligible_campaigns(self, filters: Optional[Mapping[str, Any]] = None) -> FetchResult:
        """Campaigns the signed-in influencer may apply to; always fetched."""
        return self._read_uncached(ELIGIBLE_CAMPAIGNS_PATH, filters, Campaign, "Failed to fetch eligible campaigns")

    def get_campaign_by_id(self, campaign_id: str) -> FetchResult:
        path = CAMPAIGN_PATH.format(campaign_id=quote(str(campaign_id), safe=""))
        return self._read_uncached(path, None, Campaign, "Failed to fetch campaign", gated=False)

    def get_influencer_by_id(self, user_id: str) -> FetchResult:
        path = INFLUENCER_PROFILE_PATH.format(user_id=quote(str(user_id), safe=""))
        return self._read_uncached(path, None, InfluencerProfile, "Failed to fetch influencer", gated=False)

    def _read_uncached(
        self,
        path: str,
        filters: Optional[Mapping[str, Any]],
        record_type: type,
        fallback_message: str,
        gated: bool = True,
    ) -> FetchResult:
        if gated and not self._session.is_authenticated:
            return FetchResult(data=(), source=CacheSource.UNAUTHENTICATED)
        try:
            data = self._gateway.get(path, filters, record_type)
        except GatewayError as e:
            message = extract_error_message(e.payload, fallback_message)
            logger.warning(f"{fallback_message}: {e.message}")
            return FetchResult(data=(), success=False, error=message, source=CacheSource.FAILED)

        if data is None:
            records: Tuple[Any, ...] = ()
        elif isinstance(data, list):
            records = tuple(data)
        else:
            records = (data,)
        return FetchResult(data=records, source=CacheSource.UPSTREAM)

    # ===== WRITES =====

    def create_campaign(self, campaign_data: Mapping[str, Any]) -> MutationResult:
        return self._mutate(Operation.CREATE_CAMPAIGN, campaign_data)

    def update_campaign(self, campaign_id: str, campaign_data: Mapping[str, Any]) -> MutationResult:
        return self._mutate(Operation.UPDATE_CAMPAIGN, campaign_data, campaign_id=campaign_id)

    def delete_campaign(self, campaign_id: str) -> MutationResult:
        return self._mutate(Operation.DELETE_CAMPAIGN, campaign_id=campaign_id)

    def submit_application(self, application_data: Mapping[str, Any]) -> MutationResult:
        return self._mutate(Operation.SUBMIT_APPLICATION, application_data)

    def update_application_status(self, application_id: str, status: str, message: str = "") -> MutationResult:
        return self._mutate(
            Operation.UPDATE_APPLICATION_STATUS,
            {"status": status, "message": message},
            application_id=application_id,
        )

    def withdraw_application(self, application_id: str) -> MutationResult:
        return self._mutate(Operation.WITHDRAW_APPLICATION, application_id=application_id)

    def create_deal(self, deal_data: Mapping[str, Any]) -> MutationResult:
        return self._mutate(Operation.CREATE_DEAL, deal_data)

    def update_deal_status(self, deal_id: str, status_data: Mapping[str, Any]) -> MutationResult:
        return self._mutate(Operation.UPDATE_DEAL_STATUS, status_data, deal_id=deal_id)

    def update_deliverable(self, deal_id: str, deliverable_index: int, data: Mapping[str, Any]) -> MutationResult:
        return self._mutate(
            Operation.UPDATE_DELIVERABLE,
            data,
            deal_id=deal_id,
            deliverable_index=deliverable_index,
        )

    def send_application_message(self, application_id: str, content: str) -> MutationResult:
        return self._mutate(
            Operation.SEND_APPLICATION_MESSAGE,
            {"content": content},
            application_id=application_id,
        )

    def create_collaboration(self, receiver_id: str, content: str) -> MutationResult:
        """Open a direct conversation with another user."""
        return self._mutate(
            Operation.CREATE_COLLABORATION,
            {"receiverId": receiver_id, "content": content},
        )

    def _mutate(
        self,
        operation: Operation,
        payload: Optional[Mapping[str, Any]] = None,
        **path_params: Any,
    ) -> MutationResult:
        spec = MUTATIONS[operation]
        try:
            record = self._gateway.mutate(operation, payload, path_params or None)
        except GatewayError as e:
            message = extract_error_message(e.payload, spec.fallback_message)
            logger.warning(f"{operation.value} failed: {e.message}")
            return MutationResult(success=False, error=message)

        for kind in spec.affected_kinds:
            self._coordinator.invalidate(kind)
        logger.info(
            f"{operation.value} succeeded; invalidated "
            f"{', '.join(kind.value for kind in spec.affected_kinds)}"
        )
        return MutationResult(success=True, data=record, invalidated=spec.affected_kinds)

    # ===== PUSH EVENTS =====

    def apply_push_event(self, event: str, payload: Optional[Mapping[str, Any]] = None) -> Tuple[ResourceKind, ...]:
        """
        Invalidate whatever a live push event made stale.

        Returns:
            The kinds invalidated; empty for events with no cached counterpart
        """
        payload = payload or {}
        if event == MESSAGE_RECEIVE_EVENT:
            kinds: Tuple[ResourceKind, ...] = (ResourceKind.CONVERSATIONS,)
        elif event == NOTIFICATION_NEW_EVENT:
            kind = RELATED_TYPE_KINDS.get(str(payload.get("relatedType", "")).lower())
            kinds = (kind,) if kind else ()
        else:
            logger.debug(f"Ignoring push event {event}")
            return ()

        for kind in kinds:
            self._coordinator.invalidate(kind)
        if kinds:
            logger.info(f"Push event {event} invalidated {', '.join(k.value for k in kinds)}")
        return kinds

    # ===== CACHE CONTROL =====

    def invalidate(self, kind: Optional[ResourceKind] = None) -> int:
        """Invalidate one kind, or every kind when None."""
        return self._coordinator.invalidate(kind)

    def last_error(self, kind: ResourceKind) -> Optional[str]:
        return self._coordinator.last_error(kind)

    def get_cache_stats(self) -> Dict[str, Any]:
        return self._coordinator.get_stats()

    def close(self) -> None:
        """Session teardown: drop the cache and release the gateway."""
        self._coordinator.clear_all()
        close = getattr(self._gateway, "close", None)
        if callable(close):
            close()


def build_data_service(session: Session) -> DataService:
    """Default factory: a REST gateway authenticated as session."""
    gateway = RestGateway(token_provider=lambda: session.token)
    return DataService(gateway, session)
