"""
Pydantic record types for each resource kind.

Records are frozen snapshots: the cache hands the same objects to every
consumer. Unknown API fields are kept; references to other documents may be
an id string or a populated mapping.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Optional, Tuple, Union

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from collabzy.cache.core import ResourceKind, freeze

# Populated documents are frozen like the records holding them
FrozenMap = Annotated[Dict[str, Any], AfterValidator(freeze)]
Ref = Union[str, FrozenMap]


class RecordBase(BaseModel):
    """Shared config: camelCase aliases, immutable, extra fields kept"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="allow",
    )

    @model_validator(mode="after")
    def freeze_extra(self):
        if self.__pydantic_extra__:
            object.__setattr__(self, "__pydantic_extra__", freeze(self.__pydantic_extra__))
        return self


class DocumentRecord(RecordBase):
    """A record backed by a database document"""
    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ===== STATUS ENUMS =====

class CampaignStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    SHORTLISTED = "shortlisted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class DealStatus(str, Enum):
    ACTIVE = "active"
    IN_PROGRESS = "in_progress"
    PENDING_REVIEW = "pending_review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class DeliverableStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    REFUNDED = "refunded"


# ===== INFLUENCERS =====

class InfluencerProfile(DocumentRecord):
    """Influencer directory entry"""
    user: Optional[Ref] = None
    name: str
    bio: str = ""
    avatar: str = ""
    location: str = ""
    niche: Tuple[str, ...] = ()
    website: str = ""
    platform_type: Optional[str] = None
    platforms: Tuple[FrozenMap, ...] = ()
    total_followers: int = 0
    average_engagement_rate: float = 0
    trust_score: Optional[float] = None
    is_verified: bool = False
    average_rating: float = 0


# ===== CAMPAIGNS =====

class Budget(RecordBase):
    min: float
    max: float
    currency: str = "USD"


class Deliverable(RecordBase):
    type: Optional[str] = None
    quantity: int = 1
    description: Optional[str] = None


class Campaign(DocumentRecord):
    """Campaign published by a brand"""
    title: str
    description: str = ""
    category: Optional[str] = None
    platform_type: str = "Any"
    budget: Optional[Budget] = None
    deliverables: Tuple[Deliverable, ...] = ()
    deadline: Optional[datetime] = None
    status: CampaignStatus = CampaignStatus.ACTIVE
    brand: Optional[Ref] = None
    tags: Tuple[str, ...] = ()
    application_count: int = 0
    max_influencers: int = 10


# ===== APPLICATIONS =====

class BrandResponse(RecordBase):
    message: str = ""
    responded_at: Optional[datetime] = None


class Application(DocumentRecord):
    """An influencer's application to a campaign"""
    campaign: Ref
    influencer: Optional[Ref] = None
    message: str = ""
    proposed_rate: float = 0
    status: ApplicationStatus = ApplicationStatus.PENDING
    brand_response: Optional[BrandResponse] = None


# ===== DEALS =====

class DealDeliverable(Deliverable):
    status: DeliverableStatus = DeliverableStatus.PENDING
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None


class Deal(DocumentRecord):
    """Agreed terms between a brand and an influencer"""
    campaign: Optional[Ref] = None
    application: Optional[Ref] = None
    brand: Optional[Ref] = None
    influencer: Optional[Ref] = None
    agreed_rate: float
    currency: str = "USD"
    deliverables: Tuple[DealDeliverable, ...] = ()
    deadline: Optional[datetime] = None
    status: DealStatus = DealStatus.ACTIVE
    payment_status: PaymentStatus = PaymentStatus.PENDING


# ===== CONVERSATIONS =====

class CollaborationApplication(RecordBase):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    status: ApplicationStatus


class CollaborationCampaign(RecordBase):
    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    title: str = "Campaign"


class Participant(RecordBase):
    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    name: Optional[str] = None
    avatar: Optional[str] = None
    role: Optional[str] = None


class LastMessage(RecordBase):
    content: str
    created_at: Optional[datetime] = None
    is_from_me: bool = False


class Collaboration(RecordBase):
    """An application-backed conversation with its latest message"""
    application: CollaborationApplication
    campaign: CollaborationCampaign
    other_user: Optional[Participant] = None
    last_message: Optional[LastMessage] = None
    unread_count: int = 0
    updated_at: Optional[datetime] = None


class Message(DocumentRecord):
    sender: Optional[Ref] = None
    receiver: Optional[Ref] = None
    content: str
    conversation_id: Optional[str] = None
    is_read: bool = False


RECORD_TYPES: Dict[ResourceKind, type] = {
    ResourceKind.INFLUENCERS: InfluencerProfile,
    ResourceKind.CAMPAIGNS: Campaign,
    ResourceKind.APPLICATIONS: Application,
    ResourceKind.DEALS: Deal,
    ResourceKind.CONVERSATIONS: Collaboration,
}
