"""
Tests for record types.
"""
import pytest
from pydantic import ValidationError

from collabzy.schemas import (
    Application,
    Campaign,
    CampaignStatus,
    Deal,
    DealStatus,
    InfluencerProfile,
)


def test_document_id_accepts_mongo_style_key():
    campaign = Campaign.model_validate({"_id": "abc", "title": "Launch"})
    assert campaign.id == "abc"


def test_camel_case_fields_are_mapped():
    profile = InfluencerProfile.model_validate({
        "name": "Sarah",
        "totalFollowers": 12000,
        "platformType": "Instagram",
        "niche": ["Fashion"],
    })
    assert profile.total_followers == 12000
    assert profile.platform_type == "Instagram"


def test_records_are_frozen():
    campaign = Campaign.model_validate({"title": "Launch"})
    with pytest.raises(ValidationError):
        campaign.title = "Changed"


def test_unknown_fields_are_kept():
    campaign = Campaign.model_validate({"title": "Launch", "requirements": {"minFollowers": 1000}})
    assert campaign.model_extra["requirements"] == {"minFollowers": 1000}


def test_references_may_be_ids_or_populated_documents():
    by_id = Application.model_validate({"campaign": "c1"})
    populated = Application.model_validate({"campaign": {"_id": "c1", "title": "Launch"}})

    assert by_id.campaign == "c1"
    assert populated.campaign["title"] == "Launch"


def test_status_defaults_and_validation():
    assert Campaign.model_validate({"title": "x"}).status == CampaignStatus.ACTIVE
    assert Deal.model_validate({"agreedRate": 10}).status == DealStatus.ACTIVE
    with pytest.raises(ValidationError):
        Deal.model_validate({"agreedRate": 10, "status": "archived"})


def test_nested_collections_are_immutable():
    campaign = Campaign.model_validate({
        "title": "Launch",
        "tags": ["x"],
        "deliverables": [{"type": "Reel", "quantity": 2}],
        "brand": {"_id": "b1", "name": "Acme"},
        "requirements": {"platforms": ["Instagram"]},
    })

    with pytest.raises(AttributeError):
        campaign.tags.append("INJECTED")
    with pytest.raises(TypeError):
        campaign.brand["name"] = "Changed"
    with pytest.raises(AttributeError):
        campaign.model_extra["requirements"]["platforms"].append("TikTok")
    with pytest.raises(TypeError):
        campaign.model_extra["injected"] = True

    assert campaign.tags == ("x",)
    assert campaign.deliverables[0].quantity == 2


def test_frozen_records_still_serialize():
    campaign = Campaign.model_validate({"title": "Launch", "tags": ["x"], "brand": {"_id": "b1"}})

    dumped = campaign.model_dump(mode="json", by_alias=True, exclude_none=True)

    assert dumped["tags"] == ["x"]
    assert dumped["brand"] == {"_id": "b1"}
