from adsapi.services.account import AccountService, AdvertiserInfo
from adsapi.services.campaign import Campaign, CampaignCreateRequest, CampaignCreateResult, CampaignService

__all__ = [
    "AccountService",
    "AdvertiserInfo",
    "Campaign",
    "CampaignCreateRequest",
    "CampaignCreateResult",
    "CampaignService",
]
