from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from pydantic import BaseModel, ConfigDict, Field

from adsapi.http.errors import DecodeError
from adsapi.models.envelope import BaseResponse, ListData

if TYPE_CHECKING:
    from adsapi.http.client import ApiClient
    from adsapi.http.context import CallContext

CAMPAIGN_GET_PATH = "/open_api/v1.3/campaign/get/"
CAMPAIGN_CREATE_PATH = "/open_api/v1.3/campaign/create/"


class Campaign(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    campaign_id: str
    campaign_name: str | None = Field(default=None)
    advertiser_id: str | None = Field(default=None)
    objective_type: str | None = Field(default=None)
    budget_mode: str | None = Field(default=None)
    budget: float | None = Field(default=None)
    operation_status: str | None = Field(default=None)


class CampaignCreateRequest(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    advertiser_id: str
    campaign_name: str
    objective_type: str
    budget_mode: str | None = Field(default=None)
    budget: float | None = Field(default=None)


class CampaignCreateResult(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    campaign_id: str


class CampaignService:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    def get(
        self,
        advertiser_id: str,
        *,
        campaign_ids: Sequence[str] | None = None,
        fields: Sequence[str] | None = None,
        page: int | None = None,
        page_size: int | None = None,
        context: CallContext | None = None,
    ) -> ListData[Campaign]:
        params = {
            "advertiser_id": advertiser_id,
            "filtering": {"campaign_ids": list(campaign_ids)} if campaign_ids else None,
            "fields": list(fields) if fields else None,
            "page": page,
            "page_size": page_size,
        }
        response = self._client.request(
            "GET", CAMPAIGN_GET_PATH, BaseResponse[ListData[Campaign]], params=params, context=context
        )
        return response.data or ListData[Campaign]()

    def create(self, request: CampaignCreateRequest, *, context: CallContext | None = None) -> CampaignCreateResult:
        response = self._client.request(
            "POST", CAMPAIGN_CREATE_PATH, BaseResponse[CampaignCreateResult], body=request, context=context
        )
        if response.data is None:
            raise DecodeError("campaign create response carried no data")
        return response.data
