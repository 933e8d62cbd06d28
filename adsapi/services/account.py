from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

from pydantic import BaseModel, ConfigDict, Field

from adsapi.http.errors import ApiError, ErrorCode
from adsapi.models.envelope import BaseResponse, ListData

if TYPE_CHECKING:
    from adsapi.http.client import ApiClient
    from adsapi.http.context import CallContext

ADVERTISER_INFO_PATH = "/open_api/v1.3/advertiser/info/"
ADVERTISER_BALANCE_PATH = "/open_api/v1.3/advertiser/balance/get/"
DEFAULT_ADVERTISER_FIELDS = ("advertiser_id", "name", "status", "currency", "timezone")


class AdvertiserInfo(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    advertiser_id: str
    name: str | None = Field(default=None)
    status: str | None = Field(default=None)
    currency: str | None = Field(default=None)
    timezone: str | None = Field(default=None)


class AccountService:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    def get_advertisers(
        self,
        advertiser_ids: Sequence[str],
        *,
        fields: Sequence[str] | None = None,
        page: int | None = None,
        page_size: int | None = None,
        context: CallContext | None = None,
    ) -> ListData[AdvertiserInfo]:
        params = {
            "advertiser_ids": list(advertiser_ids),
            "fields": list(fields) if fields else None,
            "page": page,
            "page_size": page_size,
        }
        response = self._client.request(
            "GET",
            ADVERTISER_INFO_PATH,
            BaseResponse[ListData[AdvertiserInfo]],
            params=params,
            context=context,
        )
        return response.data or ListData[AdvertiserInfo]()

    def get_advertiser_info(self, advertiser_id: str, *, context: CallContext | None = None) -> AdvertiserInfo:
        advertisers = self.get_advertisers([advertiser_id], fields=DEFAULT_ADVERTISER_FIELDS, context=context)
        info = advertisers.first()
        if info is None:
            raise ApiError(f"advertiser not found: {advertiser_id}", code=ErrorCode.RESOURCE_NOT_FOUND)
        return info

    def get_advertiser_balance(self, advertiser_id: str, *, context: CallContext | None = None) -> dict[str, Any]:
        response = self._client.request(
            "GET",
            ADVERTISER_BALANCE_PATH,
            BaseResponse[dict[str, Any]],
            params={"advertiser_id": advertiser_id},
            context=context,
        )
        return response.data or {}
