from adsapi.models.envelope import BaseResponse, ListData, PageInfo

__all__ = ["BaseResponse", "ListData", "PageInfo"]
