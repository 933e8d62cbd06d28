from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

DataT = TypeVar("DataT")
ItemT = TypeVar("ItemT")


class BaseResponse(BaseModel, Generic[DataT]):
    """Envelope every platform response is wrapped in: ``{code, message, request_id, data}``."""

    model_config = ConfigDict(extra="allow")

    code: int = Field(default=0)
    message: str = Field(default="")
    request_id: str = Field(default="")
    data: DataT | None = Field(default=None)


class PageInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    page: int = Field(default=1)
    page_size: int = Field(default=0)
    total_number: int = Field(default=0)
    total_page: int = Field(default=0)


class ListData(BaseModel, Generic[ItemT]):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    items: list[ItemT] = Field(default_factory=list, alias="list")
    page_info: PageInfo | None = Field(default=None)

    def first(self) -> ItemT | None:
        return self.items[0] if self.items else None
