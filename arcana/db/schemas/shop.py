from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


class Pagination(BaseModel):
    current_page: int
    total_items: int
    total_pages: int
    has_next: bool
    has_prev: bool


class BulkItemRequest(BaseModel):
    operation: Literal["activate", "deactivate", "delete", "update"]
    item_ids: List[str] = Field(min_length=1)
    data: Optional[Dict[str, Any]] = None
