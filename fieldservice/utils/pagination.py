"""Page/per_page query parameters and response metadata for list endpoints."""

from dataclasses import dataclass

from fastapi import Query

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


@dataclass
class PaginationParams:
    page: int
    per_page: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    def meta(self, total: int) -> dict[str, int]:
        """total/page/per_page/pages for the list response envelope."""
        return {
            "total": total,
            "page": self.page,
            "per_page": self.per_page,
            "pages": -(-total // self.per_page) if self.per_page else 0,
        }


def get_pagination(
    page: int = Query(1, ge=1, description="1-indexed"),
    per_page: int = Query(DEFAULT_PER_PAGE, ge=1, le=MAX_PER_PAGE),
) -> PaginationParams:
    return PaginationParams(page=page, per_page=per_page)
