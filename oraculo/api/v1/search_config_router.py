"""Search configuration API router."""

from typing import Annotated

from fastapi import APIRouter, Depends

from oraculo.dependencies import (
    CHAT_ROLES,
    get_vector_store_repository,
    require_role,
)
from oraculo.repositories.vector_store_repo import VectorStoreRepository
from oraculo.schemas.chat_schema import SearchConfigResponse
from oraculo.schemas.response_schema import (
    GATEWAY_ERRORS,
    ApiResponse,
    success_response,
)

router = APIRouter(
    prefix="/api/v1/search-config",
    tags=["search-config"],
    dependencies=[Depends(require_role(*CHAT_ROLES))],
    responses=GATEWAY_ERRORS,
)

VectorStoreRepoDep = Annotated[
    VectorStoreRepository, Depends(get_vector_store_repository)
]


@router.get("", response_model=ApiResponse[SearchConfigResponse])
async def get_search_config(repo: VectorStoreRepoDep) -> dict:
    """Ids of the active, searchable vector stores, default first."""
    stores = await repo.find_searchable()
    return success_response(
        SearchConfigResponse(searchable_ids=[s.vector_store_id for s in stores])
    )
