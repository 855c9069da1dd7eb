"""Route returning the linked company's display name."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.security import AuthenticatedUser, get_authenticated_user
from app.dependencies import get_quickbooks_client, get_token_manager
from app.quickbooks import QuickBooksClient, TokenLifecycleManager
from app.schemas.dashboard import CompanyInfo, CompanyRequest
from app.services.company import COMPANY_REFRESH_MARGIN_SECONDS, CompanyService

router = APIRouter(prefix="/api", tags=["company"])


@router.post("/company", response_model=CompanyInfo, response_model_by_alias=True)
async def company_info(
    payload: CompanyRequest,
    user: AuthenticatedUser = Depends(get_authenticated_user),
    tokens: TokenLifecycleManager = Depends(get_token_manager),
    client: QuickBooksClient = Depends(get_quickbooks_client),
) -> CompanyInfo:
    manager = TokenLifecycleManager(
        tokens.store,
        client,
        margin_seconds=max(int(tokens.margin.total_seconds()), COMPANY_REFRESH_MARGIN_SECONDS),
        clock=tokens.clock,
    )
    return await CompanyService(manager, client).get_company(user.user_id, payload.realm_id)
