"""
Tenant API Routes
Read tenants and change owner-editable settings.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status

from reviewreply.infrastructure.observability.logging import get_logger
from reviewreply.models.api.tenant_request import TenantSettingsRequest
from reviewreply.models.api.tenant_response import TenantResponse, TenantsListResponse
from reviewreply.routes.dependencies import tenant_service_dependency
from reviewreply.services.tenant_service import TenantService, TenantServiceError

logger = get_logger(__name__)

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.get("", response_model=TenantsListResponse)
async def list_tenants(service: TenantService = Depends(tenant_service_dependency)):
    now = datetime.now(UTC)
    try:
        tenants = await service.list_tenants()
    except Exception as e:
        logger.error("Error listing tenants", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list tenants"
        )

    return TenantsListResponse(
        tenants=[TenantResponse.from_domain(t, now) for t in tenants],
        total_count=len(tenants),
    )


@router.get("/{account_id}", response_model=TenantResponse)
async def get_tenant(account_id: str, service: TenantService = Depends(tenant_service_dependency)):
    """Get one tenant, correcting its trial state on the way out."""
    now = datetime.now(UTC)
    try:
        tenant = await service.get_tenant(account_id)
        tenant = await service.enforce_trial_state(tenant, now)
    except TenantServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error("Error loading tenant", account_id=account_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to load tenant"
        )

    return TenantResponse.from_domain(tenant, now)


@router.patch("/{account_id}", response_model=TenantResponse)
async def update_tenant(
    account_id: str,
    request: TenantSettingsRequest,
    service: TenantService = Depends(tenant_service_dependency),
):
    now = datetime.now(UTC)
    try:
        tenant = await service.update_settings(
            account_id,
            contact=request.contact,
            interval_minutes=request.interval_minutes,
            auto_reply_enabled=request.auto_reply_enabled,
            now=now,
        )
    except TenantServiceError as e:
        logger.info(
            "Tenant update rejected", account_id=account_id, status_code=e.status_code, error=str(e)
        )
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error("Error updating tenant", account_id=account_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update tenant"
        )

    return TenantResponse.from_domain(tenant, now)
