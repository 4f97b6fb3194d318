"""Company API routes."""

from uuid import UUID

from fastapi import APIRouter, Request

from src.api.deps import AuthRateLimit, CurrentUser, get_origin
from src.api.envelope import enveloped
from src.schemas.common import ApiResponse
from src.schemas.company import (
    CompanyRegisterRequest,
    CompanyRegistrationResult,
    CompanyResponse,
    CompanyStats,
    PlanResponse,
    PlanUpdateRequest,
)
from src.services.company_service import CompanyService

router = APIRouter(prefix="/Company", tags=["companies"])


@router.post(
    "/register",
    response_model=ApiResponse[CompanyRegistrationResult],
    summary="Register a company",
    description="Creates a company, its plan and an unconfirmed Owner, then emails a confirmation link.",
)
async def register_company(
    data: CompanyRegisterRequest,
    request: Request,
    _: AuthRateLimit,
) -> ApiResponse[CompanyRegistrationResult]:
    """Self-register a company.

    Args:
        data: Company and Owner details.
        request: Incoming request (origin for the confirmation link).

    Returns:
        ApiResponse[CompanyRegistrationResult]: Created ids.
    """
    service = CompanyService()
    return await enveloped(
        service.register_company(data, origin=get_origin(request)),
        "Company registered successfully. Please check your email to confirm your account.",
    )


@router.get(
    "/me",
    response_model=ApiResponse[CompanyResponse],
    summary="Get current user's company",
)
async def get_my_company(user: CurrentUser) -> ApiResponse[CompanyResponse]:
    service = CompanyService()
    return await enveloped(service.get_company(user.company_id), "Company retrieved successfully")


@router.get(
    "/me/stats",
    response_model=ApiResponse[CompanyStats],
    summary="Company usage statistics",
)
async def get_my_company_stats(user: CurrentUser) -> ApiResponse[CompanyStats]:
    service = CompanyService()
    return await enveloped(service.get_stats(user), "Company statistics retrieved successfully")


@router.put(
    "/{company_id}/plan",
    response_model=ApiResponse[PlanResponse],
    summary="Update company plan",
    description="Changes the user limit, name or activation of a company's plan. Developers only.",
)
async def update_plan(
    company_id: UUID,
    data: PlanUpdateRequest,
    user: CurrentUser,
) -> ApiResponse[PlanResponse]:
    service = CompanyService()
    return await enveloped(service.update_plan(user, company_id, data), "Plan updated successfully")
