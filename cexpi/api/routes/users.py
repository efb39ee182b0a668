from fastapi import APIRouter, Depends

from cexpi.api.dependencies import get_current_user, get_register_user_use_case
from cexpi.api.schemas.requests import RegisterUserRequest
from cexpi.api.schemas.responses import SuccessResponse
from cexpi.application.interfaces.identity_verifier import VerifiedIdentity
from cexpi.application.use_cases.register_user import RegisterUser, RegisterUserInput

router = APIRouter(tags=["users"])


@router.post("/users", response_model=SuccessResponse)
async def register_user(
    body: RegisterUserRequest,
    user: VerifiedIdentity = Depends(get_current_user),
    use_case: RegisterUser = Depends(get_register_user_use_case),
) -> SuccessResponse:
    """Create or update the caller's marketplace profile."""
    await use_case.execute(
        RegisterUserInput(
            user_id=body.user_id,
            display_name=body.display_name,
            country_code=body.country_code,
            requester_id=user.user_id,
        )
    )
    return SuccessResponse()
