"""
User management endpoints (citizens, volunteers, NGOs, admins).

Identity and sessions belong to an external collaborator; these endpoints
only register actors and hand out the API key used to identify them here.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
import time
from report_trust.api.deps import get_db, get_current_user, require_admin
from report_trust.models.db import User
from report_trust.models.schemas.users import UserCreate, UserRead
from report_trust.utils import get_logger, log_business_event, log_performance
import secrets
import string

router = APIRouter()
logger = get_logger(__name__)


def generate_api_key() -> str:
    """Generate a secure API key."""
    alphabet = string.ascii_letters + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(32))


@router.post(
    "/",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create new user",
    description="Register a user with a role; the response carries the generated API key"
)
def create_user(
    user_data: UserCreate,
    request: Request,
    db: Session = Depends(get_db)
) -> UserRead:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info(
        "User creation started",
        user_name=user_data.name,
        user_role=user_data.role.value,
        request_id=request_id
    )

    try:
        existing_email = db.query(User).filter(User.email == user_data.email).first()
        if existing_email:
            logger.warning(
                "User creation failed: duplicate email",
                email=user_data.email,
                existing_user_id=existing_email.id,
                request_id=request_id
            )
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"User with email '{user_data.email}' already exists"
            )

        new_user = User(
            name=user_data.name,
            email=user_data.email,
            api_key=generate_api_key(),
            role=user_data.role,
        )
        db.add(new_user)
        db.commit()
        db.refresh(new_user)

        log_business_event(
            event_type="user_created",
            details={
                "user_name": new_user.name,
                "user_role": new_user.role.value,
                "can_confirm": new_user.can_confirm,
            },
            user_id=new_user.id,
            request_id=request_id
        )

        duration_ms = (time.time() - start_time) * 1000
        log_performance(
            operation="create_user",
            duration_ms=duration_ms,
            additional_data={"user_id": new_user.id, "role": new_user.role.value}
        )

        return UserRead.model_validate(new_user)

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(
            "User creation failed with unexpected error",
            error=str(e),
            request_id=request_id,
            exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during user creation"
        )


@router.get(
    "/me",
    response_model=UserRead,
    summary="Current user",
    description="Return the user identified by the Bearer API key"
)
def read_me(current_user: User = Depends(get_current_user)) -> UserRead:
    return UserRead.model_validate(current_user)


@router.get(
    "/",
    response_model=List[UserRead],
    summary="List users (admin)",
)
def list_users(
    request: Request,
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin)
) -> List[UserRead]:
    users = db.query(User).order_by(User.created_at, User.id).all()
    logger.info("Users listed", count=len(users), request_id=request.headers.get("X-Request-ID", "unknown"))
    return [UserRead.model_validate(u) for u in users]
