from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from app.api.v1.dependency import CurrentClaims, CurrentUser, get_broadcast_service
from app.api.v1.errors import failure_response
from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.broadcast import (
    BroadcastAccountOut,
    BroadcastOut,
    JoinBroadcastIn,
    JoinBroadcastOut,
    LeaveBroadcastOut,
    MemberIn,
    MemberOut,
    MembersOut,
    RoleChangeOut,
    SearchBroadcastsOut,
    UpdateRoleIn,
    VerifyAccountOut,
)
from app.api.v1.uploads import read_image_upload
from app.domain.broadcast.broadcast_domain import BroadcastService
from app.domain.broadcast.broadcast_models import BroadcastCreateParams, BroadcastUpdateParams

router = APIRouter(prefix="/broadcast", tags=["Broadcast"])


@router.post("/create_broadcast")
async def create_broadcast(
    user: CurrentUser,
    name: str = Form(..., description="Globally unique broadcast name"),
    description: str | None = Form(None),
    image: UploadFile | None = File(None),
    service: BroadcastService = Depends(get_broadcast_service),
) -> ApiOut[BroadcastOut]:
    """Create a broadcast; the caller becomes its BROADCASTER."""
    params = BroadcastCreateParams(
        user_id=user.user_id,
        name=name,
        description=description,
        image=await read_image_upload(image),
    )

    result = await service.create_broadcast(params)
    if not result.success:
        return failure_response(result)

    return ApiOut[BroadcastOut](results=BroadcastOut.model_validate(result.data.model_dump()))


@router.post("/update_broadcast")
async def update_broadcast(
    claims: CurrentClaims,
    name: str | None = Form(None),
    description: str | None = Form(None),
    image: UploadFile | None = File(None),
    service: BroadcastService = Depends(get_broadcast_service),
) -> ApiOut[BroadcastOut]:
    """Update name, description or image. BROADCASTER only."""
    params = BroadcastUpdateParams(
        name=name,
        description=description,
        image=await read_image_upload(image),
    )

    result = await service.update_broadcast(claims, params)
    if not result.success:
        return failure_response(result)

    return ApiOut[BroadcastOut](results=BroadcastOut.model_validate(result.data.model_dump()))


@router.get("/get_broadcast")
async def get_broadcast(
    broadcast_id: str = Query(..., description="Broadcast identifier"),
    service: BroadcastService = Depends(get_broadcast_service),
) -> ApiOut[BroadcastOut]:
    result = await service.get_broadcast(broadcast_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[BroadcastOut](results=BroadcastOut.model_validate(result.data.model_dump()))


@router.get("/get_members")
async def get_members(
    name: str = Query(..., description="Broadcast name"),
    service: BroadcastService = Depends(get_broadcast_service),
) -> ApiOut[MembersOut]:
    result = await service.get_broadcast_members(name)
    if not result.success:
        return failure_response(result)

    members = [MemberOut.model_validate(m.model_dump()) for m in result.data]
    return ApiOut[MembersOut](results=MembersOut(name=name, members=members))


@router.get("/verify_account")
async def verify_account(
    user: CurrentUser,
    service: BroadcastService = Depends(get_broadcast_service),
) -> ApiOut[VerifyAccountOut]:
    """Broadcasts the caller belongs to, with the caller's role in each."""
    result = await service.verify_broadcast_account(user.user_id)
    if not result.success:
        return failure_response(result)

    accounts = [BroadcastAccountOut.model_validate(a.model_dump()) for a in result.data]
    return ApiOut[VerifyAccountOut](results=VerifyAccountOut(accounts=accounts))


@router.get("/search")
async def search(
    claims: CurrentClaims,
    prefix: str = Query(..., min_length=1, description="Case-insensitive name prefix"),
    limit: int = Query(20, ge=1, le=100),
    service: BroadcastService = Depends(get_broadcast_service),
) -> ApiOut[SearchBroadcastsOut]:
    result = await service.search_broadcasts(claims, prefix=prefix, limit=limit)
    if not result.success:
        return failure_response(result)

    return ApiOut[SearchBroadcastsOut](
        results=SearchBroadcastsOut.model_validate(result.data.model_dump())
    )


@router.post("/join")
async def join(
    body: JoinBroadcastIn,
    user: CurrentUser,
    service: BroadcastService = Depends(get_broadcast_service),
) -> ApiOut[JoinBroadcastOut]:
    """Join a broadcast by name and receive a broadcast token."""
    result = await service.join_broadcast(user.user_id, body.name)
    if not result.success:
        return failure_response(result)

    return ApiOut[JoinBroadcastOut](results=JoinBroadcastOut.model_validate(result.data.model_dump()))


@router.post("/add_member")
async def add_member(
    body: MemberIn,
    claims: CurrentClaims,
    service: BroadcastService = Depends(get_broadcast_service),
) -> ApiOut[RoleChangeOut]:
    result = await service.add_member(claims, body.user_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[RoleChangeOut](
        results=RoleChangeOut(**result.data.model_dump(), message=result.message)
    )


@router.post("/update_role")
async def update_role(
    body: UpdateRoleIn,
    claims: CurrentClaims,
    service: BroadcastService = Depends(get_broadcast_service),
) -> ApiOut[RoleChangeOut]:
    """Promote MEMBER to CO_BROADCASTER or demote back. BROADCASTER only."""
    result = await service.update_role(claims, body.user_id, body.role)
    if not result.success:
        return failure_response(result)

    return ApiOut[RoleChangeOut](
        results=RoleChangeOut(**result.data.model_dump(), message=result.message)
    )


@router.post("/remove_member")
async def remove_member(
    body: MemberIn,
    claims: CurrentClaims,
    service: BroadcastService = Depends(get_broadcast_service),
) -> ApiOut[RoleChangeOut]:
    result = await service.remove_member(claims, body.user_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[RoleChangeOut](
        results=RoleChangeOut(**result.data.model_dump(), message=result.message)
    )


@router.post("/leave")
async def leave(
    claims: CurrentClaims,
    service: BroadcastService = Depends(get_broadcast_service),
) -> ApiOut[LeaveBroadcastOut]:
    result = await service.leave_broadcast(claims)
    if not result.success:
        return failure_response(result)

    return ApiOut[LeaveBroadcastOut](
        results=LeaveBroadcastOut(**result.data.model_dump(), message=result.message)
    )
