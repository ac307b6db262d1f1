"""
Group API routes
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from app.core.dependencies import enforce_rate_limit, get_group_service
from app.schemas.group import GroupCreate, MemberAdd
from app.services.group_service import GroupService
from app.utils.responses import success_response
from app.utils.security import get_current_user_id

router = APIRouter()

@router.post("/groups", dependencies=[Depends(enforce_rate_limit)])
async def create_group(
    group_data: GroupCreate,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Create a group; the caller becomes a member"""
    group_id = groups.create_group(
        name=group_data.name,
        member_ids=group_data.member_ids,
        created_by=user_id,
        description=group_data.description,
        location=group_data.location
    )
    return success_response(
        message="Group created successfully",
        data=groups.get_group(group_id),
        status_code=201
    )

@router.get("/groups")
async def list_my_groups(
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """List the caller's groups, newest first"""
    return success_response(
        message="Groups retrieved",
        data=groups.list_groups_for_user(user_id)
    )

@router.get("/groups/{group_id}")
async def get_group(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    return success_response(message="Group retrieved", data=groups.get_group(group_id))

@router.patch("/groups/{group_id}", dependencies=[Depends(enforce_rate_limit)])
async def update_group(
    group_id: str,
    payload: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Edit name, description or location"""
    return success_response(
        message="Group updated",
        data=groups.update_group(group_id, payload)
    )

@router.post("/groups/{group_id}/members", dependencies=[Depends(enforce_rate_limit)])
async def add_member(
    group_id: str,
    member: MemberAdd,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    return success_response(
        message="Member added",
        data=groups.add_member(group_id, member.user_id)
    )

@router.delete("/groups/{group_id}/members/{member_id}", dependencies=[Depends(enforce_rate_limit)])
async def remove_member(
    group_id: str,
    member_id: str,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Remove a member (or let the caller leave)"""
    return success_response(
        message="Member removed",
        data=groups.remove_member(group_id, member_id)
    )
