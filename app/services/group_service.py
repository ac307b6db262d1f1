"""
Group creation and membership
"""

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.errors import NotFoundError, ValidationError
from app.schemas.group import Group, GroupUpdate
from app.services.document_store import DocumentStore
from app.services.repositories import GroupRepo
from app.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


class GroupService:
    """Service for groups and their member lists"""

    def __init__(self, store: DocumentStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    def create_group(
        self,
        name: str,
        member_ids: List[str],
        created_by: str,
        description: Optional[str] = None,
        location: Optional[str] = None,
    ) -> str:
        """Create a group; the creator always ends up among the members"""
        if not name or not name.strip() or not created_by:
            raise ValidationError("A group needs a name and a creator")

        members: List[str] = []
        for user_id in member_ids:
            if user_id and user_id not in members:
                members.append(user_id)
        if created_by not in members:
            members.append(created_by)

        group = Group(
            name=name.strip(),
            member_ids=members,
            created_by=created_by,
            created_at=self.clock(),
            description=description,
            location=location,
        )
        group_id = GroupRepo.create(self.store, group)
        logger.info(f"Created group {group_id} with {len(members)} members")
        return group_id

    def get_group(self, group_id: str) -> Group:
        group = GroupRepo.get(self.store, group_id)
        if group is None:
            raise NotFoundError(f"Group {group_id} not found")
        return group

    def list_groups_for_user(self, user_id: str) -> List[Group]:
        """Groups the user belongs to, newest first"""
        return GroupRepo.list_for_member(self.store, user_id)

    def add_member(self, group_id: str, user_id: str) -> Group:
        if not user_id:
            raise ValidationError("A member needs a user id")
        group = self.get_group(group_id)
        if group.has_member(user_id):
            return group
        GroupRepo.set_members(self.store, group_id, group.member_ids + [user_id])
        logger.info(f"{user_id} joined group {group_id}")
        return self.get_group(group_id)

    def remove_member(self, group_id: str, user_id: str) -> Group:
        """Remove a member; the stored order of the others is kept"""
        group = self.get_group(group_id)
        if not group.has_member(user_id):
            return group
        GroupRepo.set_members(self.store, group_id, [m for m in group.member_ids if m != user_id])
        logger.info(f"{user_id} left group {group_id}")
        return self.get_group(group_id)

    def update_group(self, group_id: str, fields: Union[GroupUpdate, Dict[str, Any]]) -> Group:
        """Change the group's name, description or location.

        Members are managed with add_member and remove_member.
        """
        if isinstance(fields, dict):
            try:
                fields = GroupUpdate.model_validate(fields)
            except PydanticValidationError as e:
                names = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
                raise ValidationError(f"These fields cannot be updated: {names}") from e

        data = fields.model_dump(exclude_unset=True)
        if not data:
            raise ValidationError("Nothing to update")
        if "name" in data:
            if not (data["name"] or "").strip():
                raise ValidationError("A group needs a name")
            data["name"] = data["name"].strip()

        self.get_group(group_id)
        GroupRepo.update(self.store, group_id, data)
        logger.info(f"Updated group {group_id}: {sorted(data)}")
        return self.get_group(group_id)
