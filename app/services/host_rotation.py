"""
Host rotation: pick who hosts a group's next event.

Members take turns in the order their ids are stored on the group. The host
following the previous event's host gets the next event, wrapping around at
the end of the list.
"""

from enum import Enum
from typing import Optional, Sequence

from app.core.errors import NoMembersError


class HostFallback(str, Enum):
    """What to do when the previous host is no longer a member"""
    FIRST_MEMBER = "first_member"
    GROUP_CREATOR = "group_creator"


def resolve_next_host(
    member_ids: Sequence[str],
    previous_host: Optional[str] = None,
    fallback: HostFallback = HostFallback.FIRST_MEMBER,
    creator_id: Optional[str] = None,
) -> str:
    """Return the member who hosts the next event.

    Args:
        member_ids: Current members in their stored order.
        previous_host: Host of the group's most recently created event, or
            None when the group has no events yet.
        fallback: Policy used when previous_host has left the group.
        creator_id: Group creator, consulted by HostFallback.GROUP_CREATOR.

    Raises:
        NoMembersError: If member_ids is empty.
    """
    if not member_ids:
        raise NoMembersError()

    if previous_host is None:
        return member_ids[0]

    try:
        index = list(member_ids).index(previous_host)
    except ValueError:
        if fallback == HostFallback.GROUP_CREATOR and creator_id in member_ids:
            return creator_id
        return member_ids[0]

    return member_ids[(index + 1) % len(member_ids)]
