from fastapi import APIRouter, HTTPException, Request

from logging_config import get_logger
from registry import room_registry
from schemas.rooms import RoomDetailsResponse, RoomListResponse, RoomMember, RoomSummary

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/", response_model=RoomListResponse)
async def list_rooms(request: Request):
    """List active rooms with their member counts. Rooms exist only while they have members."""
    client_host = request.client.host if request.client else "unknown"
    logger.debug(f"Room list request from {client_host}")

    rooms = [
        RoomSummary(room_id=room_id, member_count=room_registry.member_count(room_id))
        for room_id in room_registry.room_ids()
    ]
    return RoomListResponse(
        rooms=rooms,
        total_rooms=len(rooms),
        total_members=sum(room.member_count for room in rooms),
    )


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Get room details.

    Returns:
    - room_id: Room identifier as sent in ``join``
    - created_at: When the first member joined
    - member_count: Current number of members
    - users: Members in join order with connection and last-activity timestamps
    """
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room details request for {room_id} from {client_host}")

    room = room_registry.get_room(room_id)
    if room is None:
        logger.info(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    users = [
        RoomMember(user_id=user_id, connected_at=conn.connected_at, last_activity=conn.last_activity)
        for user_id, conn in room_registry.members_of(room_id)
    ]
    return RoomDetailsResponse(
        room_id=room_id,
        created_at=room.created_at,
        member_count=len(users),
        users=users,
    )
