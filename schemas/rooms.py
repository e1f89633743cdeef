from datetime import datetime
from typing import List

from pydantic import BaseModel


class RoomSummary(BaseModel):
    room_id: str
    member_count: int


class RoomListResponse(BaseModel):
    rooms: List[RoomSummary]
    total_rooms: int
    total_members: int


class RoomMember(BaseModel):
    user_id: str
    connected_at: datetime
    last_activity: datetime


class RoomDetailsResponse(BaseModel):
    room_id: str
    created_at: datetime
    member_count: int
    users: List[RoomMember]
