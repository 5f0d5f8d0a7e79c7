"""Broadcast record operations."""

import re

from loguru import logger
from pymongo.errors import DuplicateKeyError

from app.schemas import Broadcast, BroadcastMember, MemberRole
from app.shared.utils.time import utc_now
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ..utils.idgen import new_broadcast_id
from ._base import BaseService, BroadcastWrite
from .broadcast_models import (
    BroadcastAccountResponse,
    BroadcastClaims,
    BroadcastCreateParams,
    BroadcastResponse,
    BroadcastSearchResponse,
    BroadcastUpdateParams,
    MemberResponse,
)
from .membership_cache import to_broadcast_response

MAX_NAME_LENGTH = 64


def _validate_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise AppError(
            errcode=AppErrorCode.E_INVALID_REQUEST,
            errmesg="Name is required",
            status_code=HttpStatusCode.BAD_REQUEST,
        )
    if len(name) > MAX_NAME_LENGTH:
        raise AppError(
            errcode=AppErrorCode.E_INVALID_REQUEST,
            errmesg=f"Name must be at most {MAX_NAME_LENGTH} characters",
            status_code=HttpStatusCode.BAD_REQUEST,
        )
    return name


def _name_taken(name: str) -> AppError:
    return AppError(
        errcode=AppErrorCode.E_BROADCAST_NAME_TAKEN,
        errmesg=f"Broadcast name already taken: {name}",
        status_code=HttpStatusCode.CONFLICT,
    )


class BroadcastOperations(BaseService):
    """Broadcast-related operations."""

    async def create_broadcast(self, params: BroadcastCreateParams) -> BroadcastResponse:
        """
        Create a broadcast owned by the requesting user, who becomes its BROADCASTER.

        Raises AppError if the user already owns a broadcast or the name is taken.
        """
        name = _validate_name(params.name)

        if await Broadcast.find_one(Broadcast.owner_id == params.user_id):
            raise AppError(
                errcode=AppErrorCode.E_BROADCAST_EXISTS,
                errmesg="User already owns a broadcast",
                status_code=HttpStatusCode.CONFLICT,
            )
        if await Broadcast.find_one(Broadcast.name == name):
            raise _name_taken(name)

        image_key, image_url = await self._upload_image(params.image)

        now = utc_now()
        broadcast = Broadcast(
            broadcast_id=new_broadcast_id(),
            owner_id=params.user_id,
            name=name,
            description=params.description,
            image_url=image_url,
            members=[
                BroadcastMember(user_id=params.user_id, role=MemberRole.BROADCASTER, joined_at=now)
            ],
            created_at=now,
            updated_at=now,
        )

        logger.debug(f"Creating broadcast: {broadcast.model_dump(exclude={'id'})}")
        try:
            await broadcast.insert()
        except DuplicateKeyError as e:
            await self._discard_image(image_key)
            raise _name_taken(name) from e
        except Exception:
            await self._discard_image(image_key)
            raise

        return to_broadcast_response(broadcast)

    async def update_broadcast(
        self,
        claims: BroadcastClaims,
        params: BroadcastUpdateParams,
    ) -> BroadcastResponse:
        """
        Update name, description or image. Only the BROADCASTER may do this.

        Raises AppError if not authorized, broadcast missing or the new name is taken.
        """
        new_name = _validate_name(params.name) if params.name is not None else None
        if new_name is not None:
            existing = await Broadcast.find_one(Broadcast.name == new_name)
            if existing and existing.broadcast_id != claims.broadcast_id:
                raise _name_taken(new_name)

        # Authorize before touching storage
        current = await self._get_broadcast_or_raise(claims.broadcast_id)
        self._require_member(current, claims.user_id, [MemberRole.BROADCASTER])

        image_key, image_url = await self._upload_image(params.image)

        def mutate(broadcast: Broadcast) -> BroadcastWrite[None]:
            self._require_member(broadcast, claims.user_id, [MemberRole.BROADCASTER])
            updates = {}
            if new_name is not None and new_name != broadcast.name:
                updates[Broadcast.name] = new_name
            if params.description is not None and params.description != broadcast.description:
                updates[Broadcast.description] = params.description
            if image_url is not None:
                updates[Broadcast.image_url] = image_url
            if updates:
                updates[Broadcast.updated_at] = utc_now()
            return BroadcastWrite(result=None, updates=updates)

        try:
            broadcast, _ = await self._write_broadcast(claims.broadcast_id, mutate)
        except DuplicateKeyError as e:
            await self._discard_image(image_key)
            raise _name_taken(new_name or "") from e
        except Exception:
            await self._discard_image(image_key)
            raise

        return to_broadcast_response(broadcast)

    async def get_broadcast(self, broadcast_id: str) -> BroadcastResponse:
        """Get a broadcast through the cache. Raises AppError if not found."""
        broadcast = await self.cache.get_broadcast(broadcast_id)
        if broadcast is None:
            raise AppError(
                errcode=AppErrorCode.E_BROADCAST_NOT_FOUND,
                errmesg=f"Broadcast not found: {broadcast_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return broadcast

    async def get_broadcast_members(self, name: str) -> list[MemberResponse]:
        """Get the member list of a broadcast by name through the cache."""
        members = await self.cache.get_members(name)
        if members is None:
            raise AppError(
                errcode=AppErrorCode.E_BROADCAST_NOT_FOUND,
                errmesg=f"Broadcast not found: {name}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return members

    async def verify_broadcast_account(self, user_id: str) -> list[BroadcastAccountResponse]:
        """List the broadcasts the user belongs to, with the user's role in each."""
        broadcasts = await Broadcast.find({"members.user_id": user_id}).to_list()

        accounts = []
        for broadcast in broadcasts:
            member = broadcast.find_member(user_id)
            if member is None:
                continue
            accounts.append(
                BroadcastAccountResponse(broadcast=to_broadcast_response(broadcast), role=member.role)
            )
        return accounts

    async def search_broadcasts(
        self,
        claims: BroadcastClaims,
        prefix: str,
        limit: int = 20,
    ) -> BroadcastSearchResponse:
        """
        Case-insensitive name-prefix search for collaboration targets.

        Only a BROADCASTER may search; the caller's own broadcast is excluded.
        """
        current = await self._get_broadcast_or_raise(claims.broadcast_id)
        self._require_member(current, claims.user_id, [MemberRole.BROADCASTER])

        if limit < 1 or limit > 100:
            logger.warning(f"Invalid search limit: {limit}")
            limit = 20

        query = {"name": {"$regex": f"^{re.escape(prefix.strip())}", "$options": "i"}}
        broadcasts = (
            await Broadcast.find(query, Broadcast.broadcast_id != claims.broadcast_id)
            .sort("+name")
            .limit(limit)
            .to_list()
        )
        return BroadcastSearchResponse(broadcasts=[to_broadcast_response(b) for b in broadcasts])
