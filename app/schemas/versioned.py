"""Optimistic locking support shared by documents with a `version` field."""

from collections.abc import Mapping
from typing import Any

from beanie import Document
from beanie.odm.fields import ExpressionField
from beanie.odm.operators.update.general import Set
from loguru import logger
from pydantic import Field

from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class VersionedDocument(Document):
    """Document base whose writes are compare-and-swap on `version`."""

    # Version control for optimistic locking
    version: int = Field(default=1)

    async def update_with_version_check(
        self,
        updates: Mapping[ExpressionField | str, Any],
    ) -> bool:
        """Apply `updates` only if the stored version still equals ours.

        One attempt, no retry: callers re-read, re-validate and call again
        when this returns False. On success the version is bumped and the
        top-level fields of this instance reflect the write.

        Raises:
            AppError: If updates include the version field (E_INVALID_REQUEST).
        """
        model = type(self)
        if "version" in updates:
            raise AppError(
                AppErrorCode.E_INVALID_REQUEST,
                "updates must not include version",
                HttpStatusCode.BAD_REQUEST,
            )

        current_version = self.version or 1
        new_version = current_version + 1
        update_fields = dict(updates)
        update_fields[model.version] = new_version  # type: ignore[index]

        result = await model.find(
            model.id == self.id,
            model.version == current_version,
        ).update(Set(update_fields))  # type: ignore[arg-type]

        if not result or result.modified_count == 0:
            logger.debug(
                f"{model.__name__} {self.id} version conflict (expected version {current_version})"
            )
            return False

        for field, value in updates.items():
            name = str(field)
            if "." not in name:
                setattr(self, name, value)
        self.version = new_version

        logger.debug(
            f"{model.__name__} {self.id} updated (version {current_version} -> {new_version})"
        )
        return True

    async def delete_with_version_check(self) -> bool:
        """Delete this document only if nobody has written it since it was read."""
        model = type(self)
        result = await model.find(
            model.id == self.id,
            model.version == (self.version or 1),
        ).delete()

        return bool(result and result.deleted_count > 0)
