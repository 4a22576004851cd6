"""Column discovery — candidate tables/columns for a question.

The selected column ids (``TABLE.COLUMN``) are sent back with the question
as the ``selectedColumns`` filter.
"""

from __future__ import annotations

import logging

from config.settings import Settings, get_settings
from models.auth import ColumnDiscoveryRequest, ColumnDiscoveryResponse
from services.api_client import ApiClient

logger = logging.getLogger(__name__)


class ColumnDiscoveryClient:
    def __init__(self, api: ApiClient, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._api = api
        self._path = f"{settings.columns_path}/discover"

    async def discover_columns(
        self,
        question: str,
        user_id: int | None = None,
        session_id: str | None = None,
    ) -> ColumnDiscoveryResponse:
        request = ColumnDiscoveryRequest(
            question=question, user_id=user_id, session_id=session_id
        )
        data = await self._api.post(
            self._path, json_body=request.model_dump(by_alias=True, exclude_none=True)
        )
        response = ColumnDiscoveryResponse.model_validate(data)
        if not response.success:
            logger.warning("Column discovery failed: %s", response.error_message)
        return response


def column_ids(response: ColumnDiscoveryResponse) -> list[str]:
    """Flatten a discovery response into ``TABLE.COLUMN`` ids."""
    return [column.id for table in response.tables for column in table.columns]
