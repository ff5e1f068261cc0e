"""
Asset Service
=============
Registry for uploaded files (video, image, PDF, Unity builds) that materials
point at through ``asset_id``. Only in-memory storage ships; blob storage
backends plug in behind the same three methods.
"""

import copy
import itertools
from datetime import datetime
from typing import Any, Dict, Optional

from hypatia.utils.error_handling import ValidationError
from hypatia.utils.logging_utils import get_logger

logger = get_logger(__name__)


class AssetService:
    """Creates and deletes asset records."""

    def __init__(self):
        self.mock_data: Dict[int, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        logger.info("AssetService initialized in mock mode")

    async def create_asset(self, asset: Dict[str, Any]) -> int:
        """
        Register an asset.

        Args:
            asset: Asset metadata; ``filename`` is required

        Returns:
            The new asset id
        """
        if not asset.get("filename"):
            raise ValidationError("Asset requires a filename", field_errors={"filename": "required"})

        asset_id = next(self._ids)
        record = copy.deepcopy(asset)
        record["id"] = asset_id
        record["created_at"] = datetime.now()
        self.mock_data[asset_id] = record
        logger.info(f"Created asset {asset_id} ({record['filename']})")
        return asset_id

    async def get_asset(self, asset_id: int) -> Optional[Dict[str, Any]]:
        record = self.mock_data.get(asset_id)
        return copy.deepcopy(record) if record else None

    async def delete_asset(self, asset_id: int) -> bool:
        if self.mock_data.pop(asset_id, None) is None:
            logger.warning(f"Asset not found for deletion: {asset_id}")
            return False
        logger.info(f"Deleted asset {asset_id}")
        return True
