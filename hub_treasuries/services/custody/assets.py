"""Production/test asset id selection."""

from typing import List, Optional

from hub_treasuries.core.config import Settings, get_settings

# Test-network ids that do not follow the ``<ID>_TEST`` convention
TEST_ASSET_OVERRIDES = {"MATIC": "MATIC_POLYGON_MUMBAI"}


class Assets:
    """Maps production asset ids to the ids active for this deployment.

    ``test_mode`` is fixed at construction.
    """

    def __init__(self, supported_ids: List[str], test_mode: bool = False):
        self._supported_ids = list(supported_ids)
        self._test_mode = test_mode

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Assets":
        settings = settings or get_settings()
        return cls(settings.fireblocks_supported_asset_ids, settings.fireblocks_test_mode)

    @property
    def test_mode(self) -> bool:
        return self._test_mode

    def id(self, asset_id: str) -> str:
        if not self._test_mode:
            return asset_id
        return TEST_ASSET_OVERRIDES.get(asset_id, f"{asset_id}_TEST")

    def ids(self) -> List[str]:
        """Active ids of every supported asset, in configured order."""
        return [self.id(asset_id) for asset_id in self._supported_ids]
