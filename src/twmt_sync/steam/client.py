import logging
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Self

import httpx

from twmt_sync.constants import STEAM_WORKSHOP_URL

logger = logging.getLogger(__name__)

BASE_URL = "https://api.steampowered.com"
FILE_DETAILS_PATH = "/ISteamRemoteStorage/GetPublishedFileDetails/v1/"
MAX_ITEMS_PER_REQUEST = 100


class WorkshopApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class WorkshopModInfo:
    workshop_id: str
    app_id: int
    title: str
    workshop_url: str
    file_size: int | None = None
    time_created: int | None = None
    time_updated: int | None = None
    subscriptions: int | None = None
    tags: list[str] = field(default_factory=list)


def _opt_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_file_details(details: dict[str, Any], app_id: int) -> WorkshopModInfo:
    workshop_id = str(details["publishedfileid"])
    return WorkshopModInfo(
        workshop_id=workshop_id,
        app_id=app_id,
        title=details.get("title") or "Unknown",
        workshop_url=STEAM_WORKSHOP_URL.format(workshop_id=workshop_id),
        file_size=_opt_int(details.get("file_size")),
        time_created=_opt_int(details.get("time_created")),
        time_updated=_opt_int(details.get("time_updated")),
        subscriptions=_opt_int(details.get("subscriptions")),
        tags=[t["tag"] for t in details.get("tags") or [] if isinstance(t, dict) and "tag" in t],
    )


class WorkshopClient:
    def __init__(self, base_url: str = BASE_URL, api_key: str = "") -> None:
        self._base_url = base_url
        self._api_key = api_key
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Accept": "application/json"},
            timeout=30.0,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("WorkshopClient not entered as context manager")
        return self._client

    async def get_published_file_details(
        self, workshop_ids: list[str], app_id: int
    ) -> list[WorkshopModInfo]:
        """Fetch metadata for up to 100 Workshop items in one request.

        Items the API reports with ``result != 1`` (deleted, private) are
        omitted from the returned list.
        """
        if not workshop_ids:
            return []
        if len(workshop_ids) > MAX_ITEMS_PER_REQUEST:
            raise WorkshopApiError(f"Cannot fetch more than {MAX_ITEMS_PER_REQUEST} items at once")

        form: dict[str, str] = {"itemcount": str(len(workshop_ids))}
        for i, wid in enumerate(workshop_ids):
            form[f"publishedfileids[{i}]"] = wid
        if self._api_key:
            form["key"] = self._api_key

        resp = await self.client.post(FILE_DETAILS_PATH, data=form)
        if resp.status_code != 200:
            raise WorkshopApiError("GetPublishedFileDetails failed", status_code=resp.status_code)
        mods: list[WorkshopModInfo] = []
        try:
            details_list = resp.json()["response"]["publishedfiledetails"]
            for details in details_list:
                if details.get("result") != 1:
                    logger.warning(
                        "Skipping mod %s: result=%s",
                        details.get("publishedfileid"),
                        details.get("result"),
                    )
                    continue
                mods.append(parse_file_details(details, app_id))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise WorkshopApiError("Invalid API response format") from exc
        logger.info("Fetched %d/%d workshop mods", len(mods), len(workshop_ids))
        return mods
