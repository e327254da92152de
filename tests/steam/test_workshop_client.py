from urllib.parse import parse_qs

import httpx
import pytest
import respx

from twmt_sync.steam.client import (
    BASE_URL,
    FILE_DETAILS_PATH,
    WorkshopApiError,
    WorkshopClient,
    parse_file_details,
)

DETAILS_URL = f"{BASE_URL}{FILE_DETAILS_PATH}"


def _details(wid: str, **overrides) -> dict:
    data = {
        "publishedfileid": wid,
        "result": 1,
        "title": f"Mod {wid}",
        "file_size": "1048576",
        "time_created": 1_600_000_000,
        "time_updated": 1_700_000_000,
        "subscriptions": 4200,
        "tags": [{"tag": "Units"}, {"tag": "Graphical"}],
    }
    data.update(overrides)
    return data


def _payload(*details: dict) -> dict:
    return {
        "response": {
            "result": 1,
            "resultcount": len(details),
            "publishedfiledetails": list(details),
        }
    }


class TestParseFileDetails:
    def test_full_record(self):
        info = parse_file_details(_details("123"), 1142710)
        assert info.workshop_id == "123"
        assert info.app_id == 1142710
        assert info.title == "Mod 123"
        assert info.file_size == 1048576
        assert info.time_updated == 1_700_000_000
        assert info.subscriptions == 4200
        assert info.tags == ["Units", "Graphical"]
        assert info.workshop_url.endswith("?id=123")

    def test_missing_fields(self):
        info = parse_file_details({"publishedfileid": 9, "result": 1}, 1142710)
        assert info.title == "Unknown"
        assert info.time_updated is None
        assert info.subscriptions is None
        assert info.tags == []


class TestWorkshopClient:
    @respx.mock
    @pytest.mark.asyncio
    async def test_posts_form_data(self):
        route = respx.post(DETAILS_URL).mock(
            return_value=httpx.Response(200, json=_payload(_details("111"), _details("222")))
        )
        async with WorkshopClient(api_key="secret") as client:
            mods = await client.get_published_file_details(["111", "222"], 1142710)

        assert [m.workshop_id for m in mods] == ["111", "222"]
        form = parse_qs(route.calls[0].request.content.decode())
        assert form["itemcount"] == ["2"]
        assert form["publishedfileids[0]"] == ["111"]
        assert form["publishedfileids[1]"] == ["222"]
        assert form["key"] == ["secret"]

    @respx.mock
    @pytest.mark.asyncio
    async def test_no_key_when_unset(self):
        route = respx.post(DETAILS_URL).mock(
            return_value=httpx.Response(200, json=_payload(_details("111")))
        )
        async with WorkshopClient() as client:
            await client.get_published_file_details(["111"], 1142710)
        assert "key" not in parse_qs(route.calls[0].request.content.decode())

    @respx.mock
    @pytest.mark.asyncio
    async def test_skips_unavailable_items(self):
        respx.post(DETAILS_URL).mock(
            return_value=httpx.Response(
                200, json=_payload(_details("111"), {"publishedfileid": "222", "result": 9})
            )
        )
        async with WorkshopClient() as client:
            mods = await client.get_published_file_details(["111", "222"], 1142710)
        assert [m.workshop_id for m in mods] == ["111"]

    @respx.mock
    @pytest.mark.asyncio
    async def test_http_error_status(self):
        respx.post(DETAILS_URL).mock(return_value=httpx.Response(503))
        async with WorkshopClient() as client:
            with pytest.raises(WorkshopApiError) as exc_info:
                await client.get_published_file_details(["111"], 1142710)
        assert exc_info.value.status_code == 503

    @respx.mock
    @pytest.mark.asyncio
    async def test_malformed_body(self):
        respx.post(DETAILS_URL).mock(return_value=httpx.Response(200, json={"unexpected": True}))
        async with WorkshopClient() as client:
            with pytest.raises(WorkshopApiError, match="Invalid API response"):
                await client.get_published_file_details(["111"], 1142710)

    @respx.mock
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "details",
        [None, ["not-a-dict"], [{"result": 1}]],
        ids=["null-list", "string-item", "missing-id"],
    )
    async def test_unexpected_details_shape(self, details):
        body = {"response": {"result": 1, "publishedfiledetails": details}}
        respx.post(DETAILS_URL).mock(return_value=httpx.Response(200, json=body))
        async with WorkshopClient() as client:
            with pytest.raises(WorkshopApiError, match="Invalid API response"):
                await client.get_published_file_details(["111"], 1142710)

    @pytest.mark.asyncio
    async def test_too_many_ids(self):
        async with WorkshopClient() as client:
            with pytest.raises(WorkshopApiError, match="more than 100"):
                await client.get_published_file_details([str(i) for i in range(101)], 1142710)

    @pytest.mark.asyncio
    async def test_empty_ids_skip_request(self):
        async with WorkshopClient() as client:
            assert await client.get_published_file_details([], 1142710) == []

    @pytest.mark.asyncio
    async def test_not_entered_raises(self):
        client = WorkshopClient()
        with pytest.raises(RuntimeError, match="not entered"):
            _ = client.client
