"""Tests for the ties API endpoints."""

import asyncio
import json

import pytest
from httpx import AsyncClient

from tietrack.main import app
from tietrack.schemas.tie import PLACEHOLDER_IMAGE_URL, UNCATEGORIZED_LABEL
from tietrack.services.events import EventType
from tietrack.services.live_query import EMPTY_MESSAGES, EmptyReason


async def create_tie_via_api(client: AsyncClient, files=None, **fields) -> dict:
    """Helper to submit the add dialog."""
    data = {"name": "Navy Solid", "quantity": "4", "unit_price": "18.50", "category": "Solid"}
    data.update(fields)
    response = await client.post("/api/v1/ties", data=data, files=files)
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================================
# Create and List
# =============================================================================


class TestCreateAndList:
    """Tests for adding ties and reading them back by filter."""

    @pytest.mark.asyncio
    async def test_added_tie_shows_in_matching_filters(self, auth_client: AsyncClient):
        tie = await create_tie_via_api(auth_client)

        assert tie["image_url"] == PLACEHOLDER_IMAGE_URL
        assert tie["quantity"] == 4
        assert tie["unit_price"] == 18.5

        all_ties = (await auth_client.get("/api/v1/ties", params={"category": "All"})).json()
        solid = (await auth_client.get("/api/v1/ties", params={"category": "Solid"})).json()
        striped = (await auth_client.get("/api/v1/ties", params={"category": "Striped"})).json()

        assert [t["id"] for t in all_ties["items"]] == [tie["id"]]
        assert [t["id"] for t in solid["items"]] == [tie["id"]]
        assert striped["items"] == []
        assert striped["empty_reason"] == EmptyReason.FILTERED.value

    @pytest.mark.asyncio
    async def test_empty_inventory_message(self, auth_client: AsyncClient):
        response = await auth_client.get("/api/v1/ties")

        data = response.json()
        assert data["state"] == "ready"
        assert data["items"] == []
        assert data["message"] == EMPTY_MESSAGES[EmptyReason.NO_DATA]

    @pytest.mark.asyncio
    async def test_search(self, auth_client: AsyncClient):
        await create_tie_via_api(auth_client, name="Navy Solid")
        await create_tie_via_api(auth_client, name="Red Stripe", category="Striped")

        response = await auth_client.get("/api/v1/ties", params={"search": "stripe"})

        assert [t["name"] for t in response.json()["items"]] == ["Red Stripe"]

    @pytest.mark.asyncio
    async def test_uncategorized(self, auth_client: AsyncClient):
        await create_tie_via_api(auth_client, name="Loose", category="")

        response = await auth_client.get("/api/v1/ties", params={"category": UNCATEGORIZED_LABEL})

        items = response.json()["items"]
        assert [t["name"] for t in items] == ["Loose"]
        assert items[0]["category"] == UNCATEGORIZED_LABEL

    @pytest.mark.asyncio
    async def test_validation_errors(self, auth_client: AsyncClient):
        response = await auth_client.post(
            "/api/v1/ties",
            data={"name": "", "quantity": "-1", "unit_price": "abc"},
        )

        assert response.status_code == 422
        fields = {e["field"] for e in response.json()["detail"]}
        assert fields == {"name", "quantity", "unit_price"}

    @pytest.mark.asyncio
    async def test_create_with_image(self, auth_client: AsyncClient, png_bytes, image_store):
        tie = await create_tie_via_api(
            auth_client,
            files={"image": ("navy.png", png_bytes, "image/png")},
        )

        assert image_store.owns_url(tie["image_url"])
        assert image_store.path_for_url(tie["image_url"]).exists()

    @pytest.mark.asyncio
    async def test_invalid_image_rejected(self, auth_client: AsyncClient):
        response = await auth_client.post(
            "/api/v1/ties",
            data={"name": "Navy"},
            files={"image": ("navy.png", b"not an image", "image/png")},
        )

        assert response.status_code == 422
        assert response.json()["detail"][0]["field"] == "image"

    @pytest.mark.asyncio
    async def test_inline_category(self, auth_client: AsyncClient):
        await create_tie_via_api(auth_client, category="Solid", new_category="Knit")

        categories = (await auth_client.get("/api/v1/categories")).json()
        assert "Knit" in [c["name"] for c in categories["items"]]

    @pytest.mark.asyncio
    async def test_create_broadcasts(self, auth_client: AsyncClient, broadcaster):
        async with broadcaster.subscribe() as queue:
            tie = await create_tie_via_api(auth_client)
            event = queue.get_nowait()

        assert event.type == EventType.TIE_CREATED
        assert event.payload["tie_id"] == tie["id"]


# =============================================================================
# Read, Edit, Delete
# =============================================================================


class TestRecordEndpoints:
    """Tests for single-tie endpoints."""

    @pytest.mark.asyncio
    async def test_get_tie(self, auth_client: AsyncClient):
        tie = await create_tie_via_api(auth_client)

        response = await auth_client.get(f"/api/v1/ties/{tie['id']}")

        assert response.status_code == 200
        assert response.json()["name"] == "Navy Solid"

    @pytest.mark.asyncio
    async def test_get_missing(self, auth_client: AsyncClient):
        response = await auth_client.get("/api/v1/ties/missing")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_edit_keeps_id_and_image(self, auth_client: AsyncClient, png_bytes):
        tie = await create_tie_via_api(
            auth_client,
            files={"image": ("navy.png", png_bytes, "image/png")},
        )

        response = await auth_client.put(
            f"/api/v1/ties/{tie['id']}",
            data={"name": "Navy Blue", "quantity": "6", "unit_price": "20", "category": "Solid"},
        )

        assert response.status_code == 200
        edited = response.json()
        assert edited["id"] == tie["id"]
        assert edited["name"] == "Navy Blue"
        assert edited["quantity"] == 6
        assert edited["image_url"] == tie["image_url"]

    @pytest.mark.asyncio
    async def test_edit_missing(self, auth_client: AsyncClient):
        response = await auth_client.put("/api/v1/ties/missing", data={"name": "Ghost"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_patch(self, auth_client: AsyncClient):
        tie = await create_tie_via_api(auth_client)

        response = await auth_client.patch(
            f"/api/v1/ties/{tie['id']}",
            json={"quantity": 9, "id": "ignored"},
        )

        assert response.status_code == 200
        assert response.json()["quantity"] == 9
        assert response.json()["id"] == tie["id"]

    @pytest.mark.asyncio
    async def test_patch_new_category_listed(self, auth_client: AsyncClient):
        tie = await create_tie_via_api(auth_client, category="Solid")

        response = await auth_client.patch(f"/api/v1/ties/{tie['id']}", json={"category": "Knit"})

        assert response.status_code == 200
        filters = (await auth_client.get("/api/v1/categories")).json()["filters"]
        assert "Knit" in filters
        knit = (await auth_client.get("/api/v1/ties", params={"category": "Knit"})).json()
        assert [t["id"] for t in knit["items"]] == [tie["id"]]

    @pytest.mark.asyncio
    async def test_patch_reserved_category_rejected(self, auth_client: AsyncClient):
        tie = await create_tie_via_api(auth_client)

        response = await auth_client.patch(f"/api/v1/ties/{tie['id']}", json={"category": "All"})

        assert response.status_code == 422
        assert response.json()["detail"][0]["field"] == "category"

    @pytest.mark.asyncio
    async def test_edit_cannot_delete_another_ties_image(
        self, auth_client: AsyncClient, png_bytes, make_image, image_store
    ):
        first = await create_tie_via_api(
            auth_client, files={"image": ("a.png", png_bytes, "image/png")}
        )
        second = await create_tie_via_api(
            auth_client, name="Red", files={"image": ("b.png", png_bytes, "image/png")}
        )

        response = await auth_client.put(
            f"/api/v1/ties/{first['id']}",
            data={"name": "Navy Solid", "image_url": second["image_url"]},
            files={"image": ("c.png", make_image(10, 10), "image/png")},
        )

        assert response.status_code == 200
        assert image_store.path_for_url(second["image_url"]).exists()
        assert not image_store.path_for_url(first["image_url"]).exists()
        assert response.json()["image_url"] != second["image_url"]

    @pytest.mark.asyncio
    async def test_patch_invalid(self, auth_client: AsyncClient):
        tie = await create_tie_via_api(auth_client)

        response = await auth_client.patch(f"/api/v1/ties/{tie['id']}", json={"unit_price": -5})

        assert response.status_code == 422
        assert response.json()["detail"][0]["field"] == "unit_price"

    @pytest.mark.asyncio
    async def test_delete(self, auth_client: AsyncClient, png_bytes, image_store):
        tie = await create_tie_via_api(
            auth_client,
            files={"image": ("navy.png", png_bytes, "image/png")},
        )
        path = image_store.path_for_url(tie["image_url"])

        response = await auth_client.delete(f"/api/v1/ties/{tie['id']}")

        assert response.status_code == 200
        assert response.json()["message"] == "Navy Solid was removed."
        assert not path.exists()
        assert (await auth_client.get(f"/api/v1/ties/{tie['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_delete_missing(self, auth_client: AsyncClient):
        response = await auth_client.delete("/api/v1/ties/missing")
        assert response.status_code == 404


# =============================================================================
# Dialog Endpoints
# =============================================================================


class TestDialogEndpoints:
    """Tests for form state and image preview."""

    @pytest.mark.asyncio
    async def test_form_for_new_tie(self, auth_client: AsyncClient):
        await auth_client.post("/api/v1/categories", json={"name": "Solid"})

        response = await auth_client.get("/api/v1/ties/form")

        assert response.status_code == 200
        state = response.json()
        assert state["tie_id"] is None
        assert state["categories"] == ["Solid"]
        assert state["submit_label"] == "Add Tie"

    @pytest.mark.asyncio
    async def test_form_for_edit(self, auth_client: AsyncClient):
        tie = await create_tie_via_api(auth_client)

        response = await auth_client.get("/api/v1/ties/form", params={"tie_id": tie["id"]})

        assert response.json()["name"] == "Navy Solid"
        assert response.json()["submit_label"] == "Save Changes"

    @pytest.mark.asyncio
    async def test_form_for_missing(self, auth_client: AsyncClient):
        response = await auth_client.get("/api/v1/ties/form", params={"tie_id": "missing"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_preview(self, auth_client: AsyncClient, png_bytes, image_store):
        response = await auth_client.post(
            "/api/v1/ties/preview",
            files={"image": ("navy.png", png_bytes, "image/png")},
        )

        assert response.status_code == 200
        assert response.json()["preview_url"].startswith("data:image/png;base64,")
        assert not any(image_store.root.iterdir())

    @pytest.mark.asyncio
    async def test_preview_rejects_non_image(self, auth_client: AsyncClient):
        response = await auth_client.post(
            "/api/v1/ties/preview",
            files={"image": ("x.png", b"nope", "image/png")},
        )
        assert response.status_code == 422


# =============================================================================
# Live Stream
# =============================================================================


class _StreamConnection:
    """Drive the app over raw ASGI so an endless response can be read.

    httpx's ASGI transport buffers the whole body, which never ends here.
    """

    def __init__(self, path: str, query: str, headers: dict[str, str]):
        self.frames: asyncio.Queue[str] = asyncio.Queue()
        self.status: int | None = None
        self._disconnected = asyncio.Event()
        self._scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": path,
            "raw_path": path.encode(),
            "root_path": "",
            "query_string": query.encode(),
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
            "client": ("127.0.0.1", 5000),
            "server": ("test", 80),
        }
        self._task: asyncio.Task | None = None

    async def _receive(self) -> dict:
        await self._disconnected.wait()
        return {"type": "http.disconnect"}

    async def _send(self, message: dict) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
        elif message["type"] == "http.response.body" and message.get("body"):
            await self.frames.put(message["body"].decode())

    def open(self) -> None:
        self._task = asyncio.create_task(app(self._scope, self._receive, self._send))

    async def next_snapshot(self) -> dict:
        """Wait for the next snapshot frame, skipping heartbeats."""
        while True:
            frame = await asyncio.wait_for(self.frames.get(), timeout=5)
            lines = dict(line.split(": ", 1) for line in frame.strip().splitlines())
            if lines["event"] == "snapshot":
                return json.loads(lines["data"])["payload"]

    async def disconnect(self) -> None:
        self._disconnected.set()
        await asyncio.wait_for(self._task, timeout=5)


class TestStream:
    """Tests for the live list over Server-Sent Events."""

    @pytest.mark.asyncio
    async def test_snapshots_follow_writes(self, auth_client: AsyncClient, broadcaster):
        await create_tie_via_api(auth_client, name="Navy Solid")
        connection = _StreamConnection(
            "/api/v1/ties/stream",
            "category=Solid",
            {"host": "test", "authorization": auth_client.headers["Authorization"]},
        )
        connection.open()

        loading = await connection.next_snapshot()
        ready = await connection.next_snapshot()

        assert connection.status == 200
        assert loading["state"] == "loading"
        assert ready["state"] == "ready"
        assert [t["name"] for t in ready["items"]] == ["Navy Solid"]
        assert broadcaster.client_count == 1

        await create_tie_via_api(auth_client, name="Grey Solid")
        updated = await connection.next_snapshot()
        while updated["state"] != "ready":
            updated = await connection.next_snapshot()

        assert sorted(t["name"] for t in updated["items"]) == ["Grey Solid", "Navy Solid"]

        await connection.disconnect()
        for _ in range(100):
            if broadcaster.client_count == 0:
                break
            await asyncio.sleep(0.01)

        assert broadcaster.client_count == 0

    @pytest.mark.asyncio
    async def test_requires_session(self, client: AsyncClient):
        response = await client.get("/api/v1/ties/stream")
        assert response.status_code == 401
