"""
Memories Backend: API Endpoint Tests
=====================================

What:  End-to-end HTTP tests through the FastAPI app, middleware included.
How:   httpx AsyncClient over ASGITransport; the database dependency is
       overridden with a throwaway SQLite database (see conftest.test_client).

What we test:
    ✅ Page lifecycle: create, upload image, move, delete, replace
    ✅ Rich-text body and text-style endpoints
    ✅ Background policy over HTTP
    ✅ Snapshot JPEG and letter sending, inbox, file serving
    ✅ Layout math endpoints
    ✅ Error body shape and status codes, request id header, health
"""

import io
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from PIL import Image


async def _create_page(client, **body) -> dict:
    response = await client.post("/api/pages", json=body)
    assert response.status_code == 201
    return response.json()


async def _upload(client, page_id, content, **form):
    return await client.post(
        f"/api/pages/{page_id}/items",
        files={"file": ("photo.png", content, "image/png")},
        data={k: str(v) for k, v in form.items()},
    )


class TestPages:
    @pytest.mark.asyncio
    async def test_create_and_get(self, test_client):
        book_id = str(uuid.uuid4())
        page = await _create_page(test_client, type="memory", book_id=book_id)
        assert page["type"] == "memory"
        assert page["document"]["items"] == []
        assert page["document"]["id"] == page["id"]

        response = await test_client.get(f"/api/pages/{page['id']}")
        assert response.status_code == 200
        assert response.json()["document"]["bodyText"] == ""

        listing = await test_client.get("/api/pages", params={"book_id": book_id})
        assert [p["id"] for p in listing.json()] == [page["id"]]

    @pytest.mark.asyncio
    async def test_get_missing_page(self, test_client):
        response = await test_client.get(f"/api/pages/{uuid.uuid4()}")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_found"
        assert "request_id" in body

    @pytest.mark.asyncio
    async def test_invalid_type(self, test_client):
        response = await test_client.post("/api/pages", json={"type": "diary"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_add_move_remove_image(self, test_client, png_bytes):
        page = await _create_page(test_client)

        response = await _upload(test_client, page["id"], png_bytes, center_x=500, center_y=700)
        assert response.status_code == 201
        item = response.json()
        assert item["type"] == "image"
        assert item["frame"] == [[375.0, 637.5], [250.0, 125.0]]

        moved = await test_client.patch(
            f"/api/pages/{page['id']}/items/{item['id']}",
            json={"frame": [[10, 20], [250, 125]], "rotation": 0.5},
        )
        assert moved.status_code == 200
        assert moved.json()["rotation"] == 0.5

        stored = (await test_client.get(f"/api/pages/{page['id']}")).json()["document"]
        assert stored["items"][0]["frame"] == [[10.0, 20.0], [250.0, 125.0]]

        for _ in range(2):
            deleted = await test_client.delete(f"/api/pages/{page['id']}/items/{item['id']}")
            assert deleted.status_code == 204

        stored = (await test_client.get(f"/api/pages/{page['id']}")).json()["document"]
        assert stored["items"] == []

    @pytest.mark.asyncio
    async def test_patch_missing_item(self, test_client):
        page = await _create_page(test_client)
        response = await test_client.patch(
            f"/api/pages/{page['id']}/items/{uuid.uuid4()}",
            json={"frame": [[0, 0], [10, 10]], "rotation": 0},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_upload_rejects_non_image(self, test_client):
        page = await _create_page(test_client)
        response = await _upload(test_client, page["id"], b"plain text, not a picture")
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
        assert response.json()["details"] == {"field": "file"}

    @pytest.mark.asyncio
    async def test_replace_document(self, test_client, sample_document):
        page = await _create_page(test_client)
        document = sample_document.model_copy(update={"id": uuid.UUID(page["id"])})

        response = await test_client.put(
            f"/api/pages/{page['id']}",
            content=document.to_bytes(),
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 200
        stored = response.json()["document"]
        assert stored == document.to_dict()

    @pytest.mark.asyncio
    async def test_replace_document_id_mismatch(self, test_client, sample_document):
        page = await _create_page(test_client)
        response = await test_client.put(
            f"/api/pages/{page['id']}",
            content=sample_document.to_bytes(),
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400


class TestText:
    @pytest.mark.asyncio
    async def test_body_and_style(self, test_client):
        page = await _create_page(test_client)
        style = {"font": {"family": "DejaVuSans", "size": 32}, "color": "#000000"}

        body = await test_client.put(
            f"/api/pages/{page['id']}/body",
            json={"runs": [{"text": "Hello world", "style": style}]},
        )
        assert body.status_code == 200
        assert body.json()["body_text"] == "Hello world"

        styled = await test_client.post(
            f"/api/pages/{page['id']}/text-style",
            json={"start": 6, "length": 5, "font": {"family": "DejaVuSans", "size": 48},
                  "color": "#aa0000"},
        )
        assert styled.status_code == 200
        runs = styled.json()["runs"]
        assert [run["text"] for run in runs] == ["Hello ", "world"]
        assert runs[1]["style"]["color"] == "#AA0000"

        stored = (await test_client.get(f"/api/pages/{page['id']}")).json()["document"]
        assert stored["bodyText"] == "Hello world"
        assert stored["attributedBodyText"]

    @pytest.mark.asyncio
    async def test_bad_color(self, test_client):
        page = await _create_page(test_client)
        response = await test_client.post(
            f"/api/pages/{page['id']}/text-style",
            json={"start": 0, "length": 1, "font": {"family": "DejaVuSans", "size": 12},
                  "color": "blue"},
        )
        assert response.status_code == 400


class TestBackground:
    @pytest.mark.asyncio
    async def test_policy(self, test_client):
        page = await _create_page(test_client)
        url = f"/api/pages/{page['id']}/background"

        color = await test_client.put(url, json={"kind": "color", "value": "#fff6e0"})
        assert color.json()["kind"] == "color"

        template = await test_client.put(url, json={"kind": "image", "value": "letterbg1"})
        body = template.json()
        assert body["kind"] == "image"
        assert body["background_color"] == "#FFF6E0"
        assert body["background_image_name"] == "letterbg1"

        cleared = await test_client.put(url, json={"kind": "none"})
        assert cleared.json()["background_color"] is None
        assert cleared.json()["background_image_name"] is None

    @pytest.mark.asyncio
    async def test_templates_listing(self, test_client):
        response = await test_client.get("/api/templates")
        assert response.status_code == 200
        assert isinstance(response.json()["templates"], list)


class TestSnapshotAndLetters:
    @pytest.mark.asyncio
    async def test_snapshot(self, test_client, png_bytes):
        page = await _create_page(test_client)
        await _upload(test_client, page["id"], png_bytes)

        response = await test_client.get(
            f"/api/pages/{page['id']}/snapshot", params={"width": 500, "height": 700}
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert Image.open(io.BytesIO(response.content)).size == (500, 700)

    @pytest.mark.asyncio
    async def test_snapshot_empty_bounds(self, test_client):
        page = await _create_page(test_client)
        response = await test_client.get(
            f"/api/pages/{page['id']}/snapshot", params={"width": 0, "height": 700}
        )
        assert response.status_code == 422
        assert response.json()["error"] == "flatten_error"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "width, height",
        [("20000", "28000"), ("nan", "1400"), ("1000", "inf")],
    )
    async def test_snapshot_rejects_unbounded_sizes(self, test_client, width, height):
        page = await _create_page(test_client)
        response = await test_client.get(
            f"/api/pages/{page['id']}/snapshot", params={"width": width, "height": height}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_snapshot_over_pixel_cap(self, test_client):
        page = await _create_page(test_client)
        response = await test_client.get(
            f"/api/pages/{page['id']}/snapshot", params={"width": 6000, "height": 8400}
        )
        assert response.status_code == 422
        assert response.json()["error"] == "flatten_error"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("width, height", [(20000, 28000), (6000, 8400)])
    async def test_send_letter_oversize_not_sent(self, test_client, width, height):
        page = await _create_page(test_client, type="letter")
        recipient = str(uuid.uuid4())
        response = await test_client.post(
            f"/api/pages/{page['id']}/letters",
            json={"recipient_id": recipient, "width": width, "height": height},
        )
        assert response.status_code == 422

        inbox = await test_client.get("/api/letters", params={"recipient_id": recipient})
        assert inbox.json()["count"] == 0

    @pytest.mark.asyncio
    async def test_send_letter_and_read_inbox(self, test_client):
        page = await _create_page(test_client, type="letter")
        recipient = str(uuid.uuid4())

        sent = await test_client.post(
            f"/api/pages/{page['id']}/letters",
            json={"recipient_id": recipient, "width": 500, "height": 700},
        )
        assert sent.status_code == 201
        receipt = sent.json()
        assert receipt["recipient_id"] == recipient

        inbox = await test_client.get("/api/letters", params={"recipient_id": recipient})
        assert inbox.json()["count"] == 1

        image = await test_client.get(receipt["image_url"])
        assert image.status_code == 200
        assert image.headers["content-type"] == "image/jpeg"
        assert image.content[:2] == b"\xff\xd8"

    @pytest.mark.asyncio
    async def test_send_letter_empty_bounds_not_sent(self, test_client):
        page = await _create_page(test_client, type="letter")
        recipient = str(uuid.uuid4())
        response = await test_client.post(
            f"/api/pages/{page['id']}/letters",
            json={"recipient_id": recipient, "width": 0, "height": 0},
        )
        assert response.status_code == 422

        inbox = await test_client.get("/api/letters", params={"recipient_id": recipient})
        assert inbox.json()["count"] == 0

    @pytest.mark.asyncio
    async def test_file_traversal_refused(self, test_client):
        response = await test_client.get("/api/files/..%2F..%2Fetc%2Fpasswd")
        assert response.status_code in (400, 404)


class TestLayout:
    @pytest.mark.asyncio
    async def test_fit(self, test_client):
        response = await test_client.post(
            "/api/layout/fit",
            json={"viewport": {"width": 1040, "height": 1440}, "padding": 20},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["scale"] == pytest.approx(1.0)
        assert body["page_origin"] == {"x": 20.0, "y": 20.0}

    @pytest.mark.asyncio
    async def test_fit_no_room(self, test_client):
        response = await test_client.post(
            "/api/layout/fit", json={"viewport": {"width": 10, "height": 10}}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_resize(self, test_client):
        response = await test_client.post(
            "/api/layout/resize",
            json={
                "initial_frame": [[100, 200], [200, 100]],
                "initial_rotation": 0,
                "drag_delta": {"x": 100, "y": 0},
            },
        )
        assert response.status_code == 200
        assert response.json()["frame"] == [[100.0, 200.0], [300.0, 150.0]]


class TestHealthAndMiddleware:
    @pytest.mark.asyncio
    async def test_health(self, test_client):
        with patch("memories.routes.health.check_database", AsyncMock(return_value=True)):
            response = await test_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_health_database_down(self, test_client):
        with patch("memories.routes.health.check_database", AsyncMock(return_value=False)):
            response = await test_client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_request_id_header(self, test_client):
        response = await test_client.post(
            "/api/layout/fit", json={"viewport": {"width": 400, "height": 800}}
        )
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.get(
            f"/api/pages/{uuid.uuid4()}", headers={"X-Request-ID": "abc123"}
        )
        assert response.headers["X-Request-ID"] == "abc123"
        assert response.json()["request_id"] == "abc123"

    @pytest.mark.asyncio
    async def test_rate_limit(self, test_client):
        with patch("memories.middleware.rate_limit.settings") as mock_settings:
            mock_settings.rate_limit_requests = 1
            mock_settings.rate_limit_window = 60
            await test_client.get("/api/templates")
            response = await test_client.get("/api/templates")
        assert response.status_code == 429
        assert response.json()["error"] == "rate_limit_exceeded"
        assert "Retry-After" in response.headers
