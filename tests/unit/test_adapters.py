"""
Unit Tests: provider adapters
=============================
Upstream APIs are replaced with httpx.MockTransport; no network access.
"""

import asyncio
import json

import httpx
import pytest

from photoportal.core.errors import AuthError, NotFoundError, RequestTimeoutError, UpstreamError, ValidationError
from photoportal.providers import google_photos
from photoportal.providers.base import MediaItem
from photoportal.providers.filestack import FilestackAdapter
from photoportal.providers.google_drive import GoogleDriveAdapter
from photoportal.providers.google_photos import GooglePhotosPickerAdapter
from photoportal.providers.gumlet import GumletAdapter, thumbnail_for


async def _token():
    return "access-123"


def _drive_file(i: int) -> dict:
    return {"id": f"f{i}", "name": f"IMG_{i}.jpg", "mimeType": "image/jpeg",
            "thumbnailLink": f"https://lh3.googleusercontent.com/t{i}=s220",
            "webContentLink": f"https://drive.google.com/uc?id=f{i}"}


# =============================================================================
# GOOGLE DRIVE
# =============================================================================

class TestGoogleDrive:

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_pagination_covers_folder_without_duplicates(self):
        files = [_drive_file(i) for i in range(5)]
        seen_queries = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer access-123"
            seen_queries.append(request.url.params["q"])
            start = int(request.url.params.get("pageToken", "0"))
            size = int(request.url.params["pageSize"])
            body = {"files": files[start:start + size]}
            if start + size < len(files):
                body["nextPageToken"] = str(start + size)
            return httpx.Response(200, json=body)

        adapter = GoogleDriveAdapter(_token, transport=httpx.MockTransport(handler))
        collected, token = [], None
        while True:
            page = await adapter.list_images("folder-1", token, page_size=2)
            collected.extend(item.id for item in page.items)
            token = page.next_page_token
            if not token:
                break

        assert collected == [f"f{i}" for i in range(5)]
        assert len(set(collected)) == len(collected)
        assert seen_queries[0] == "'folder-1' in parents and mimeType contains 'image/' and trashed=false"

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_missing_thumbnail_falls_back_to_drive_endpoint(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": "abc", "name": "a.png", "mimeType": "image/png",
                                             "webViewLink": "https://drive.google.com/file/d/abc/view"})

        item = await GoogleDriveAdapter(_token, transport=httpx.MockTransport(handler)).get_file("abc")

        assert item.thumbnail_url == "https://drive.google.com/thumbnail?id=abc&sz=w400-h400"
        assert item.display_url == "https://drive.google.com/file/d/abc/view"

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_list_requires_folder(self):
        adapter = GoogleDriveAdapter(_token, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        with pytest.raises(ValidationError):
            await adapter.list_images(None)

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_status_mapping(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/missing"):
                return httpx.Response(404, json={"error": {"message": "File not found"}})
            return httpx.Response(403, json={"error": {"message": "insufficientPermissions"}})

        adapter = GoogleDriveAdapter(_token, transport=httpx.MockTransport(handler))
        with pytest.raises(NotFoundError):
            await adapter.get_file("missing")
        with pytest.raises(AuthError):
            await adapter.get_folder_name("private")

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_timeout_becomes_request_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        adapter = GoogleDriveAdapter(_token, transport=httpx.MockTransport(handler))
        with pytest.raises(RequestTimeoutError):
            await adapter.get_file("abc")

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_thumbnail_tries_cdn_anonymously_first(self):
        auth_seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            auth_seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, content=b"jpeg", headers={"content-type": "image/jpeg"})

        adapter = GoogleDriveAdapter(_token, transport=httpx.MockTransport(handler))
        content, ctype = await adapter.fetch_thumbnail("f1", "https://lh3.googleusercontent.com/t1=s220")

        assert (content, ctype) == (b"jpeg", "image/jpeg")
        assert auth_seen == [None]

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_thumbnail_falls_back_to_thumbnail_link(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "stale.example":
                return httpx.Response(404)
            if request.url.params.get("fields") == "thumbnailLink":
                return httpx.Response(200, json={"thumbnailLink": "https://fresh.example/t.jpg"})
            return httpx.Response(200, content=b"fresh", headers={"content-type": "image/jpeg"})

        adapter = GoogleDriveAdapter(_token, transport=httpx.MockTransport(handler))
        content, _ = await adapter.fetch_thumbnail("f1", "https://stale.example/t.jpg")

        assert content == b"fresh"


# =============================================================================
# GOOGLE PHOTOS PICKER
# =============================================================================

def _picked(item_id: str, kind: str = "PHOTO", mime: str = "image/jpeg") -> dict:
    return {"id": item_id, "type": kind,
            "mediaFile": {"baseUrl": f"https://lh3.googleusercontent.com/{item_id}",
                          "mimeType": mime, "filename": f"{item_id}.jpg"}}


class TestGooglePhotosPicker:

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_lists_only_photos(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["sessionId"] == "sess-1"
            return httpx.Response(200, json={"mediaItems": [_picked("a"), _picked("v", "VIDEO", "video/mp4")]})

        adapter = GooglePhotosPickerAdapter(_token, transport=httpx.MockTransport(handler))
        page = await adapter.list_images("sess-1")

        assert [i.id for i in page.items] == ["a"]
        assert page.items[0].thumbnail_url == "https://lh3.googleusercontent.com/a=w400-h400"

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_get_file_scans_session_pages(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("pageToken") == "p2":
                return httpx.Response(200, json={"mediaItems": [_picked("b")]})
            return httpx.Response(200, json={"mediaItems": [_picked("a")], "nextPageToken": "p2"})

        adapter = GooglePhotosPickerAdapter(_token, session_id="sess-1", transport=httpx.MockTransport(handler))

        assert (await adapter.get_file("b")).filename == "b.jpg"
        with pytest.raises(NotFoundError):
            await adapter.get_file("zzz")

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_get_file_without_session(self):
        adapter = GooglePhotosPickerAdapter(_token, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        with pytest.raises(NotFoundError):
            await adapter.get_file("a")

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_folder_name_is_reference(self):
        adapter = GooglePhotosPickerAdapter(_token, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        assert await adapter.get_folder_name("sess-9") == "sess-9"

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_ready_gate_shared_by_concurrent_waiters(self):
        polls = []

        def handler(request: httpx.Request) -> httpx.Response:
            polls.append(request.url.path)
            ready = len(polls) >= 2
            return httpx.Response(200, json={"id": "sess-1", "mediaItemsSet": ready,
                                             "pollingConfig": {"pollInterval": "0.01s"}})

        adapter = GooglePhotosPickerAdapter(_token, transport=httpx.MockTransport(handler))
        results = await asyncio.gather(*(adapter.wait_until_ready("sess-1", timeout=5) for _ in range(3)))

        assert results == [True, True, True]
        assert len(polls) == 2
        assert "sess-1" in google_photos._ready_sessions

        # resolved once; later callers do not poll again
        assert await adapter.wait_until_ready("sess-1", timeout=5)
        assert len(polls) == 2

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_ready_gate_times_out(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": "sess-2", "mediaItemsSet": False,
                                             "pollingConfig": {"pollInterval": "0.01s"}})

        adapter = GooglePhotosPickerAdapter(_token, transport=httpx.MockTransport(handler))
        with pytest.raises(RequestTimeoutError):
            await adapter.wait_until_ready("sess-2", timeout=0.05)

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_thumbnail_proxy_only_for_google_hosts(self):
        adapter = GooglePhotosPickerAdapter(_token, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        with pytest.raises(ValidationError):
            await adapter.fetch_thumbnail("https://evil.example/steal")


# =============================================================================
# ASSET HOSTS
# =============================================================================

class TestFilestack:

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_alternate_field_names(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["key"] == "fs-key"
            return httpx.Response(200, json={
                "results": [
                    {"url": "https://cdn.filestackcontent.com/HANDLE1", "name": "beach.png", "type": "image/png"},
                    {"handle": "DOC1", "filename": "notes.pdf", "mimetype": "application/pdf"},
                ],
                "pagination": {"next": "cur-2"},
            })

        page = await FilestackAdapter("fs-key", transport=httpx.MockTransport(handler)).list_images("events/2024")

        assert [i.id for i in page.items] == ["HANDLE1"]
        item = page.items[0]
        assert item.filename == "beach.png"
        assert item.thumbnail_url == "https://cdn.filestackcontent.com/resize=width:400,height:400,fit:clip/HANDLE1"
        assert page.next_page_token == "cur-2"

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_folder_name_from_path(self):
        adapter = FilestackAdapter("fs-key", transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        assert await adapter.get_folder_name("events/2024/party") == "party"

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_folder_name_falls_back_to_reference(self):
        adapter = FilestackAdapter("fs-key", transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        assert await adapter.get_folder_name("HANDLE9") == "HANDLE9"

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_missing_api_key(self):
        adapter = FilestackAdapter("", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        with pytest.raises(ValidationError):
            await adapter.list_images()


class TestGumlet:

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_alternate_field_names_and_cursor(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer gm-key"
            assert request.url.params["folder_id"] == "fold-1"
            return httpx.Response(200, json={
                "items": [{"asset_id": "a1", "mimeType": "image/webp",
                           "original_url": "https://demo.gumlet.io/upload/a1.webp"}],
                "next_cursor_token": "c2",
            })

        page = await GumletAdapter("gm-key", transport=httpx.MockTransport(handler)).list_images("fold-1")

        item = page.items[0]
        assert item.id == "a1"
        assert item.filename == "photo_a1.webp"
        assert item.thumbnail_url == "https://demo.gumlet.io/upload/w_400,h_400,c_fill/a1.webp"
        assert page.next_page_token == "c2"

    @pytest.mark.unit
    def test_thumbnail_without_upload_segment(self):
        assert thumbnail_for("https://demo.gumlet.io/a1.jpg") == "https://demo.gumlet.io/a1.jpg"

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_unnamed_folder(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=json.dumps({"id": "fold-1"}))

        adapter = GumletAdapter("gm-key", transport=httpx.MockTransport(handler))
        assert await adapter.get_folder_name("fold-1") == "Unknown Folder"

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_content_fetched_from_display_url(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == "https://demo.gumlet.io/upload/a1.jpg"
            return httpx.Response(200, content=b"bytes", headers={"content-type": "image/jpeg"})

        adapter = GumletAdapter("gm-key", transport=httpx.MockTransport(handler))
        item = MediaItem("a1", "https://demo.gumlet.io/upload/a1.jpg", "", "image/jpeg", "a1.jpg")
        assert await adapter.fetch_content(item, timeout=5) == (b"bytes", "image/jpeg")

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_html_body_is_upstream_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>maintenance</html>")

        adapter = GumletAdapter("gm-key", transport=httpx.MockTransport(handler))
        with pytest.raises(UpstreamError):
            await adapter.get_file("a1")

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_list_shaped_asset_is_upstream_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=["a1"])

        adapter = GumletAdapter("gm-key", transport=httpx.MockTransport(handler))
        with pytest.raises(UpstreamError):
            await adapter.get_file("a1")

    @pytest.mark.unit
    @pytest.mark.anyio
    async def test_listing_skips_non_object_entries(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"assets": ["junk", {"id": "a1", "mime_type": "image/jpeg"}]})

        page = await GumletAdapter("gm-key", transport=httpx.MockTransport(handler)).list_images()
        assert [i.id for i in page.items] == ["a1"]
