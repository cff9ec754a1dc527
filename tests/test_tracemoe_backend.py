"""
Tests for search_backends/tracemoe_backend.py.

Covers:
  - _parse_match: happy path, episode lists, nested anilist info, bad entries
  - search(): multipart upload with a single "image" field
  - search(): service order preserved (best match first)
  - failure classification: 5xx / 429 / network / timeout → TransientSubmitError,
    4xx / "error" field / empty result / bad JSON → CollaboratorError
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from exceptions import CollaboratorError, TransientSubmitError
from image_normalizer import NormalizedImage
from search_backends.tracemoe_backend import TraceMoeBackend, _parse_match


@pytest.fixture
def backend():
    return TraceMoeBackend(url="https://trace.example/search", timeout=5)


@pytest.fixture
def image():
    return NormalizedImage(
        content=b"\xff\xd8jpeg-bytes", width=640, height=360, quality=0.7,
        source_width=1280, source_height=720, filename="frame.jpg",
    )


def raw_match(**overrides) -> dict:
    base = {
        "anilist": 99939,
        "filename": "[Ohys-Raws] Nekopara - 03 (AT-X 1280x720 x264 AAC).mp4",
        "episode": 3,
        "from": 97.75,
        "to": 98.92,
        "similarity": 0.9440424588727485,
        "video": "https://media.trace.moe/video/99939/x.mp4",
        "image": "https://media.trace.moe/image/99939/x.jpg",
    }
    base.update(overrides)
    return base


# ── _parse_match ───────────────────────────────────────────────────────────────

class TestParseMatch:
    def test_happy_path(self):
        match = _parse_match(raw_match())
        assert match is not None
        assert match.filename.startswith("[Ohys-Raws]")
        assert match.episode == "3"
        assert match.similarity == pytest.approx(0.9440424588727485)
        assert match.video.endswith("x.mp4")
        assert match.anilist_id == 99939
        assert match.from_seconds == 97.75
        assert match.title == "Nekopara"

    def test_episode_list_joined(self):
        assert _parse_match(raw_match(episode=[1, 2])).episode == "1|2"

    def test_missing_episode_is_none(self):
        assert _parse_match(raw_match(episode=None)).episode is None
        assert _parse_match(raw_match(episode="")).episode is None

    def test_anilist_info_object(self):
        match = _parse_match(raw_match(anilist={"id": 21, "title": {"romaji": "One Piece"}}))
        assert match.anilist_id == 21

    def test_similarity_clamped(self):
        assert _parse_match(raw_match(similarity=1.0000001)).similarity == 1.0

    def test_missing_filename_returns_none(self):
        raw = raw_match()
        del raw["filename"]
        assert _parse_match(raw) is None

    def test_missing_similarity_returns_none(self):
        raw = raw_match()
        del raw["similarity"]
        assert _parse_match(raw) is None

    def test_bad_similarity_returns_none(self):
        assert _parse_match(raw_match(similarity="high")) is None

    def test_non_dict_returns_none(self):
        assert _parse_match(None) is None  # type: ignore[arg-type]
        assert _parse_match("oops") is None  # type: ignore[arg-type]


# ── search() HTTP call ─────────────────────────────────────────────────────────

def fake_response(body=None, status: int = 200, json_error: Exception = None):
    """Build a fake aiohttp response object."""
    mock_resp = MagicMock()
    mock_resp.status = status
    if json_error is not None:
        mock_resp.json = AsyncMock(side_effect=json_error)
    else:
        mock_resp.json = AsyncMock(return_value=body)
    mock_resp.text = AsyncMock(return_value="error text")
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__ = AsyncMock(return_value=False)
    return mock_resp


def fake_session(response=None, post_error: Exception = None):
    mock_session = MagicMock()
    if post_error is not None:
        mock_session.post = MagicMock(side_effect=post_error)
    else:
        mock_session.post = MagicMock(return_value=response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=False)
    return mock_session


SESSION = "search_backends.tracemoe_backend.aiohttp.ClientSession"


@pytest.mark.asyncio
class TestSearch:
    async def test_returns_matches_in_service_order(self, backend, image):
        body = {"error": "", "result": [
            raw_match(filename="[A][Best][01].mp4", similarity=0.97),
            raw_match(filename="[A][Second][02].mp4", similarity=0.99),
        ]}
        with patch(SESSION, return_value=fake_session(fake_response(body))):
            matches = await backend.search(image)

        assert [m.title for m in matches] == ["Best", "Second"]

    async def test_uploads_single_image_field(self, backend, image):
        session = fake_session(fake_response({"result": [raw_match()]}))
        form = MagicMock()
        with patch(SESSION, return_value=session), \
             patch("search_backends.tracemoe_backend.aiohttp.FormData", return_value=form):
            await backend.search(image)

        form.add_field.assert_called_once_with(
            "image", image.content, filename="frame.jpg", content_type="image/jpeg",
        )
        args, kwargs = session.post.call_args
        assert args[0] == "https://trace.example/search"
        assert kwargs["data"] is form

    async def test_bad_entries_skipped(self, backend, image):
        body = {"result": [{"filename": None}, raw_match()]}
        with patch(SESSION, return_value=fake_session(fake_response(body))):
            matches = await backend.search(image)
        assert len(matches) == 1

    @pytest.mark.parametrize("status", [500, 502, 503, 429])
    async def test_server_errors_are_transient(self, backend, image, status):
        with patch(SESSION, return_value=fake_session(fake_response({}, status=status))):
            with pytest.raises(TransientSubmitError) as info:
                await backend.search(image)
        assert info.value.status == status

    @pytest.mark.parametrize("status", [400, 402, 413])
    async def test_client_errors_are_not_transient(self, backend, image, status):
        with patch(SESSION, return_value=fake_session(fake_response({}, status=status))):
            with pytest.raises(CollaboratorError) as info:
                await backend.search(image)
        assert info.value.status == status

    async def test_connection_error_is_transient(self, backend, image):
        session = fake_session(post_error=aiohttp.ClientConnectionError("refused"))
        with patch(SESSION, return_value=session):
            with pytest.raises(TransientSubmitError):
                await backend.search(image)

    async def test_timeout_is_transient(self, backend, image):
        session = fake_session(post_error=asyncio.TimeoutError())
        with patch(SESSION, return_value=session):
            with pytest.raises(TransientSubmitError):
                await backend.search(image)

    async def test_error_field_is_collaborator_error(self, backend, image):
        body = {"error": "Failed to process image", "result": []}
        with patch(SESSION, return_value=fake_session(fake_response(body))):
            with pytest.raises(CollaboratorError, match="Failed to process image"):
                await backend.search(image)

    async def test_empty_result_is_no_match(self, backend, image):
        with patch(SESSION, return_value=fake_session(fake_response({"error": "", "result": []}))):
            with pytest.raises(CollaboratorError, match="No match"):
                await backend.search(image)

    async def test_unreadable_json(self, backend, image):
        resp = fake_response(json_error=ValueError("Expecting value"))
        with patch(SESSION, return_value=fake_session(resp)):
            with pytest.raises(CollaboratorError):
                await backend.search(image)

    async def test_non_object_body(self, backend, image):
        with patch(SESSION, return_value=fake_session(fake_response(["not", "a", "dict"]))):
            with pytest.raises(CollaboratorError):
                await backend.search(image)


class TestBackendName:
    def test_name(self, backend):
        assert backend.name == "trace.moe"

    def test_defaults_to_configured_endpoint(self):
        import config
        assert TraceMoeBackend()._url == config.SEARCH_URL
