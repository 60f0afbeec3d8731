"""Asset naming and bounded-concurrency downloads."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from cafe_harvester.api import FileRef, Post
from cafe_harvester.downloader import AssetDownloader, AssetTask, plan_assets, url_basename

from conftest import mock_client


def _post(images, files):
    return Post(id=1, board="AbCd", published="20230101", title="t", images=tuple(images), files=tuple(files))


def test_url_basename():
    assert url_basename("http://cfile.daum.net/image/abc/b.jpg") == "b.jpg"
    assert url_basename("plain") == "plain"


def test_plan_assets_ranks_images_and_numbers_attachments():
    post = _post(
        images=["http://img.daum.net/x/a.jpg", "http://img.daum.net/x/b.jpg"],
        files=[FileRef("http://down.daum.net/y/b.jpg", "jpg"), FileRef("http://down.daum.net/y/c.jpg", "jpg")],
    )

    tasks = plan_assets(post, "P")

    assert [t.filename for t in tasks] == ["P_img002.jpg", "P_attach001.jpg"]
    assert [t.is_image for t in tasks] == [True, False]


def test_plan_assets_attachment_counter_skips_images():
    post = _post(
        images=["http://i/1.png"],
        files=[
            FileRef("http://f/doc.pdf", "pdf"),
            FileRef("http://f/1.png", "png"),
            FileRef("http://f/sheet.xlsx", "xlsx"),
        ],
    )
    assert [t.filename for t in plan_assets(post, "P")] == ["P_attach001.pdf", "P_img001.png", "P_attach002.xlsx"]


def test_plan_assets_no_files():
    assert plan_assets(_post(["http://i/a.jpg"], []), "P") == []


def test_download_all_respects_limit(tmp_path):
    in_flight = 0
    peak = 0

    async def handler(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return httpx.Response(200, content=request.url.path.encode())

    tasks = [AssetTask(f"P_attach{i:03d}.bin", f"http://f/{i}", False) for i in range(1, 11)]
    finished = []

    async def go():
        async with mock_client(handler) as client:
            return await AssetDownloader(client, limit=3).download_all(tasks, tmp_path, on_done=finished.append)

    paths = asyncio.run(go())

    assert peak == 3
    assert paths == {tmp_path / t.filename for t in tasks}
    assert sorted(t.filename for t in finished) == sorted(t.filename for t in tasks)
    assert (tmp_path / "P_attach004.bin").read_bytes() == b"/4"


def test_download_all_fails_whole_batch(tmp_path):
    def handler(request):
        if request.url.path == "/2":
            return httpx.Response(404)
        return httpx.Response(200, content=b"ok")

    tasks = [AssetTask(f"P_img{i:03d}.jpg", f"http://f/{i}", True) for i in range(1, 4)]

    async def go():
        async with mock_client(handler) as client:
            await AssetDownloader(client, limit=1).download_all(tasks, tmp_path)

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(go())
    # with one worker nothing after the failure is fetched
    assert not (tmp_path / "P_img003.jpg").exists()


def test_download_all_empty(tmp_path):
    async def go():
        async with mock_client(lambda r: httpx.Response(500)) as client:
            return await AssetDownloader(client).download_all([], tmp_path)

    assert asyncio.run(go()) == set()


def test_limit_must_be_positive():
    with pytest.raises(ValueError):
        AssetDownloader(httpx.AsyncClient(), limit=0)
