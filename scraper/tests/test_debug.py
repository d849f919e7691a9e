import pytest

from gatc_extractor import debug


class FakeFrame:
    def __init__(self, url, box=None, error=None):
        self.url = url
        self.name = ""
        self.box = box
        self.error = error

    async def evaluate(self, expression):
        if self.error:
            raise self.error
        return self.box


class FakePage:
    def __init__(self, html="<html></html>", frames=()):
        self.html = html
        self.frames = list(frames)

    async def content(self):
        return self.html


def test_debug_key_is_stable():
    assert debug.debug_key("https://a") == debug.debug_key("https://a")
    assert debug.debug_key("https://a") != debug.debug_key("https://b")
    assert len(debug.debug_key("https://a")) == 12


@pytest.mark.asyncio
async def test_ensure_debug_html_writes_page(tmp_path, monkeypatch):
    monkeypatch.setattr(debug, "DEBUG_DIR", str(tmp_path / "debug"))
    path = await debug.ensure_debug_html(FakePage("<p>hi</p>"), "https://a")
    with open(path, encoding="utf-8") as f:
        assert f.read() == "<p>hi</p>"


@pytest.mark.asyncio
async def test_frame_inventory_records_errors():
    page = FakePage(frames=[FakeFrame("https://a", {"width": 300, "height": 250}), FakeFrame("https://b", error=RuntimeError("x"))])
    inventory = await debug.dump_frame_inventory(page)
    assert inventory[0]["box"] == {"width": 300, "height": 250}
    assert inventory[1]["error"] == "x"
