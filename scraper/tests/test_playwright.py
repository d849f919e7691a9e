import random

import pytest

from gatc_extractor.config import ExtractorConfig, Viewport
from gatc_extractor.playwright import STEALTH_INIT_SCRIPT, close_quietly, detect_block, open_isolated_page


class FakeContext:
    def __init__(self, fail_page=False):
        self.fail_page = fail_page
        self.timeout = None
        self.scripts = []
        self.closed = False

    def set_default_timeout(self, ms):
        self.timeout = ms

    async def add_init_script(self, script):
        self.scripts.append(script)

    async def new_page(self):
        if self.fail_page:
            raise RuntimeError("target closed")
        return "page"

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, context):
        self.context = context
        self.kwargs = None

    async def new_context(self, **kwargs):
        self.kwargs = kwargs
        return self.context


class Exploding:
    async def close(self):
        raise RuntimeError("already closed")


@pytest.mark.parametrize(
    "status, content, reason",
    [
        (429, "", "rate_limited_429"),
        (200, "<p>Our systems have detected unusual traffic from your network</p>", "unusual_traffic"),
        (200, "Too Many Requests", "too_many_requests"),
        (200, '<div id="reCAPTCHA"></div>', "captcha"),
        (200, "<html>fine</html>", None),
        (None, None, None),
    ],
)
def test_detect_block(status, content, reason):
    assert detect_block(status, content) == reason


@pytest.mark.asyncio
async def test_open_isolated_page_applies_fingerprint():
    config = ExtractorConfig(viewports=(Viewport(1366, 768),))
    context = FakeContext()
    browser = FakeBrowser(context)
    isolated = await open_isolated_page(browser, config, random.Random(0))

    assert isolated.page == "page"
    assert isolated.viewport == Viewport(1366, 768)
    assert browser.kwargs["user_agent"] in config.user_agents
    assert browser.kwargs["viewport"] == {"width": 1366, "height": 768}
    assert browser.kwargs["extra_http_headers"]["accept-language"] == config.accept_language
    assert context.scripts == [STEALTH_INIT_SCRIPT]
    assert context.timeout == config.nav_timeout_ms


@pytest.mark.asyncio
async def test_open_isolated_page_closes_context_on_failure():
    context = FakeContext(fail_page=True)
    with pytest.raises(RuntimeError):
        await open_isolated_page(FakeBrowser(context), ExtractorConfig(), random.Random(0))
    assert context.closed


@pytest.mark.asyncio
async def test_close_quietly_ignores_errors():
    context = FakeContext()
    await close_quietly(Exploding(), None, context)
    assert context.closed
