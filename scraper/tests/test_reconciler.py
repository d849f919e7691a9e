import pytest

from gatc_extractor.config import MODE_BOTH, MODE_METADATA, MODE_VIDEO, ExtractorConfig
from gatc_extractor.reconciler import WorklistReconciler, cell
from gatc_extractor.records import (
    BLOCKED,
    ERROR,
    LINK,
    NAME,
    NOT_FOUND,
    SKIP,
    VIDEO_ID,
    ExtractionRecord,
    ItemResult,
    WorkItem,
)
from gatc_extractor.sheets import CellWrite

PLAY = "https://play.google.com/store/apps/details?id=com.acme"
VID = "0123456789abcdef"
HEADER = ["Advertiser", "URL", "Link", "Name", "Video"]

ROWS = [
    HEADER,
    ["Acme Corp", "https://a"],
    ["Acme Corp", "https://b", PLAY, "Acme", VID],
    ["Acme Corp", "https://c", PLAY, "Acme"],
    ["Acme Corp", "https://d", NOT_FOUND, NOT_FOUND, ""],
    ["Acme Corp", "", "", ""],
    ["Acme Corp", "https://e", "https://example.com/landing", "Acme"],
    ["Acme Corp", " https://a "],
]


def _reconciler(store, mode=MODE_BOTH):
    return WorklistReconciler(store, ExtractorConfig(mode=mode))


def _result(url, **values):
    item = WorkItem(url, frozenset({LINK, NAME}))
    return ItemResult(item, ExtractionRecord(**values))


def test_cell_distinguishes_missing_from_empty():
    assert cell(["a", " b "], 1) == "b"
    assert cell(["a", ""], 1) == ""
    assert cell(["a"], 3) is None


def test_pending_both_modes(make_store):
    items = _reconciler(make_store(ROWS)).pending(ROWS)
    assert [i.source_url for i in items] == ["https://a", "https://c"]

    a, c = items
    assert a.required_fields == frozenset({LINK, NAME})
    assert a.video_allowed
    assert a.row_index == 2
    assert a.advertiser_name == "Acme Corp"
    assert c.required_fields == frozenset({VIDEO_ID})
    assert c.existing_link == PLAY
    assert c.row_index == 4


def test_pending_respects_configured_fields(make_store):
    metadata = _reconciler(make_store(ROWS), MODE_METADATA).pending(ROWS)
    assert [i.source_url for i in metadata] == ["https://a"]
    assert not metadata[0].video_allowed

    video = _reconciler(make_store(ROWS), MODE_VIDEO).pending(ROWS)
    assert [i.source_url for i in video] == ["https://c"]


def test_complete_rows_never_pending(make_store):
    rows = [HEADER, ["x", "https://b", PLAY, "Acme", VID]]
    assert _reconciler(make_store(rows)).pending(rows) == []


def test_plan_writes_resolves_current_rows():
    reconciler = _reconciler(None)
    results = [
        _result("https://a", link=PLAY, name="Acme"),
        _result("https://gone", link=PLAY, name="Gone"),
        _result("https://c", link=NOT_FOUND, name=NOT_FOUND),
    ]
    writes = reconciler.plan_writes(results, ["URL", "https://c", "https://a"])
    assert writes == [
        CellWrite(2, 3, PLAY),
        CellWrite(3, 3, "Acme"),
        CellWrite(2, 2, NOT_FOUND),
        CellWrite(3, 2, NOT_FOUND),
    ]


def test_plan_writes_omits_skip_error_and_blocked():
    reconciler = _reconciler(None)
    results = [
        _result("https://a", link=ERROR, name="Acme", video_id=SKIP),
        ItemResult(WorkItem("https://b", frozenset({LINK})), ExtractionRecord.filled(BLOCKED)),
    ]
    writes = reconciler.plan_writes(results, ["URL", "https://a", "https://b"])
    assert writes == [CellWrite(3, 2, "Acme")]


@pytest.mark.asyncio
async def test_single_row_metadata_scenario(make_store):
    store = make_store([HEADER, ["Acme Corp", "https://a"]])
    reconciler = _reconciler(store, MODE_METADATA)
    (item,) = await reconciler.read_pending()

    record = ExtractionRecord.for_item(item).fill(NAME, "Acme").fill(LINK, PLAY)
    writes = await reconciler.reconcile_write([ItemResult(item, record)])

    assert writes == [CellWrite(2, 2, PLAY), CellWrite(3, 2, "Acme")]
    assert store.rows[1] == ["Acme Corp", "https://a", PLAY, "Acme"]


@pytest.mark.asyncio
async def test_reconcile_write_follows_reordered_rows(make_store):
    store = make_store([HEADER, ["x", "https://a"], ["x", "https://b"]])
    reconciler = _reconciler(store, MODE_METADATA)
    items = await reconciler.read_pending()

    store.rows[1], store.rows[2] = store.rows[2], store.rows[1]
    results = [ItemResult(i, ExtractionRecord(link=PLAY, name=i.source_url[-1])) for i in items]
    await reconciler.reconcile_write(results)

    assert store.rows[1][1:] == ["https://b", PLAY, "b"]
    assert store.rows[2][1:] == ["https://a", PLAY, "a"]


@pytest.mark.asyncio
async def test_reconcile_write_with_no_results_does_not_read(make_store):
    store = make_store([HEADER])
    assert await _reconciler(store).reconcile_write([]) == []
    assert store.column_reads == 0


@pytest.mark.asyncio
async def test_duplicate_of_complete_row_is_not_pending_or_overwritten(make_store):
    rows = [
        HEADER,
        ["Adv", "https://x/ad/1", PLAY, "Good App", VID],
        ["Adv", "https://x/ad/1", "", "", ""],
        ["Adv", "https://x/ad/2", "", "", ""],
    ]
    store = make_store(rows)
    reconciler = _reconciler(store)
    items = reconciler.pending(store.rows)
    assert [(i.source_url, i.row_index) for i in items] == [("https://x/ad/2", 4)]

    await reconciler.reconcile_write([ItemResult(items[0], ExtractionRecord.for_item(items[0]))])
    assert store.rows[1] == ["Adv", "https://x/ad/1", PLAY, "Good App", VID]
    assert store.rows[3][2:4] == [NOT_FOUND, NOT_FOUND]
    assert reconciler.pending(store.rows) == []
