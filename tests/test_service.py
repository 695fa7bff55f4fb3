"""Tests for TradeReviewService — range queries, flags, cache, factory."""

import pandas as pd
import pytest

from conftest import BASE
from tradereview import create_service_from_env
from tradereview.bars import BarTable, infer_bar_interval
from tradereview.cache import MemoryCache, NoCache
from tradereview.config import CollapseMode, ReviewConfig, SourceType
from tradereview.errors import InvalidRange, MalformedBar, UnknownInstrument
from tradereview.models.bar import Bar
from tradereview.models.trade import SkipReason, Trade, TradeFlag, TradeSide
from tradereview.service import Ingestion, TradeReviewService
from tradereview.sources.files import FileRowSource
from tradereview.sources.memory import MemoryRowSource

DEMO_DAY = "2024-10-24"


class CountingRowSource(MemoryRowSource):
    """MemoryRowSource that counts how often bar rows are read."""

    def __init__(self) -> None:
        super().__init__()
        self.bar_reads = 0

    def bar_rows(self, instrument):
        self.bar_reads += 1
        return super().bar_rows(instrument)


def _make_service(source=None, **config) -> TradeReviewService:
    return TradeReviewService(ReviewConfig(**config), source=source or MemoryRowSource())


@pytest.fixture
def es_service(memory_source, sample_rows, sample_trade_rows):
    off_chart = {
        "trade_id": "T3", "direction": "long", "open_time": BASE + 600,
        "entry_price": 999.0, "close_time": None, "exit_price": None,
    }
    memory_source.set_bar_rows("ES", sample_rows)
    memory_source.set_trade_rows("ES", sample_trade_rows + [off_chart])
    return _make_service(memory_source)


class TestDemoContract:
    def test_demo_day(self):
        svc = _make_service()
        bars = svc.get_bars("DEMO_CONTRACT", DEMO_DAY, DEMO_DAY)
        assert len(bars) == 10
        assert all(isinstance(b, Bar) for b in bars)
        assert bars[0].time == 1729771800
        assert bars[-1].time == 1729774500

    def test_default_instrument(self):
        svc = _make_service()
        assert len(svc.get_bars(None, DEMO_DAY, DEMO_DAY)) == 10

    def test_alias(self):
        svc = _make_service()
        assert len(svc.get_bars("CLZ4_ohlcv1m", DEMO_DAY, DEMO_DAY)) == 10

    def test_other_day_is_empty(self):
        svc = _make_service()
        assert svc.get_bars("DEMO_CONTRACT", "2024-10-25", "2024-10-25") == []

    def test_unbounded(self):
        assert len(_make_service().get_bars("DEMO_CONTRACT")) == 10

    def test_to_dict(self):
        payload = _make_service().query(None, DEMO_DAY, DEMO_DAY).to_dict()
        assert set(payload) == {"candles", "series", "trades"}
        assert payload["candles"][0] == {
            "time": 1729771800, "open": 71.22, "high": 71.32, "low": 71.21, "close": 71.25,
        }
        assert payload["series"] == []
        assert payload["trades"] == []


class TestInstrumentResolution:
    def test_unknown_instrument_is_empty(self):
        svc = _make_service()
        assert svc.get_bars("ZZZ") == []
        assert svc.get_series("ZZZ") == []
        assert svc.get_trades("ZZZ") == []
        meta = svc.get_meta("ZZZ")
        assert meta.instrument == "ZZZ"
        assert meta.bar_count == 0

    def test_strict_mode_raises(self):
        svc = _make_service(strict_instruments=True)
        with pytest.raises(UnknownInstrument) as exc_info:
            svc.get_bars("ZZZ")
        assert "Unknown contract 'ZZZ'" in str(exc_info.value)

    def test_no_default_raises(self):
        svc = _make_service(default_instrument=None)
        with pytest.raises(UnknownInstrument):
            svc.get_bars(None)
        assert len(svc.get_bars("DEMO_CONTRACT")) == 10

    def test_list_instruments(self, es_service):
        assert es_service.list_instruments() == ["DEMO_CONTRACT", "ES"]


class TestRanges:
    def test_invalid_date(self):
        svc = _make_service()
        with pytest.raises(InvalidRange) as exc_info:
            svc.get_bars("DEMO_CONTRACT", "24/10/2024", DEMO_DAY)
        assert str(exc_info.value) == "Invalid date '24/10/2024'. Expected YYYY-MM-DD."

    def test_inverted_range_is_empty(self):
        svc = _make_service()
        assert svc.query(None, "2024-10-25", "2024-10-24").bars == []

    def test_epoch_bounds(self, es_service):
        bars = es_service.get_bars("ES", BASE + 60, BASE + 120)
        assert [b.time for b in bars] == [BASE + 60, BASE + 120]

    def test_adjacent_queries_cover_everything(self, es_service):
        left = es_service.get_bars("ES", None, BASE + 119)
        right = es_service.get_bars("ES", BASE + 120, None)
        assert left + right == es_service.get_bars("ES")


class TestSeries:
    def test_series_in_range(self, es_service):
        series = es_service.get_series("ES", BASE, BASE + 120)
        assert [s.id for s in series] == ["sma_3", "rsi_14"]
        sma, rsi = series
        assert [p.time for p in sma.points] == [BASE + 120]
        assert [p.time for p in rsi.points] == [BASE, BASE + 60]

    def test_series_outside_range_are_empty_not_missing(self, es_service):
        series = es_service.get_series("ES", BASE + 10_000, BASE + 20_000)
        assert len(series) == 2
        assert all(s.points == () for s in series)


class TestTrades:
    def test_trades_flagged(self, es_service):
        trades = {t.id: t for t in es_service.get_trades("ES")}
        assert trades["T1"].flags == ()
        assert trades["T2"].flags == ()
        assert trades["T3"].flags == (TradeFlag.TIME_SKEW, TradeFlag.PRICE_OUT_OF_RANGE)
        assert trades["T3"].is_open

    def test_range_overlap(self, es_service):
        assert [t.id for t in es_service.get_trades("ES", None, BASE + 60)] == ["T1"]
        assert [t.id for t in es_service.get_trades("ES", BASE + 200, BASE + 300)] == ["T2"]
        assert [t.id for t in es_service.get_trades("ES", BASE + 500, None)] == ["T3"]

    def test_trade_spanning_range_included(self, es_service):
        # T1 enters before and exits after the window
        ids = [t.id for t in es_service.get_trades("ES", BASE + 61, BASE + 179)]
        assert "T1" in ids

    def test_skew_tolerance_from_config(self, memory_source, sample_rows, sample_trade_rows):
        memory_source.set_bar_rows("ES", sample_rows)
        memory_source.set_trade_rows("ES", [dict(sample_trade_rows[0], open_time=BASE + 90)])
        strict = _make_service(memory_source, max_skew_seconds=10)
        assert strict.get_trades("ES")[0].flags == (TradeFlag.TIME_SKEW,)
        loose = _make_service(memory_source)
        assert loose.get_trades("ES")[0].flags == ()

    def test_skipped_records(self, memory_source, sample_rows, sample_trade_rows):
        broken = dict(sample_trade_rows[1], entry_price=None)
        memory_source.set_bar_rows("ES", sample_rows)
        memory_source.set_trade_rows("ES", [sample_trade_rows[0], broken])
        svc = _make_service(memory_source)
        assert [t.id for t in svc.get_trades("ES")] == ["T1"]
        skipped = svc.skipped_trades("ES")
        assert [s.reason for s in skipped] == [SkipReason.MISSING_ENTRY_PRICE]
        assert svc.get_meta("ES").skipped_trades == 1

    def test_collapse_mode_from_config(self, memory_source, sample_rows):
        legs = [
            {"id": "X", "side": "long", "entry_time": BASE, "entry_price": 150.0},
            {"id": "X", "side": "long", "exit_time": BASE + 60, "exit_price": 151.0},
        ]
        memory_source.set_bar_rows("ES", sample_rows)
        memory_source.set_trade_rows("ES", legs)
        assert len(_make_service(memory_source).get_trades("ES")) == 1
        skip = _make_service(memory_source, collapse_mode=CollapseMode.SKIP)
        assert skip.get_trades("ES") == []


class TestMeta:
    def test_meta(self, es_service):
        meta = es_service.get_meta("ES")
        assert meta.bar_count == 5
        assert meta.start_time == BASE
        assert meta.end_time == BASE + 240
        assert meta.available_indicator_ids == ("sma_3", "rsi_14")
        assert meta.trade_count == 3
        assert meta.to_dict()["availableIndicatorIds"] == ["sma_3", "rsi_14"]


class TestMalformedData:
    def test_malformed_bar_raises(self, memory_source):
        memory_source.set_bar_rows("BAD", [
            {"time": 0, "open": 1, "high": 1, "low": 1, "close": 1},
            {"time": 60, "open": None, "high": 1, "low": 1, "close": 1},
        ])
        svc = _make_service(memory_source)
        with pytest.raises(MalformedBar):
            svc.get_bars("BAD")
        # Other instruments still serve
        assert len(svc.get_bars("DEMO_CONTRACT")) == 10


class TestCache:
    def test_memory_cache_used(self):
        svc = _make_service()
        assert isinstance(svc.cache, MemoryCache)
        svc.get_bars("DEMO_CONTRACT")
        key = ("DEMO_CONTRACT", svc.source.fingerprint("DEMO_CONTRACT"))
        assert svc.cache.has_data(key)

    def test_no_cache(self):
        svc = _make_service(cache_backend="none")
        assert isinstance(svc.cache, NoCache)
        assert len(svc.get_bars("DEMO_CONTRACT")) == 10

    def test_source_update_invalidates(self, memory_source, sample_rows):
        memory_source.set_bar_rows("ES", sample_rows[:2])
        svc = _make_service(memory_source)
        assert len(svc.get_bars("ES")) == 2
        memory_source.set_bar_rows("ES", sample_rows)
        assert len(svc.get_bars("ES")) == 5

    def test_clear_cache(self):
        svc = _make_service()
        svc.get_bars("DEMO_CONTRACT")
        key = ("DEMO_CONTRACT", svc.source.fingerprint("DEMO_CONTRACT"))
        svc.clear_cache("CLZ4_ohlcv1m")
        assert not svc.cache.has_data(key)

    def test_query_ingests_once_without_cache(self, sample_rows, sample_trade_rows):
        source = CountingRowSource()
        source.set_bar_rows("ES", sample_rows)
        source.set_trade_rows("ES", sample_trade_rows)
        svc = _make_service(source, cache_backend="none")
        result = svc.query("ES")
        assert source.bar_reads == 1
        assert len(result.bars) == 5
        assert len(result.series) == 2
        assert [t.id for t in result.trades] == ["T1", "T2"]

    def test_bar_interval_inferred_once_per_build(
        self, monkeypatch, memory_source, sample_rows, sample_trade_rows,
    ):
        calls = []

        def counting(times):
            calls.append(len(times))
            return infer_bar_interval(times)

        monkeypatch.setattr("tradereview.bars.infer_bar_interval", counting)
        memory_source.set_bar_rows("ES", sample_rows)
        memory_source.set_trade_rows("ES", sample_trade_rows)
        svc = _make_service(memory_source)
        svc.query("ES")
        svc.get_trades("ES", BASE, BASE + 120)
        assert calls == [5]


class TestTradeIndex:
    @staticmethod
    def _ingestion(*spans):
        trades = tuple(
            Trade(id=str(i), side=TradeSide.LONG, entry_time=entry, entry_price=1.0,
                  exit_time=exit_, exit_price=None if exit_ is None else 1.0)
            for i, (entry, exit_) in enumerate(spans)
        )
        reach, latest = [], None
        for t in trades:
            latest = t.last_time if latest is None else max(latest, t.last_time)
            reach.append(latest)
        return Ingestion(
            instrument="X", table=BarTable("X"), trades=trades,
            entry_times=tuple(t.entry_time for t in trades), reach=tuple(reach),
        )

    def test_long_early_trade_found_by_late_window(self):
        ingestion = self._ingestion((0, 1000), (10, 20), (500, 600))
        assert [t.id for t in ingestion.trades_between(700, 800)] == ["0"]
        assert [t.id for t in ingestion.trades_between(25, 400)] == ["0"]

    def test_trades_ending_before_window_skipped(self):
        ingestion = self._ingestion((0, 10), (20, 30), (40, 1000), (50, 60))
        assert [t.id for t in ingestion.trades_between(35, None)] == ["2", "3"]
        assert [t.id for t in ingestion.trades_between(None, 20)] == ["0", "1"]

    def test_open_trade_reaches_its_entry_only(self):
        ingestion = self._ingestion((0, 10), (30, None))
        assert [t.id for t in ingestion.trades_between(30, 30)] == ["1"]
        assert ingestion.trades_between(31, None) == ()

    def test_build_indexes_trades(self, memory_source, sample_rows, sample_trade_rows):
        memory_source.set_bar_rows("ES", sample_rows)
        memory_source.set_trade_rows("ES", sample_trade_rows)
        svc = _make_service(memory_source)
        ingestion = svc._ingest("ES")
        assert ingestion.entry_times == (BASE + 60, BASE + 120)
        assert ingestion.reach == (BASE + 180, BASE + 240)


class TestFileSource:
    def test_labelled_file_served_under_file_name(self, tmp_path):
        pd.DataFrame({
            "ts_event": [BASE, BASE + 60],
            "symbol": ["CLZ4", "CLZ4"],
            "open": [70.0, 70.5], "high": [71.0, 71.5],
            "low": [69.5, 70.0], "close": [70.5, 71.0],
        }).to_csv(tmp_path / "CLZ4_ohlcv1m.csv", index=False)
        pd.DataFrame([{
            "id": 1, "symbol": "CLZ4", "side": "buy",
            "entry_time": BASE, "entry_price": 70.2,
            "exit_time": BASE + 60, "exit_price": 71.2,
        }]).to_csv(tmp_path / "CLZ4_ohlcv1m.trades.csv", index=False)

        svc = TradeReviewService(ReviewConfig(
            source_type=SourceType.FILE, data_dir=str(tmp_path), default_instrument=None,
        ))
        assert isinstance(svc.source, FileRowSource)
        result = svc.query("CLZ4_ohlcv1m")
        assert len(result.bars) == 2
        assert [t.id for t in result.trades] == ["1"]
        assert result.trades[0].flags == ()


class TestCreateFromEnv:
    VARS = (
        "TRADE_REVIEW_SOURCE", "TRADE_REVIEW_DATA_DIR", "TRADE_REVIEW_DEFAULT_CONTRACT",
        "TRADE_REVIEW_TIMEZONE", "TRADE_REVIEW_COLLAPSE", "TRADE_REVIEW_DROP_OPEN",
        "TRADE_REVIEW_MAX_SKEW", "TRADE_REVIEW_PRICE_EPSILON", "TRADE_REVIEW_CACHE",
    )

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        # setenv first so teardown also removes values loaded from .env files
        for name in self.VARS:
            monkeypatch.setenv(name, "")
            monkeypatch.delenv(name)

    def test_defaults(self):
        svc = create_service_from_env()
        assert svc.config.source_type is SourceType.MEMORY
        assert svc.config.default_instrument == "DEMO_CONTRACT"
        assert len(svc.get_bars(None, DEMO_DAY, DEMO_DAY)) == 10

    def test_data_dir_selects_file_source(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TRADE_REVIEW_DATA_DIR", str(tmp_path))
        svc = create_service_from_env()
        assert svc.config.source_type is SourceType.FILE
        assert svc.list_instruments() == []

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("TRADE_REVIEW_DEFAULT_CONTRACT", "")
        monkeypatch.setenv("TRADE_REVIEW_COLLAPSE", "skip")
        monkeypatch.setenv("TRADE_REVIEW_DROP_OPEN", "true")
        monkeypatch.setenv("TRADE_REVIEW_MAX_SKEW", "45")
        monkeypatch.setenv("TRADE_REVIEW_CACHE", "none")
        cfg = create_service_from_env().config
        assert cfg.default_instrument is None
        assert cfg.collapse_mode is CollapseMode.SKIP
        assert cfg.drop_open_trades is True
        assert cfg.max_skew_seconds == 45.0
        assert cfg.cache_backend == "none"

    def test_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("TRADE_REVIEW_PRICE_EPSILON=0.25\nTRADE_REVIEW_MAX_SKEW=120\n")
        monkeypatch.setenv("TRADE_REVIEW_MAX_SKEW", "30")
        cfg = create_service_from_env(str(env_file)).config
        assert cfg.price_epsilon == 0.25
        # Already-set variables win over the file
        assert cfg.max_skew_seconds == 30.0
