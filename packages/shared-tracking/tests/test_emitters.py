"""Tests for the Tracker conversion, retargeting and internal emitters."""

import logging

import pytest
from windowman.tracking.config import TrackingConfig
from windowman.tracking.emitters import Tracker
from windowman.tracking.guard import DedupGuard
from windowman.tracking.identity import sha256_hex
from windowman.tracking.schema import OptEvent, UserIdentity
from windowman.tracking.sink import DataLayerSink, HttpSink
from windowman.tracking.storage import FileStore, InMemoryStore

TEST_LEAD_ID = "test-lead-abc"


class TestWmLead:
    """Test wm_lead."""

    @pytest.mark.asyncio
    async def test_record_shape(self, tracker, sink, identity):
        event_id = await tracker.wm_lead(identity)

        assert event_id == f"lead:{TEST_LEAD_ID}"
        record = sink.find("wm_lead")[0]
        assert record["event_id"] == event_id
        assert record["value"] == 10
        assert record["currency"] == "USD"
        assert record["meta"] == {
            "send": True,
            "category": "opt",
            "meta_event_name": "Lead",
            "value": 10,
            "currency": "USD",
            "wm_tracking_version": "1.0.0",
        }
        assert record["lead_id"] == TEST_LEAD_ID
        assert record["external_id"] == TEST_LEAD_ID
        assert record["source_system"] == "website"

    @pytest.mark.asyncio
    async def test_user_data_hashed(self, tracker, sink, identity):
        await tracker.wm_lead(identity)

        user_data = sink.find("wm_lead")[0]["user_data"]
        assert user_data["em"] == sha256_hex("user@example.com")
        assert user_data["sha256_email_address"] == user_data["em"]
        assert user_data["ph"] == sha256_hex("+15551234567")
        assert user_data["external_id"] == TEST_LEAD_ID
        assert "user@example.com" not in str(user_data)

    @pytest.mark.asyncio
    async def test_bridge_follows_primary(self, tracker, sink):
        await tracker.wm_lead({"leadId": "L1"}, {"source_tool": "quote-scanner", "page_path": "/scan"})

        assert [r["event"] for r in sink.records] == ["wm_lead", "lead_submission_success"]
        bridge = sink.records[1]
        assert bridge["meta"]["category"] == "rt"
        assert bridge["legacy_bridge"] is True
        assert bridge["source_tool"] == "quote-scanner"
        assert bridge["page_path"] == "/scan"
        assert "value" not in bridge
        assert "currency" not in bridge
        assert "value" not in bridge["meta"]

    @pytest.mark.asyncio
    async def test_accepts_form_payload(self, tracker, sink, sample_identity_data):
        event_id = await tracker.wm_lead(sample_identity_data)

        assert event_id == "lead:lead-001"
        assert sink.find("wm_lead")[0]["user_data"]["ct"] == sha256_hex("fortlauderdale")

    @pytest.mark.asyncio
    async def test_missing_lead_id_raises(self, tracker):
        with pytest.raises(ValueError, match="lead_id"):
            await tracker.wm_lead({"email": "a@b.com"})

    @pytest.mark.asyncio
    async def test_context_cannot_override_value(self, tracker, sink, identity):
        await tracker.wm_lead(
            identity,
            {"value": 999999, "currency": "EUR", "event_id": "spoofed", "meta": {}, "source_tool": "x"},
        )

        record = sink.find("wm_lead")[0]
        assert record["value"] == 10
        assert record["currency"] == "USD"
        assert record["event_id"] == f"lead:{TEST_LEAD_ID}"
        assert record["meta"]["category"] == "opt"
        assert record["source_tool"] == "x"

    @pytest.mark.asyncio
    async def test_context_cannot_override_identity(self, tracker, sink):
        await tracker.wm_lead(
            {"leadId": "L1", "email": "a@b.com"},
            {"user_data": {"em": "a@b.com"}, "lead_id": "X", "external_id": "Y", "page_path": "/"},
        )

        record = sink.find("wm_lead")[0]
        assert record["user_data"]["em"] == sha256_hex("a@b.com")
        assert record["lead_id"] == "L1"
        assert record["external_id"] == "L1"
        assert record["page_path"] == "/"
        assert "a@b.com" not in str(record)

    @pytest.mark.asyncio
    async def test_no_pii_omits_user_data(self, tracker, sink):
        await tracker.wm_lead(UserIdentity(lead_id="L1"))

        record = sink.find("wm_lead")[0]
        assert "user_data" not in record
        assert record["external_id"] == "L1"

    @pytest.mark.asyncio
    async def test_hashing_failure_still_emits(self, tracker, sink, identity, monkeypatch, caplog):
        async def broken(_identity):
            raise RuntimeError("hash backend down")

        monkeypatch.setattr("windowman.tracking.emitters.hash_identity_async", broken)

        with caplog.at_level(logging.WARNING, logger="windowman.tracking.emitters"):
            await tracker.wm_lead(identity)

        record = sink.find("wm_lead")[0]
        assert "user_data" not in record
        assert record["value"] == 10
        assert "PII hashing failed" in caplog.text


class TestWmQualifiedLead:
    """Test wm_qualified_lead."""

    @pytest.mark.asyncio
    async def test_fires_once_per_lead(self, tracker, sink, identity):
        assert await tracker.wm_qualified_lead(identity) is True
        assert await tracker.wm_qualified_lead(identity) is False

        records = sink.find("wm_qualified_lead")
        assert len(records) == 1
        assert records[0]["event_id"] == f"ql:{TEST_LEAD_ID}"
        assert records[0]["value"] == 100
        assert records[0]["meta"]["meta_event_name"] == "QualifiedLead"

    @pytest.mark.asyncio
    async def test_bridge_name(self, tracker, sink, identity):
        await tracker.wm_qualified_lead(identity)

        assert len(sink.find("phone_lead_captured")) == 1

    @pytest.mark.asyncio
    async def test_suppressed_after_upload(self, tracker, sink, identity):
        await tracker.wm_scanner_upload(identity, "scan-1")

        assert await tracker.wm_qualified_lead(identity) is False
        assert sink.find("wm_qualified_lead") == []
        assert sink.find("phone_lead_captured") == []

    @pytest.mark.asyncio
    async def test_suppression_logged_in_debug(self, tracker, identity, caplog):
        await tracker.wm_qualified_lead(identity)

        with caplog.at_level(logging.INFO, logger="windowman.tracking.emitters"):
            await tracker.wm_qualified_lead(identity)

        assert "duplicate" in caplog.text

    @pytest.mark.asyncio
    async def test_reset_session_guards(self, tracker, sink, identity):
        await tracker.wm_qualified_lead(identity)

        tracker.reset_session_guards(TEST_LEAD_ID)

        assert await tracker.wm_qualified_lead(identity) is True
        assert len(sink.find("wm_qualified_lead")) == 2

    @pytest.mark.asyncio
    async def test_storage_unavailable_still_fires(self, sink, identity, unavailable_store):
        tracker = Tracker(sink=sink, guard=DedupGuard(unavailable_store))

        assert await tracker.wm_qualified_lead(identity) is True
        assert len(sink.find("wm_qualified_lead")) == 1


class TestWmScannerUpload:
    """Test wm_scanner_upload."""

    @pytest.mark.asyncio
    async def test_record_shape(self, tracker, sink, identity):
        event_id = await tracker.wm_scanner_upload(identity, "scan-1", {"source_tool": "scanner"})

        assert event_id == "upload:scan-1"
        record = sink.find("wm_scanner_upload")[0]
        assert record["value"] == 500
        assert record["scan_attempt_id"] == "scan-1"
        assert record["meta"]["meta_event_name"] == "ScannerUpload"
        assert sink.find("quote_upload_success")[0]["source_tool"] == "scanner"

    @pytest.mark.asyncio
    async def test_same_attempt_deduplicated(self, tracker, sink, identity):
        assert await tracker.wm_scanner_upload(identity, "scan-1") == "upload:scan-1"
        assert await tracker.wm_scanner_upload(identity, "scan-1") is None

        assert len(sink.find("wm_scanner_upload")) == 1
        assert len(sink.find("quote_upload_success")) == 1

    @pytest.mark.asyncio
    async def test_new_attempt_fires(self, tracker, sink, identity):
        await tracker.wm_scanner_upload(identity, "scan-1")
        await tracker.wm_scanner_upload(identity, "scan-2")

        assert [r["event_id"] for r in sink.find("wm_scanner_upload")] == ["upload:scan-1", "upload:scan-2"]

    @pytest.mark.asyncio
    async def test_reset_guard_allows_refire(self, tracker, sink, identity):
        await tracker.wm_scanner_upload(identity, "scan-1")

        tracker.reset_scanner_upload_guard()

        assert await tracker.wm_scanner_upload(identity, "scan-1") == "upload:scan-1"
        assert len(sink.find("wm_scanner_upload")) == 2


class TestWmAppointmentBooked:
    """Test wm_appointment_booked."""

    @pytest.mark.asyncio
    async def test_with_key(self, tracker, sink, identity):
        event_id = await tracker.wm_appointment_booked(identity, "appt-42")

        assert event_id == f"appt:{TEST_LEAD_ID}:appt-42"
        record = sink.find("wm_appointment_booked")[0]
        assert record["value"] == 1000
        assert record["meta"]["meta_event_name"] == "Schedule"
        assert len(sink.find("booking_confirmed")) == 1

    @pytest.mark.asyncio
    async def test_without_key_uses_clock(self, tracker, identity):
        event_id = await tracker.wm_appointment_booked(identity)

        assert event_id == f"appt:{TEST_LEAD_ID}:1700000000000"

    @pytest.mark.asyncio
    async def test_same_key_pushed_once(self, tracker, sink, identity):
        first = await tracker.wm_appointment_booked(identity, "appt-42")
        second = await tracker.wm_appointment_booked(identity, "appt-42")

        assert first == second
        assert len(sink.find("wm_appointment_booked")) == 1
        assert len(sink.find("booking_confirmed")) == 1

    @pytest.mark.asyncio
    async def test_new_key_fires(self, tracker, sink, identity):
        await tracker.wm_appointment_booked(identity, "appt-42")
        await tracker.wm_appointment_booked(identity, "appt-43")

        assert len(sink.find("wm_appointment_booked")) == 2


class TestWmSold:
    """Test wm_sold."""

    @pytest.mark.asyncio
    async def test_value_adds_sale_amount(self, tracker, sink, identity):
        event_id = await tracker.wm_sold(identity, 12000, "deal-1")

        assert event_id == f"sold:{TEST_LEAD_ID}:deal-1"
        record = sink.find("wm_sold")[0]
        assert record["value"] == 17000
        assert record["meta"]["value"] == 17000
        assert record["sale_amount"] == 12000
        assert record["meta"]["meta_event_name"] == "Purchase"

    @pytest.mark.asyncio
    async def test_negative_amount_clamped(self, tracker, sink):
        event_id = await tracker.wm_sold({"leadId": "L2"}, -500, "deal1")

        assert event_id == "sold:L2:deal1"
        record = sink.find("wm_sold")[0]
        assert record["value"] == 5000
        assert record["sale_amount"] == -500

    @pytest.mark.asyncio
    async def test_no_bridge(self, tracker, sink, identity):
        await tracker.wm_sold(identity, 100, "deal-1")

        assert [r["event"] for r in sink.records] == ["wm_sold"]

    @pytest.mark.asyncio
    async def test_without_key_uses_clock(self, tracker, identity):
        assert await tracker.wm_sold(identity, 0) == f"sold:{TEST_LEAD_ID}:1700000000000"


class TestRetargetAndInternal:
    """Test wm_retarget and wm_internal."""

    def test_retarget_has_no_value(self, tracker, sink):
        event_id = tracker.wm_retarget("scanner_opened", {"page_path": "/scan", "value": 50, "currency": "USD"})

        record = sink.find("scanner_opened")[0]
        assert record["event_id"] == event_id
        assert record["meta"] == {"send": True, "category": "rt", "wm_tracking_version": "1.0.0"}
        assert record["page_path"] == "/scan"
        assert "value" not in record
        assert "currency" not in record

    def test_retarget_ids_are_random(self, tracker):
        assert tracker.wm_retarget("page_view") != tracker.wm_retarget("page_view")

    def test_internal_not_sent(self, tracker, sink):
        tracker.wm_internal("scanner_debug", {"step": "ocr", "value": 1})

        record = sink.find("scanner_debug")[0]
        assert record["meta"]["send"] is False
        assert record["meta"]["category"] == "internal"
        assert record["step"] == "ocr"
        assert "value" not in record
        assert "source_system" not in record


class TestCategoryContract:
    """Value and currency appear on a record iff it is an OPT record."""

    @pytest.mark.asyncio
    async def test_every_record_honors_contract(self, tracker, sink, identity):
        await tracker.wm_lead(identity)
        await tracker.wm_qualified_lead(UserIdentity(lead_id="other"))
        await tracker.wm_scanner_upload(identity, "scan-1")
        await tracker.wm_appointment_booked(identity, "a1")
        await tracker.wm_sold(identity, 250, "d1")
        tracker.wm_retarget("page_view", {"value": 1})
        tracker.wm_internal("debug", {"currency": "USD"})

        for record in sink.records:
            is_opt = record["meta"]["category"] == "opt"
            assert ("value" in record) is is_opt
            assert ("currency" in record) is is_opt
            assert ("value" in record["meta"]) is is_opt
            if is_opt:
                assert record["event"] in {e.value for e in OptEvent}
                assert record["event"].startswith("wm_")

    @pytest.mark.asyncio
    async def test_every_record_has_meta_and_event_id(self, tracker, sink, identity):
        await tracker.wm_lead(identity)
        tracker.wm_retarget("page_view")
        tracker.wm_internal("debug")

        for record in sink.records:
            assert record["event_id"]
            assert record["meta"]["wm_tracking_version"] == "1.0.0"

    @pytest.mark.asyncio
    async def test_tracking_version_from_config(self, sink, identity):
        tracker = Tracker(sink=sink, config=TrackingConfig(tracking_version="2.1.0", source_system="crm"))

        await tracker.wm_lead(identity)

        record = sink.find("wm_lead")[0]
        assert record["meta"]["wm_tracking_version"] == "2.1.0"
        assert record["source_system"] == "crm"


class TestSinkFailures:
    """Sink failures never reach the caller."""

    @pytest.mark.asyncio
    async def test_opt_emitters_return_normally(self, failing_sink, identity, caplog):
        tracker = Tracker(sink=failing_sink)

        with caplog.at_level(logging.ERROR, logger="windowman.tracking.emitters"):
            assert await tracker.wm_lead(identity) == f"lead:{TEST_LEAD_ID}"
            assert await tracker.wm_qualified_lead(identity) is True

        # Primary + bridge for each emitter
        assert len(failing_sink.attempts) == 4
        assert "Failed to push wm_lead" in caplog.text

    def test_rt_and_internal_return_ids(self, failing_sink):
        tracker = Tracker(sink=failing_sink)

        assert tracker.wm_retarget("page_view")
        assert tracker.wm_internal("debug")

    @pytest.mark.asyncio
    async def test_guard_marked_even_if_push_fails(self, failing_sink, identity):
        tracker = Tracker(sink=failing_sink)

        await tracker.wm_qualified_lead(identity)

        assert tracker.guard.has_qualified_fired(TEST_LEAD_ID)


class TestFromConfig:
    """Test Tracker.from_config wiring."""

    def test_defaults(self):
        tracker = Tracker.from_config(TrackingConfig())

        assert isinstance(tracker.sink, DataLayerSink)
        assert isinstance(tracker.guard.store, InMemoryStore)

    def test_file_store_and_http_sink(self, tmp_path):
        config = TrackingConfig(
            guard_path=str(tmp_path / "guard.json"),
            collector_url="https://collector.example.com/track",
        )

        tracker = Tracker.from_config(config)

        assert isinstance(tracker.guard.store, FileStore)
        assert isinstance(tracker.sink, HttpSink)
        assert tracker.sink.url == "https://collector.example.com/track"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("WM_TRACKING_VERSION", "3.0.0")
        monkeypatch.delenv("WM_TRACKING_GUARD_PATH", raising=False)
        monkeypatch.delenv("WM_TRACKING_COLLECTOR_URL", raising=False)

        tracker = Tracker.from_config()

        assert tracker.config.tracking_version == "3.0.0"

    @pytest.mark.asyncio
    async def test_file_guard_survives_restart(self, tmp_path, identity):
        config = TrackingConfig(guard_path=str(tmp_path / "guard.json"))

        first = Tracker.from_config(config)
        assert await first.wm_qualified_lead(identity) is True

        second = Tracker.from_config(config)
        assert await second.wm_qualified_lead(identity) is False


async def _fire_lead(tracker, identity):
    await tracker.wm_lead(identity)


async def _fire_qualified_lead(tracker, identity):
    await tracker.wm_qualified_lead(identity)


async def _fire_scanner_upload(tracker, identity):
    await tracker.wm_scanner_upload(identity, "scan-1")


async def _fire_appointment(tracker, identity):
    await tracker.wm_appointment_booked(identity, "appt-1")


async def _fire_sold(tracker, identity):
    await tracker.wm_sold(identity, 100, "deal-1")


class TestConversionIdempotency:
    """Firing a conversion twice with the same key leaves one OPT record."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "fire",
        [_fire_lead, _fire_qualified_lead, _fire_scanner_upload, _fire_appointment, _fire_sold],
    )
    async def test_one_opt_record_per_key(self, tracker, sink, identity, fire):
        await fire(tracker, identity)
        await fire(tracker, identity)

        assert len(sink.by_category("opt")) == 1
        assert len(sink.by_category("rt")) <= 1

    @pytest.mark.asyncio
    async def test_repeat_returns_same_event_id(self, tracker, sink, identity):
        first = await tracker.wm_sold(identity, 100, "deal-1")
        second = await tracker.wm_sold(identity, 100, "deal-1")

        assert first == second == f"sold:{TEST_LEAD_ID}:deal-1"
        assert len(sink.find("wm_sold")) == 1

    @pytest.mark.asyncio
    async def test_lead_claim_shared_across_trackers(self, store, identity):
        first_sink, second_sink = DataLayerSink(), DataLayerSink()

        await Tracker(sink=first_sink, guard=DedupGuard(store)).wm_lead(identity)
        await Tracker(sink=second_sink, guard=DedupGuard(store)).wm_lead(identity)

        assert len(first_sink.find("wm_lead")) == 1
        assert second_sink.records == []

    @pytest.mark.asyncio
    async def test_reset_session_guards_allows_lead_again(self, tracker, sink, identity):
        await tracker.wm_lead(identity)

        tracker.reset_session_guards(TEST_LEAD_ID)
        await tracker.wm_lead(identity)

        assert len(sink.find("wm_lead")) == 2

    @pytest.mark.asyncio
    async def test_earlier_attempt_not_billed_twice(self, tracker, sink, identity):
        await tracker.wm_scanner_upload(identity, "scan-1")
        await tracker.wm_scanner_upload(identity, "scan-2")

        assert await tracker.wm_scanner_upload(identity, "scan-1") is None
        assert len(sink.find("wm_scanner_upload")) == 2

    @pytest.mark.asyncio
    async def test_storage_unavailable_still_emits(self, sink, identity, unavailable_store):
        tracker = Tracker(sink=sink, guard=DedupGuard(unavailable_store))

        await tracker.wm_lead(identity)

        assert len(sink.find("wm_lead")) == 1
