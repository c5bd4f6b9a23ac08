"""
Tests for CorrectionHistoryService: the rolling correction log, its
persistence, statistics and the feedback it sends to the schema store.
"""

import json
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

import pytest

from invoice_learning.core.errors import (
    CannotModifyBuiltInError,
    LoadFailedError,
    SaveFailedError,
    SchemaNotFoundError,
)
from invoice_learning.models.correction import FieldCorrection
from invoice_learning.models.schema import FieldMapping, InvoiceFieldType
from invoice_learning.services.storage import correction_history as correction_history_module
from invoice_learning.services.storage.builtin_schemas import AMAZON_BUSINESS_ID
from invoice_learning.services.storage.correction_history import CorrectionHistoryService


def correction(field_type=InvoiceFieldType.TOTAL, original="12.00", corrected="21.00", schema_id=None, confidence=0.5):
    return FieldCorrection(
        schema_id=schema_id,
        field_type=field_type,
        original_value=original,
        corrected_value=corrected,
        original_confidence=confidence,
    )


@pytest.fixture
def user_schema(store):
    return store.create_schema(
        "Contoso",
        field_mappings=[FieldMapping(field_type=InvoiceFieldType.TOTAL, confidence=0.8, pattern=r"Total\s*([\d.]+)")],
    )


class TestRecording:
    def test_persisted_and_reloaded(self, history, corrections_file):
        history.record_correction(correction(corrected="21.00"))
        history.record_correction(correction(field_type=InvoiceFieldType.VENDOR, original="Contso", corrected="Contoso"))

        saved = json.loads(corrections_file.read_text(encoding="utf-8"))
        assert [c["corrected_value"] for c in saved] == ["21.00", "Contoso"]

        reloaded = CorrectionHistoryService(corrections_file=corrections_file)
        assert reloaded.load_history() == 2
        assert [c.corrected_value for c in reloaded.corrections()] == ["21.00", "Contoso"]

    def test_reload_rebuilds_extraction_counts(self, history, corrections_file):
        history.record_correction(correction())
        reloaded = CorrectionHistoryService(corrections_file=corrections_file)
        reloaded.load_history()
        assert reloaded.statistics(InvoiceFieldType.TOTAL).total_extractions == 1

    def test_load_missing_file(self, history):
        assert history.load_history() == 0

    def test_load_corrupt_file(self, history, corrections_file):
        corrections_file.parent.mkdir(parents=True)
        corrections_file.write_text("[{", encoding="utf-8")
        with pytest.raises(LoadFailedError):
            history.load_history()

    def test_load_not_an_array(self, history, corrections_file):
        corrections_file.parent.mkdir(parents=True)
        corrections_file.write_text("{}", encoding="utf-8")
        with pytest.raises(LoadFailedError):
            history.load_history()

    def test_rolling_cap(self, corrections_file):
        history = CorrectionHistoryService(corrections_file=corrections_file, max_corrections=3)
        for i in range(5):
            history.record_correction(correction(corrected=str(i)))

        assert [c.corrected_value for c in history.corrections()] == ["2", "3", "4"]
        saved = json.loads(corrections_file.read_text(encoding="utf-8"))
        assert len(saved) == 3

    def test_load_trims_to_cap(self, history, corrections_file):
        for i in range(4):
            history.record_correction(correction(corrected=str(i)))

        small = CorrectionHistoryService(corrections_file=corrections_file, max_corrections=2)
        assert small.load_history() == 2
        assert [c.corrected_value for c in small.corrections()] == ["2", "3"]

    def test_failed_save_keeps_log_unchanged(self, history, monkeypatch):
        history.record_correction(correction(corrected="kept"))

        def fail(path, payload):
            raise OSError("read-only file system")

        monkeypatch.setattr(correction_history_module, "write_json_atomic", fail)
        with pytest.raises(SaveFailedError):
            history.record_correction(correction(corrected="lost"))
        assert [c.corrected_value for c in history.corrections()] == ["kept"]


class TestSchemaFeedback:
    def test_correction_lowers_mapping_confidence(self, history, store, user_schema):
        history.record_correction(correction(schema_id=user_schema.id))

        mapping = store.schema(user_schema.id).mapping_for(InvoiceFieldType.TOTAL)
        assert mapping.correction_count == 1
        assert mapping.effective_confidence == pytest.approx(0.4)

    def test_confirmation_raises_mapping_confidence(self, history, store, user_schema):
        history.record_correction(correction(schema_id=user_schema.id))
        history.record_confirmation(user_schema.id, InvoiceFieldType.TOTAL)

        mapping = store.schema(user_schema.id).mapping_for(InvoiceFieldType.TOTAL)
        assert mapping.confirmation_count == 1
        assert mapping.effective_confidence == pytest.approx(0.8 * 2 / 3)

    def test_correction_against_built_in_is_still_recorded(self, history, store):
        history.record_correction(correction(schema_id=AMAZON_BUSINESS_ID))

        assert len(history.corrections()) == 1
        mapping = store.schema(AMAZON_BUSINESS_ID).mapping_for(InvoiceFieldType.TOTAL)
        assert mapping.correction_count == 0

    def test_correction_against_unknown_schema_is_still_recorded(self, history):
        history.record_correction(correction(schema_id=uuid4()))
        assert len(history.corrections()) == 1

    def test_confirmation_errors_propagate(self, history):
        with pytest.raises(CannotModifyBuiltInError):
            history.record_confirmation(AMAZON_BUSINESS_ID, InvoiceFieldType.TOTAL)
        with pytest.raises(SchemaNotFoundError):
            history.record_confirmation(uuid4(), InvoiceFieldType.TOTAL)

    def test_confirmation_without_schema_is_ignored(self, history, corrections_file):
        history.record_confirmation(None, InvoiceFieldType.TOTAL)
        unwired = CorrectionHistoryService(corrections_file=corrections_file)
        unwired.record_confirmation(uuid4(), InvoiceFieldType.TOTAL)


class TestStatistics:
    def test_accuracy_from_extraction_counts(self, history):
        for _ in range(10):
            history.record_extraction(InvoiceFieldType.TOTAL)
        history.record_correction(correction(original="12.00", corrected="12.50", confidence=0.6))
        history.record_correction(correction(original="5", corrected="500.00", confidence=0.4))

        stats = history.statistics(InvoiceFieldType.TOTAL)
        assert stats.total_extractions == 10
        assert stats.corrections_count == 2
        assert stats.minor_corrections_count == 1
        assert stats.average_original_confidence == pytest.approx(0.5)
        assert stats.accuracy_rate == pytest.approx(0.8)
        assert history.suggested_confidence_adjustment(InvoiceFieldType.TOTAL) == pytest.approx(0.06)

    def test_field_without_history(self, history):
        stats = history.statistics(InvoiceFieldType.TAX)
        assert stats.total_extractions == 0
        assert stats.corrections_count == 0
        assert stats.average_original_confidence == 0.5
        assert stats.accuracy_rate == 0.0

    def test_all_statistics_covers_every_field(self, history):
        assert {s.field_type for s in history.all_statistics()} == set(InvoiceFieldType)

    def test_recent_corrections_newest_first(self, history, user_schema):
        other = uuid4()
        for i in range(4):
            history.record_correction(correction(corrected=str(i), schema_id=user_schema.id))
        history.record_correction(correction(corrected="other", schema_id=other))

        recent = history.recent_corrections(user_schema.id, limit=3)
        assert [c.corrected_value for c in recent] == ["3", "2", "1"]
        assert history.recent_corrections(user_schema.id, limit=0) == []

    def test_common_patterns(self, history):
        history.record_correction(correction(field_type=InvoiceFieldType.VENDOR, original="Contso", corrected="Contoso"))
        history.record_correction(correction(field_type=InvoiceFieldType.VENDOR, original="Fabrkam", corrected="Fabrikam"))
        history.record_correction(correction(field_type=InvoiceFieldType.VENDOR, original="CONTSO", corrected="Contoso"))
        history.record_correction(correction(field_type=InvoiceFieldType.TOTAL))

        patterns = history.common_patterns(InvoiceFieldType.VENDOR)
        assert [(p.original, p.corrected, p.count) for p in patterns] == [
            ("contso", "Contoso", 2),
            ("fabrkam", "Fabrikam", 1),
        ]
        assert len(history.common_patterns(InvoiceFieldType.VENDOR, limit=1)) == 1


class TestExportAndClear:
    def test_export_training_data(self, history, corrections_file):
        history.record_correction(correction(field_type=InvoiceFieldType.VENDOR, corrected="Contoso"))
        path = history.export_training_data()

        assert path == corrections_file.parent / "training_data.json"
        assert json.loads(path.read_text(encoding="utf-8")) == [{"label": "vendor", "text": "Contoso"}]

    def test_export_to_path(self, history, tmp_path):
        target = tmp_path / "export" / "train.json"
        assert history.export_training_data(target) == target
        assert json.loads(target.read_text(encoding="utf-8")) == []

    def test_clear_history(self, history, corrections_file):
        history.record_extraction(InvoiceFieldType.TOTAL)
        history.record_correction(correction())
        history.clear_history()

        assert history.corrections() == []
        assert history.statistics(InvoiceFieldType.TOTAL).total_extractions == 0
        assert not corrections_file.exists()

    def test_clear_without_file(self, history):
        history.clear_history()
        assert history.corrections() == []


class TestConcurrency:
    THREADS = 8
    CALLS = 50

    def run_threads(self, work):
        with ThreadPoolExecutor(max_workers=self.THREADS) as pool:
            for future in [pool.submit(work, i) for i in range(self.THREADS)]:
                future.result()

    def test_corrections_never_lost(self, history, store, user_schema, corrections_file):
        def work(i):
            for n in range(self.CALLS):
                history.record_correction(correction(corrected=f"{i}.{n:02d}", schema_id=user_schema.id))

        self.run_threads(work)

        total = self.THREADS * self.CALLS
        assert len(history.corrections()) == total
        assert len(json.loads(corrections_file.read_text(encoding="utf-8"))) == total
        mapping = store.schema(user_schema.id).mapping_for(InvoiceFieldType.TOTAL)
        assert mapping.correction_count == total

    def test_log_cap_holds_under_contention(self, corrections_file):
        capped = CorrectionHistoryService(corrections_file=corrections_file, max_corrections=100)

        def work(i):
            for n in range(self.CALLS):
                capped.record_correction(correction(corrected=f"{i}.{n:02d}"))

        self.run_threads(work)

        kept = capped.corrections()
        assert len(kept) == 100
        assert len({c.corrected_value for c in kept}) == 100
        assert len(json.loads(corrections_file.read_text(encoding="utf-8"))) == 100
