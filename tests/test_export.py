"""Tests for CSV, JSON, skipped-rows and row-text exports."""

import csv
import io
import json
from datetime import datetime, timezone

from fire_enrich.export import export_csv, export_json, export_skipped_csv, format_row_text
from fire_enrich.models import (
    EnrichmentField,
    FieldEnrichment,
    FieldType,
    RowEnrichmentResult,
    RowStatus,
    SessionStatus,
    SourceContext,
)

from tests.conftest import make_result


def enriched_store(store):
    store.replace(
        RowEnrichmentResult(
            row_index=0,
            original_data={"email": "ana@acme.com"},
            enrichments={
                "companyName": FieldEnrichment(
                    field="companyName",
                    value="Acme, Inc.",
                    confidence=0.875,
                    source_context=(SourceContext(url="https://acme.com"), SourceContext(url="https://news.com/acme")),
                ),
                "isB2B": FieldEnrichment(field="isB2B", value=True, confidence=0.6, source="acme.com"),
            },
            status=RowStatus.COMPLETED,
        )
    )
    store.replace(make_result(1, status=RowStatus.SKIPPED, error="Personal email provider"))
    return store


class TestExportCsv:
    def test_header_and_rows(self, rows, fields, store):
        text = export_csv(rows, fields, enriched_store(store), email_column="email")

        parsed = list(csv.reader(io.StringIO(text)))
        assert parsed[0] == [
            "email",
            "Company Name",
            "Is B2B",
            "Company Name_confidence",
            "Is B2B_confidence",
            "Company Name_source",
            "Is B2B_source",
        ]
        assert parsed[1] == [
            "ana@acme.com",
            "Acme, Inc.",
            "true",
            "0.88",
            "0.60",
            "https://acme.com; https://news.com/acme",
            "acme.com",
        ]
        assert parsed[2] == ["bob@gmail.com", "", "", "", "", "", ""]
        assert parsed[3][0] == "cy@globex.io"
        assert len(parsed) == 4
        assert not text.endswith("\n")

    def test_array_values_joined(self, rows, store):
        fields = [EnrichmentField(name="tech", display_name="Tech", type=FieldType.ARRAY)]
        store.replace(make_result(0, tech=["python", "go"]))

        parsed = list(csv.reader(io.StringIO(export_csv(rows, fields, store, email_column="email"))))

        assert parsed[1][1] == "python; go"

    def test_email_defaults_to_first_column(self, fields, store):
        rows = [{"contact": "z@zeta.io", "name": "Z"}]

        parsed = list(csv.reader(io.StringIO(export_csv(rows, fields, store))))

        assert parsed[0][0] == "email"
        assert parsed[1][0] == "z@zeta.io"


class TestExportJson:
    def test_document_shape(self, rows, fields, store):
        exported_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        doc = export_json(
            rows, fields, enriched_store(store), email_column="email", status=SessionStatus.CANCELLED, exported_at=exported_at
        )

        assert doc["metadata"] == {
            "exportDate": "2024-05-01T12:00:00+00:00",
            "totalRows": 3,
            "processedRows": 2,
            "fields": [
                {"name": "companyName", "displayName": "Company Name", "type": "string"},
                {"name": "isB2B", "displayName": "Is B2B", "type": "boolean"},
            ],
            "status": "cancelled",
        }
        first = doc["data"][0]
        assert first["_index"] == 0
        assert first["_email"] == "ana@acme.com"
        assert first["_original"] == rows[0]
        assert first["_status"] == "enriched"
        assert first["companyName"] == {
            "value": "Acme, Inc.",
            "confidence": 0.875,
            "sources": ["https://acme.com", "https://news.com/acme"],
        }
        assert first["isB2B"]["sources"] == ["acme.com"]
        assert doc["data"][2]["_status"] == "pending"
        assert "companyName" not in doc["data"][2]
        json.dumps(doc)


class TestExportSkipped:
    def test_none_when_nothing_skipped(self, rows, store):
        store.replace(make_result(0))

        assert export_skipped_csv(rows, store) is None

    def test_skipped_rows_with_reason(self, rows, store):
        store.replace(make_result(1, status=RowStatus.SKIPPED, error="Disposable domain"))
        store.replace(make_result(2, status=RowStatus.SKIPPED))

        parsed = list(csv.reader(io.StringIO(export_skipped_csv(rows, store))))

        assert parsed == [
            ["email", "name", "Skip Reason"],
            ["bob@gmail.com", "Bob", "Disposable domain"],
            ["cy@globex.io", "Cy", "Personal email provider"],
        ]


class TestFormatRowText:
    def test_blocks(self, rows, store):
        fields = [
            EnrichmentField(name="companyName", display_name="Company Name"),
            EnrichmentField(name="isB2B", display_name="Is B2B", type=FieldType.BOOLEAN),
            EnrichmentField(name="tech", display_name="Tech", type=FieldType.ARRAY),
            EnrichmentField(name="ceo", display_name="CEO"),
        ]
        store.replace(make_result(0, companyName="Acme", isB2B=False, tech=["python", "go"], ceo=""))

        text = format_row_text(0, rows, fields, store, email_column="email")

        assert text == (
            "Email: ana@acme.com\n\n"
            "Company Name: Acme\n\n"
            "Is B2B: No\n\n"
            "Tech: python, go\n\n"
            "CEO: Not found"
        )

    def test_missing_result(self, rows, fields, store):
        assert format_row_text(2, rows, fields, store, email_column="email") is None
