"""Export enrichment results to CSV, JSON and plain text.

Every export reads only the result store's ``get`` interface together with
the input rows and requested fields. Rows are exported in input order;
rows without a stored result export with empty values.
"""

import csv
import io
from datetime import datetime, timezone
from typing import Any, Sequence

from fire_enrich.models import (
    EnrichmentField,
    FieldEnrichment,
    Row,
    RowStatus,
    SessionStatus,
    row_email,
)
from fire_enrich.storage.interfaces import ResultStoreInterface

DEFAULT_SKIP_REASON = "Personal email provider"


def _csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _csv_sources(enrichment: FieldEnrichment | None) -> str:
    if enrichment is None:
        return ""
    if enrichment.source_context:
        return "; ".join(ctx.url for ctx in enrichment.source_context)
    return enrichment.source or ""


def export_csv(
    rows: Sequence[Row],
    fields: Sequence[EnrichmentField],
    store: ResultStoreInterface,
    email_column: str | None = None,
) -> str:
    """Render one line per input row: email, values, confidences, sources."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(
        [email_column or "email"]
        + [f.display_name for f in fields]
        + [f"{f.display_name}_confidence" for f in fields]
        + [f"{f.display_name}_source" for f in fields]
    )
    for index, row in enumerate(rows):
        result = store.get(index)
        enrichments = result.enrichments if result else {}
        found = [enrichments.get(f.name) for f in fields]
        writer.writerow(
            [row_email(row, email_column)]
            + [_csv_value(e.value if e else None) for e in found]
            + [f"{e.confidence:.2f}" if e and e.confidence else "" for e in found]
            + [_csv_sources(e) for e in found]
        )
    return buffer.getvalue().rstrip("\n")


def export_json(
    rows: Sequence[Row],
    fields: Sequence[EnrichmentField],
    store: ResultStoreInterface,
    email_column: str | None = None,
    status: SessionStatus = SessionStatus.COMPLETED,
    exported_at: datetime | None = None,
) -> dict[str, Any]:
    """Build the structured export document.

    Returns a JSON-serializable dict with ``metadata`` and one ``data``
    entry per input row.
    """
    exported_at = exported_at or datetime.now(timezone.utc)
    data: list[dict[str, Any]] = []
    for index, row in enumerate(rows):
        result = store.get(index)
        entry: dict[str, Any] = {
            "_index": index,
            "_email": row_email(row, email_column),
            "_original": dict(row),
            "_status": "enriched" if result else "pending",
        }
        if result:
            for f in fields:
                enrichment = result.enrichments.get(f.name)
                if enrichment is not None:
                    entry[f.name] = {
                        "value": enrichment.value,
                        "confidence": enrichment.confidence,
                        "sources": enrichment.source_urls(),
                    }
        data.append(entry)
    return {
        "metadata": {
            "exportDate": exported_at.isoformat(),
            "totalRows": len(rows),
            "processedRows": store.count(),
            "fields": [f.model_dump(mode="json", by_alias=True, include={"name", "display_name", "type"}) for f in fields],
            "status": status.value,
        },
        "data": data,
    }


def export_skipped_csv(rows: Sequence[Row], store: ResultStoreInterface) -> str | None:
    """Original columns of every skipped row plus a ``Skip Reason`` column.

    Returns None when no row was skipped.
    """
    skipped = [(index, row) for index, row in enumerate(rows) if (r := store.get(index)) and r.status == RowStatus.SKIPPED]
    if not skipped:
        return None
    headers = list(skipped[0][1].keys())
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers + ["Skip Reason"])
    for index, row in skipped:
        result = store.get(index)
        reason = (result.error if result else None) or DEFAULT_SKIP_REASON
        writer.writerow([row.get(h, "") for h in headers] + [reason])
    return buffer.getvalue().rstrip("\n")


def format_row_text(
    row_index: int,
    rows: Sequence[Row],
    fields: Sequence[EnrichmentField],
    store: ResultStoreInterface,
    email_column: str | None = None,
) -> str | None:
    """Human-readable summary of one row, for pasting into documents.

    Returns None if the row has no stored result.
    """
    result = store.get(row_index)
    if result is None or row_index >= len(rows):
        return None
    row = rows[row_index]
    blocks = [f"Email: {row_email(row, email_column)}"]
    for f in fields:
        enrichment = result.enrichments.get(f.name)
        value = enrichment.value if enrichment else None
        if value is None or value == "":
            text = "Not found"
        elif isinstance(value, list):
            text = ", ".join(str(v) for v in value)
        elif isinstance(value, bool):
            text = "Yes" if value else "No"
        else:
            text = str(value)
        blocks.append(f"{f.display_name}: {text}")
    return "\n\n".join(blocks)
