"""Compact output formatters for MCP tool responses."""

from prediction_ledger.models.document import KpiDocument, VersionedDocument
from prediction_ledger.models.prediction import (
    BonusPrediction,
    Prediction,
    PredictionMetadata,
    PredictionRecord,
)
from prediction_ledger.models.report import CostSummary, EntityReport, RunReport
from prediction_ledger.workflow.maintenance import BackfillResult
from prediction_ledger.workflow.verify import (
    BonusVerificationReport,
    VerificationReport,
    VerificationStatus,
)


def format_prediction(value: Prediction | BonusPrediction | None) -> str:
    """Format: 2:1, or the selected option IDs of a bonus prediction."""
    if value is None:
        return "no prediction"
    if isinstance(value, Prediction):
        return str(value)
    return ", ".join(value.selected_option_ids) or "no selection"


def format_document_header(document: VersionedDocument) -> str:
    """Format: [standings.csv v3] context | 2025-08-01T10:00:00+00:00."""
    return (
        f"[{document.name} v{document.version}] {document.family.value}"
        f" | {document.created_at.isoformat()}"
    )


def format_document_full(document: VersionedDocument) -> str:
    """Header + KPI metadata + content. For ledger_context get."""
    lines = [format_document_header(document)]
    if isinstance(document, KpiDocument):
        meta = [part for part in (document.document_type, document.description) if part]
        if document.tags:
            meta.append(" ".join(f"#{tag}" for tag in document.tags))
        if meta:
            lines.append(f"  {' | '.join(meta)}")
    lines.append(document.content)
    return "\n".join(lines)


def format_record(record: PredictionRecord) -> str:
    """Format: [match] home|away|time #1 2:1 (3 docs, $0.0021)."""
    line = (
        f"[{record.kind.value}] {record.entity_key} #{record.reprediction_index}"
        f" {format_prediction(record.prediction())}"
        f" ({len(record.context_document_names)} docs, ${record.cost:.4f})"
    )
    return f"{line}\n  created {record.created_at.isoformat()}"


def format_metadata(metadata: PredictionMetadata) -> str:
    """Created timestamp, index and the context documents a prediction used."""
    lines = [
        f"Reprediction #{metadata.reprediction_index}: {format_prediction(metadata.prediction)}",
        f"  created {metadata.created_at.isoformat()}",
    ]
    for name in metadata.context_document_names:
        lines.append(f"  - {name}")
    return "\n".join(lines)


def format_entity_report(item: EntityReport) -> str:
    """One line per processed entity."""
    identity = item.identity
    label = (
        f"{identity.home_team} vs {identity.away_team}"
        if identity.home_team is not None
        else identity.key
    )
    line = f"{item.outcome.value}: {label} -> {format_prediction(item.prediction)}"
    if item.reprediction_index is not None and item.reprediction_index >= 0:
        line += f" #{item.reprediction_index}"
    if item.cancelled:
        line += " [cancelled]"
    if item.error:
        line += f" ({item.error})"
    return line


def format_run_report(report: RunReport) -> str:
    """Per-entity lines plus outcome counts and total cost."""
    lines = [format_entity_report(item) for item in report.items]
    counts = ", ".join(f"{outcome} {count}" for outcome, count in sorted(report.counts().items()))
    lines.append(f"\nSummary: {counts or 'nothing processed'} | cost ${report.total_cost:.4f}")
    if report.abandoned:
        lines.append(f"Abandoned: {len(report.abandoned)}")
    return "\n".join(lines)


def format_verification(report: VerificationReport) -> str:
    """Discrepancies first, then the summary."""
    lines = []
    for item in report.items:
        if item.status == VerificationStatus.VALID:
            continue
        match = item.match
        lines.append(
            f"{item.status.value}: {match.home_team} vs {match.away_team}"
            f" placed {format_prediction(item.placed)}, stored {format_prediction(item.stored)}"
        )
    lines.append(
        f"Total {len(report.items)} | placed {report.placed_count}"
        f" | stored {report.stored_count} | valid {report.valid_count}"
    )
    if report.init_matchday_required:
        lines.append("Init matchday: no stored predictions, run the matchday workflow first")
    lines.append("Verification " + ("successful" if report.success else "failed"))
    return "\n".join(lines)


def format_bonus_verification(report: BonusVerificationReport) -> str:
    """Same layout as format_verification, per bonus question."""
    lines = []
    for item in report.items:
        if item.status == VerificationStatus.VALID:
            continue
        lines.append(
            f"{item.status.value}: {item.question.text}"
            f" placed {format_prediction(item.placed)}, stored {format_prediction(item.stored)}"
        )
    lines.append(
        f"Total {len(report.items)} | stored {report.stored_count} | valid {report.valid_count}"
    )
    if report.init_bonus_required:
        lines.append("Init bonus: no stored predictions, run the bonus workflow first")
    lines.append("Bonus verification " + ("successful" if report.success else "failed"))
    return "\n".join(lines)


def format_backfill(result: BackfillResult) -> str:
    """Processed/skipped/failed document lists."""
    prefix = "Dry run: " if result.dry_run else ""
    lines = [
        f"{prefix}{len(result.processed)} documents backfilled"
        f" ({result.versions_rewritten} versions)"
    ]
    for name in result.processed:
        lines.append(f"  + {name}")
    for name in result.skipped:
        lines.append(f"  = {name} (already has Data_Collected_At)")
    for name in result.failed:
        lines.append(f"  ! {name} (failed)")
    return "\n".join(lines)


def format_cost_summary(rows: list[CostSummary], community_context: str) -> str:
    """One line per model and kind, split into index 0, index 1 and index 2+."""
    if not rows:
        return f"No predictions stored for {community_context}"
    groups: dict[tuple[str, str], list[CostSummary]] = {}
    for row in rows:
        groups.setdefault((row.model, row.kind.value), []).append(row)

    def bucket(items: list[CostSummary], low: int, high: int | None) -> str:
        selected = [
            item
            for item in items
            if item.reprediction_index >= low and (high is None or item.reprediction_index <= high)
        ]
        count = sum(item.count for item in selected)
        return f"{count} (${sum(item.cost for item in selected):.4f})"

    lines = [f"Prediction costs ({community_context})"]
    for (model, kind), items in sorted(groups.items()):
        total_count = sum(item.count for item in items)
        total_cost = sum(item.cost for item in items)
        lines.append(
            f"{model} {kind}: #0 {bucket(items, 0, 0)} | #1 {bucket(items, 1, 1)}"
            f" | #2+ {bucket(items, 2, None)} | total {total_count} (${total_cost:.4f})"
        )
    total_count = sum(row.count for row in rows)
    total_cost = sum(row.cost for row in rows)
    lines.append(f"Total: {total_count} predictions, ${total_cost:.4f}")
    return "\n".join(lines)
