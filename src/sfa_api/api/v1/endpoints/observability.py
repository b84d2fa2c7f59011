"""Observability endpoints for loyalty telemetry and Prometheus metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from sfa_api.api.dependencies.security import require_admin_api_key
from sfa_api.observability.loyalty import get_loyalty_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/loyalty",
    dependencies=[Depends(require_admin_api_key)],
    summary="Loyalty ledger observability snapshot",
)
async def get_loyalty_snapshot() -> dict[str, object]:
    """Retrieve aggregated transition, ledger and reconciliation counters."""
    return get_loyalty_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} gauge",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    dependencies=[Depends(require_admin_api_key)],
    summary="Prometheus-formatted observability metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_loyalty_store().snapshot()

    lines: list[str] = []

    for key, value in sorted(snapshot.transitions.items()):
        kind, _, change = key.partition(":")
        from_status, _, to_status = change.partition("->")
        lines.extend(
            _format_metric(
                "sfa_loyalty_transitions_total",
                "Loyalty status transitions grouped by record kind",
                value,
                labels={"kind": kind, "from": from_status, "to": to_status},
            )
        )

    for source_type, value in sorted(snapshot.ledger.get("entries", {}).items()):
        lines.extend(
            _format_metric(
                "sfa_points_ledger_entries_total",
                "Points ledger entries appended grouped by source type",
                value,
                labels={"source_type": source_type},
            )
        )
    for source_type, value in sorted(snapshot.ledger.get("points", {}).items()):
        lines.extend(
            _format_metric(
                "sfa_points_ledger_points_total",
                "Net points written to the ledger grouped by source type",
                value,
                labels={"source_type": source_type},
            )
        )

    for key, value in sorted(snapshot.refusals.items()):
        kind, _, error = key.partition(":")
        lines.extend(
            _format_metric(
                "sfa_loyalty_refusals_total",
                "Refused loyalty operations grouped by error",
                value,
                labels={"kind": kind, "error": error},
            )
        )

    for key, value in sorted(snapshot.reconciliation.items()):
        lines.extend(
            _format_metric(
                f"sfa_ledger_reconciliation_{key}_total",
                f"Ledger reconciliation {key} count",
                value,
            )
        )

    body = "\n".join(lines) + "\n"
    return PlainTextResponse(content=body, media_type="text/plain; version=0.0.4")
