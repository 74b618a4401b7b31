from __future__ import annotations

import csv
import io
import json
import re
import zipfile
from typing import Any, Iterable

from factoring.schemas.factor import FactorOperationDetailRead

ITEM_CSV_FIELDS = [
    "line_no",
    "action_type",
    "ar_installment_id",
    "ar_title_id",
    "customer_id",
    "installment_number_snapshot",
    "due_date_snapshot",
    "amount_snapshot",
    "proposed_due_date",
    "buyback_settle_now",
    "status",
    "final_amount",
    "final_due_date",
    "estimated_cost_amount",
]

PACKAGE_README = "Nenhuma NF-e autorizada encontrada para os pedidos desta operação.\n"


def _sanitize_name_part(value: str) -> str:
    return re.sub(r"[^\w\-]+", "_", value.strip())


def _canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, indent=2, ensure_ascii=False)


def _deterministic_zip_bytes(files: Iterable[tuple[str, bytes]]) -> bytes:
    """Zip with fixed timestamps and permissions so equal input gives equal bytes."""

    buf = io.BytesIO()

    # ZipInfo.date_time minimum is 1980-01-01.
    fixed_dt = (1980, 1, 1, 0, 0, 0)

    with zipfile.ZipFile(buf, mode="w") as zf:
        for name, content in files:
            zi = zipfile.ZipInfo(filename=name, date_time=fixed_dt)
            zi.compress_type = zipfile.ZIP_DEFLATED
            zi.create_system = 3
            zi.external_attr = 0o644 << 16
            zf.writestr(zi, content, compress_type=zipfile.ZIP_DEFLATED)

    return buf.getvalue()


def package_filename(detail: FactorOperationDetailRead) -> str:
    return f"factor_operacao_{detail.operation.operation_number}.zip"


def _current_version_items(detail: FactorOperationDetailRead) -> list[dict[str, Any]]:
    current = next(
        (v for v in detail.versions if v.id == detail.operation.current_version_id),
        None,
    )
    if current is not None:
        return list(current.snapshot_json.get("items") or [])
    # Never sent: fall back to the live items without cost estimates.
    return [item.model_dump(mode="json") for item in detail.items]


def build_items_csv_bytes(detail: FactorOperationDetailRead) -> bytes:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=ITEM_CSV_FIELDS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for item in sorted(_current_version_items(detail), key=lambda row: int(row.get("line_no") or 0)):
        estimated = item.get("estimated_costs") or {}
        writer.writerow({**item, "estimated_cost_amount": estimated.get("total_cost_amount", "")})
    return buf.getvalue().encode("utf-8")


def build_operation_package(detail: FactorOperationDetailRead) -> bytes:
    """ZIP sent to the factor: operation detail JSON, item list CSV and a README."""

    number = _sanitize_name_part(str(detail.operation.operation_number))
    files = [
        (f"operacao_{number}_snapshot.json", _canonical_json(detail.model_dump(mode="json")).encode("utf-8")),
        (f"operacao_{number}_itens.csv", build_items_csv_bytes(detail)),
        ("README.txt", PACKAGE_README.encode("utf-8")),
    ]
    return _deterministic_zip_bytes(files)
