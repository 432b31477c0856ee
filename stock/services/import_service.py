import csv
import io
import logging
from typing import Dict, Any, List, Union

from django.db import transaction

from stock.services.base_service import ServiceError, ValidationError, success_response, clean_text
from stock.services.item_service import StockItemService


logger = logging.getLogger(__name__)


class StockImportService:
    """Bulk creation of stock items where every row succeeds or fails on its own."""

    # First non-empty column wins
    COLUMN_ALIASES = {
        "name": ("name", "Name"),
        "description": ("description", "Description"),
        "unit_of_measure": ("unitOfMeasure", "unit_of_measure", "Unit"),
        "current_quantity": ("currentQuantity", "current_quantity", "Quantity"),
        "reorder_threshold": ("reorderThreshold", "reorder_threshold", "Threshold"),
    }

    @classmethod
    def parse_csv(cls, content: Union[str, bytes]) -> List[Dict[str, Any]]:
        if isinstance(content, bytes):
            try:
                content = content.decode("utf-8-sig")
            except UnicodeDecodeError:
                raise ValidationError("CSV file must be UTF-8 encoded", "file")
        content = (content or "").lstrip("\ufeff")

        try:
            reader = csv.DictReader(io.StringIO(content))
            records = [
                {(key or "").strip(): (value or "").strip() for key, value in record.items()
                 if not isinstance(value, list)}
                for record in reader
            ]
        except csv.Error as e:
            logger.error(f"Failed to parse CSV import: {e}")
            raise ValidationError("Invalid CSV format. Please check the file structure.", "file")

        records = [record for record in records if any(record.values())]
        if not records:
            raise ValidationError("CSV file is empty or has no data rows", "file")

        return [cls.normalize_row(record) for record in records]

    @classmethod
    def normalize_row(cls, record: Dict[str, Any]) -> Dict[str, Any]:
        row = {}
        for field, aliases in cls.COLUMN_ALIASES.items():
            value = None
            for alias in aliases:
                if record.get(alias) not in (None, ""):
                    value = record[alias]
                    break
            row[field] = value
        return row

    @classmethod
    def import_rows(cls, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        logger.info(f"Starting bulk import of stock items: {len(rows)} row(s)")

        results = []
        success_count = 0
        error_count = 0

        for row_number, row in enumerate(rows, start=1):
            if not isinstance(row, dict):
                results.append({
                    "row": row_number,
                    "name": "(invalid)",
                    "success": False,
                    "error": "Invalid row data",
                })
                error_count += 1
                continue

            name = clean_text(row.get("name"))
            try:
                with transaction.atomic():
                    created = StockItemService.create(
                        name=row.get("name"),
                        unit_of_measure=row.get("unit_of_measure"),
                        description=row.get("description"),
                        current_quantity=row.get("current_quantity"),
                        reorder_threshold=row.get("reorder_threshold"),
                    )
            except ServiceError as e:
                logger.warning(f"Bulk import row {row_number} failed: {e.message}")
                results.append({
                    "row": row_number,
                    "name": name or "(empty)",
                    "success": False,
                    "error": e.message,
                })
                error_count += 1
                continue

            results.append({
                "row": row_number,
                "name": name,
                "success": True,
                "id": created["id"],
            })
            success_count += 1

        logger.info(
            f"Bulk import finished: {success_count} created, {error_count} failed "
            f"of {len(rows)} row(s)"
        )

        return success_response({
            "total_rows": len(rows),
            "success_count": success_count,
            "error_count": error_count,
            "results": results,
        }, f"Imported {success_count} of {len(rows)} stock item(s)")
