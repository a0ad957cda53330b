"""Services: the transformation engine and result serialization."""

from crm_ingestion.services.emit import errors_to_json, to_csv_text, write_csv
from crm_ingestion.services.transformation_engine import TransformationEngine

__all__ = [
    "TransformationEngine",
    "errors_to_json",
    "to_csv_text",
    "write_csv",
]
