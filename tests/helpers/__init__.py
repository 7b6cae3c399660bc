"""Test helpers: domain object builders and database seeding."""

from .factories import (
    make_bulk_payload,
    make_document,
    make_history_record,
    make_selection,
    seed_pipeline,
)

__all__ = [
    "make_bulk_payload",
    "make_document",
    "make_history_record",
    "make_selection",
    "seed_pipeline",
]
