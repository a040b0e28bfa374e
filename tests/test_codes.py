from datetime import datetime, timezone

import pytest

from codes import (
    CodeGenerationError, CodeGenerator, custom_order_code, order_code, po_code, salary_txn_code,
)


class FixedRandom:
    def randint(self, low, high):
        return 7

    def choice(self, seq):
        return seq[0]


NOW = datetime(2025, 3, 9, 10, 30, tzinfo=timezone.utc)


def test_custom_order_code_format():
    assert custom_order_code(NOW, FixedRandom()) == "WA-2025-0309-007"


def test_order_code_format():
    assert order_code(NOW, FixedRandom()) == "WAG-20250309-000000"


def test_po_code_format():
    assert po_code(NOW, FixedRandom()) == "PO-20250309-AAAA"


def test_salary_code_uses_year_and_month():
    assert salary_txn_code(2025, 3, FixedRandom()) == "SDS2025030007"


def test_generate_skips_taken_codes(db):
    candidates = iter(["WA-1", "WA-2"])
    db["customorder"].insert_one({"order_id": "WA-1"})
    generator = CodeGenerator("customorder", "order_id", lambda **kw: next(candidates), "order id")
    assert generator.generate(db) == "WA-2"


def test_generate_gives_up_after_five_collisions(db):
    calls = []

    def always_taken(**kw):
        calls.append(1)
        return "WA-TAKEN"

    db["customorder"].insert_one({"order_id": "WA-TAKEN"})
    generator = CodeGenerator("customorder", "order_id", always_taken, "order id")
    with pytest.raises(CodeGenerationError, match="Could not generate unique order id"):
        generator.generate(db)
    assert len(calls) == 5


def test_assign_keeps_existing_code(db):
    generator = CodeGenerator("order", "order_id", lambda **kw: "WAG-NEW", "order id")
    assert generator.assign(db, {"order_id": "WAG-OLD"})["order_id"] == "WAG-OLD"
    assert generator.assign(db, {})["order_id"] == "WAG-NEW"
