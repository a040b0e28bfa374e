"""
Human-readable identifiers.

Each generator draws a candidate from the clock plus a random suffix and
checks the collection for a clash, giving up after a fixed number of tries.
Unique indexes remain the final guard.
"""
import logging
import random
import string
import time
from datetime import datetime

from database import utcnow

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5

_rng = random.SystemRandom()


class CodeGenerationError(Exception):
    pass


def _stamp_ms() -> str:
    return str(int(time.time() * 1000))


def custom_order_code(now: datetime = None, rng=_rng) -> str:
    now = now or utcnow()
    return f"WA-{now.year}-{now.month:02d}{now.day:02d}-{rng.randint(0, 999):03d}"


def order_code(now: datetime = None, rng=_rng) -> str:
    now = now or utcnow()
    suffix = "".join(rng.choice(string.digits) for _ in range(6))
    return f"WAG-{now:%Y%m%d}-{suffix}"


def item_code(now: datetime = None, rng=_rng) -> str:
    suffix = "".join(rng.choice(string.ascii_uppercase + string.digits) for _ in range(6))
    return f"ITM-{_stamp_ms()[-4:]}-{suffix}"


def po_code(now: datetime = None, rng=_rng) -> str:
    now = now or utcnow()
    suffix = "".join(rng.choice(string.ascii_uppercase + string.digits) for _ in range(4))
    return f"PO-{now:%Y%m%d}-{suffix}"


def supplier_txn_code(now: datetime = None, rng=_rng) -> str:
    return f"TXN-{_stamp_ms()[-6:]}-{rng.randint(0, 999):03d}"


def salary_txn_code(year: int, month_number: int, rng=_rng) -> str:
    return f"SDS{year}{month_number:02d}{rng.randint(0, 9998):04d}"


class CodeGenerator:
    def __init__(self, collection: str, field: str, make_candidate, label: str, attempts: int = MAX_ATTEMPTS):
        self.collection = collection
        self.field = field
        self.make_candidate = make_candidate
        self.label = label
        self.attempts = attempts

    def generate(self, db, **kwargs) -> str:
        for _ in range(self.attempts):
            candidate = self.make_candidate(**kwargs)
            if db[self.collection].find_one({self.field: candidate}, {"_id": 1}) is None:
                return candidate
        logger.error("Gave up generating %s after %d collisions", self.label, self.attempts)
        raise CodeGenerationError(f"Could not generate unique {self.label}")

    def assign(self, db, doc: dict, **kwargs) -> dict:
        if not doc.get(self.field):
            doc[self.field] = self.generate(db, **kwargs)
        return doc


CUSTOM_ORDER_IDS = CodeGenerator("customorder", "order_id", custom_order_code, "order id")
ORDER_IDS = CodeGenerator("order", "order_id", order_code, "order id")
ITEM_CODES = CodeGenerator("design", "item_code", item_code, "item code")
PO_CODES = CodeGenerator("purchaseorder", "po_code", po_code, "purchase order code")
SUPPLIER_TXN_IDS = CodeGenerator("supplierpayment", "transaction_id", supplier_txn_code, "transaction id")
SALARY_TXN_IDS = CodeGenerator("staffdesignersalary", "transaction_id", salary_txn_code, "transaction id")
