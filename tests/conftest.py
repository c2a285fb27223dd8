import threading

import pytest

from core.errors import StoreError


class FakeStore:
    """In-memory stand-in for MongoStore.

    fetch() ignores filters and returns the rows seeded for a table; the
    filter documents are recorded so tests can assert on them. update() and
    delete() act on every stored row equal to the match on each column, as
    Mongo equality does, so a match of {"id": None} hits rows with no id.
    """

    def __init__(self, tables=None, fetch_errors=None, failing_keys=None):
        self.tables = tables or {}
        self.fetch_errors = fetch_errors or {}
        self.failing_keys = set(failing_keys or [])
        self.fetch_calls = []
        self.updates = []
        self.upserts = []
        self.inserts = []
        self.deletes = []
        self.closed = False
        self._lock = threading.Lock()

    @staticmethod
    def _matches(row, match):
        return all(row.get(column) == value for column, value in match.items())

    def fetch(self, table, columns=None, filters=None, order_by=None, descending=False, limit=None):
        self.fetch_calls.append({
            "table": table,
            "columns": columns,
            "filters": filters,
            "order_by": order_by,
            "descending": descending,
        })
        if table in self.fetch_errors:
            raise StoreError(self.fetch_errors[table])
        rows = [dict(row) for row in self.tables.get(table, [])]
        return rows[:limit] if limit else rows

    def update(self, table, values, match):
        with self._lock:
            self.updates.append((table, values, match))
            matched = [row for row in self.tables.get(table, []) if self._matches(row, match)]
            for row in matched:
                row.update(values)
        if set(match.values()) & self.failing_keys:
            raise StoreError(f"update failed for {match}")
        return len(matched)

    def upsert(self, table, rows, conflict_columns, ignore_duplicates=False):
        self.upserts.append({
            "table": table,
            "rows": list(rows),
            "conflict_columns": list(conflict_columns),
            "ignore_duplicates": ignore_duplicates,
        })

    def insert(self, table, rows):
        rows = [dict(row) for row in rows]
        self.inserts.append((table, rows))
        self.tables.setdefault(table, []).extend(dict(row) for row in rows)
        return rows

    def delete(self, table, match):
        self.deletes.append((table, match))
        kept = [row for row in self.tables.get(table, []) if not self._matches(row, match)]
        deleted = len(self.tables.get(table, [])) - len(kept)
        if table in self.tables:
            self.tables[table] = kept
        return deleted

    def close(self):
        self.closed = True


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def dispatch_row():
    return {
        "billing_document": "A",
        "billing_date": "2024-01-01",
        "bill_to_customer": "C1",
        "lot_no": "L1",
        "plant": "1",
        "product": "P1",
        "item_description": "D1",
        "billed_quantity": 10,
        "no_of_package": 1,
        "gross_weight": 5,
        "vehicle_number": "V1",
    }


@pytest.fixture
def stats_rows():
    return [
        {"plant": 1101, "market": "Domestic", "customer_name": "Acme", "billing_date": "2024-01-15", "billed_quantity": "8,870 KG"},
        {"plant": "1102", "market": "Export", "customer_name": "Globex", "billing_date": "2024-02-03", "billed_quantity": "1,130 KG"},
        {"plant": 1101, "market": None, "customer_name": None, "billing_date": "not a date", "billed_quantity": "2,000 KG"},
    ]


@pytest.fixture
def make_store():
    return FakeStore


@pytest.fixture
def market_rows():
    def build(count):
        return [{"ship_to_city": f"City{i}", "market": f"M{i}"} for i in range(count)]
    return build
