import pytest


class FakeStore:
    """In-memory worklist: rows of strings, header first, writes applied in place."""

    def __init__(self, rows):
        self.rows = [list(r) for r in rows]
        self.writes = []
        self.column_reads = 0

    async def read_rows(self):
        return [list(r) for r in self.rows]

    async def read_column(self, column):
        self.column_reads += 1
        return [r[column] if column < len(r) else "" for r in self.rows]

    async def batch_write(self, writes):
        for w in writes:
            row = self.rows[w.row - 1]
            row.extend([""] * (w.column + 1 - len(row)))
            row[w.column] = w.value
        self.writes.extend(writes)
        return len(writes)


@pytest.fixture
def make_store():
    return FakeStore
