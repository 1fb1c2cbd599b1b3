from unittest.mock import AsyncMock, MagicMock

import pytest


class FakeCursor:
    """Stands in for a Motor cursor: chainable sort/skip/limit, async to_list."""

    def __init__(self, docs):
        self.docs = list(docs)

    def sort(self, *args, **kwargs):
        return self

    def skip(self, n):
        return self

    def limit(self, n):
        return self

    async def to_list(self, length=None):
        return self.docs if length is None else self.docs[:length]


def _collection(find_docs=None, find_one=None, count=0):
    collection = MagicMock()
    collection.find = MagicMock(return_value=FakeCursor(find_docs or []))
    collection.find_one = AsyncMock(return_value=find_one)
    collection.insert_one = AsyncMock()
    collection.update_one = AsyncMock(return_value=MagicMock(matched_count=1, modified_count=1, upserted_id=None))
    collection.update_many = AsyncMock(return_value=MagicMock(modified_count=0))
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=0))
    collection.count_documents = AsyncMock(return_value=count)
    return collection


@pytest.fixture
def make_collection():
    return _collection
