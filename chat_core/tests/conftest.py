import pytest

from chat_core.infrastructure.storage.memory_store import LRUMessageStore


class WordCounter:
    """按空白切分计数，便于在测试里手算预算。"""

    def __init__(self):
        self.calls = []

    def count(self, text: str) -> int:
        self.calls.append(text)
        return len(text.split())


@pytest.fixture
def word_counter():
    return WordCounter()


@pytest.fixture
def store():
    return LRUMessageStore(max_size=100)
