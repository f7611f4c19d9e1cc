import pytest

from loctranslate.errors import TranslationError


class FakeTranslator:
    """Dictionary-backed stand-in for a translation backend.

    Unknown text comes back unchanged, like an echoing server. With
    ``reachable=False`` every call fails the way a dead server does.
    """

    name = "fake"

    def __init__(self, mapping=None, func=None, reachable=True):
        self.mapping = dict(mapping or {})
        self.func = func
        self.reachable = reachable
        self.calls = []
        self.failures = 0
        self.closed = False

    def request(self, text):
        if not self.reachable:
            raise TranslationError("connection refused")
        if self.func is not None:
            return self.func(text)
        return self.mapping.get(text, text)

    def lookup(self, text):
        self.calls.append(text)
        try:
            return self.request(text)
        except TranslationError:
            self.failures += 1
            raise

    def translate(self, text):
        try:
            return self.lookup(text)
        except TranslationError:
            return text

    def close(self):
        self.closed = True


@pytest.fixture
def fake_translator():
    return FakeTranslator


@pytest.fixture
def sleeps():
    recorded = []

    def sleep(seconds):
        recorded.append(seconds)

    sleep.calls = recorded
    return sleep
