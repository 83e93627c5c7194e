from recommender.types import Document

LIBRARY_ID = "lib"
CURRENT_YEAR = 2024


class FakeTimer:
    """Monotonic clock stand-in that only moves when told to."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_doc(doc_id, title="Untitled", authors=(), **kwargs):
    kwargs.setdefault("library_id", LIBRARY_ID)
    return Document(id=doc_id, title=title, authors=tuple(authors), **kwargs)
