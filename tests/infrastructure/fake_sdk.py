"""Fake vendor SDK objects — async streams and create() endpoints."""


class FakeStream:
    """Async-iterable SDK stream; exceptions in the frame list are raised in place."""

    def __init__(self, events):
        self._events = events
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self._events:
            if isinstance(event, Exception):
                raise event
            yield event

    async def close(self):
        self.closed = True


class FakeCreate:
    """Stands in for messages / chat.completions; returns or raises results in order."""

    def __init__(self, results):
        self._results = list(results)
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        result = self._results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result
