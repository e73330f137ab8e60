"""Unit tests for the async-to-sync streaming bridge."""

import time

from lingua_scripter.api.streaming import stream_provider_body
from lingua_scripter.core.llm.exceptions import ProviderError
from conftest import FakeProvider


class TestStreamProviderBody:
    """Test response bodies produced from provider streams."""

    def test_passes_deltas_through(self):
        provider = FakeProvider(["[CHAPTER_1_START]", "Bonjour", "[CHAPTER_1_END]"])
        body = list(stream_provider_body(lambda: provider, "system", "user", temperature=0.3))

        assert body == ["[CHAPTER_1_START]", "Bonjour", "[CHAPTER_1_END]"]
        assert provider.calls[0]["temperature"] == 0.3
        assert provider.closed

    def test_provider_error_appends_sentinel(self):
        provider = FakeProvider(["partial"], error=ProviderError("quota exceeded"))
        body = list(stream_provider_body(lambda: provider, "system", "user"))

        assert body == ["partial", "[ERROR]quota exceeded"]

    def test_factory_failure_is_reported(self):
        def factory():
            raise ValueError("Unknown provider type: nope")

        body = list(stream_provider_body(factory, "system", "user"))
        assert body == ["[ERROR]Unknown provider type: nope"]

    def test_client_disconnect_cancels_upstream(self):
        provider = FakeProvider(["first"], block_after=1)
        body = stream_provider_body(lambda: provider, "system", "user")

        assert next(body) == "first"
        body.close()

        deadline = time.time() + 2
        while not provider.stream_closed and time.time() < deadline:
            time.sleep(0.01)
        assert provider.stream_closed
