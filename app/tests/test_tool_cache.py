import pytest

from app.agents.tool_cache import ToolCallCache


def test_first_call_executes_and_repeat_is_skipped():
    cache = ToolCallCache()

    assert cache.should_execute("getIncomeStatements", {"ticker": "AAPL", "period": "ttm"})
    assert not cache.should_execute("getIncomeStatements", {"ticker": "AAPL", "period": "ttm"})
    assert cache.size == 1


def test_parameter_order_does_not_matter():
    cache = ToolCallCache()

    cache.should_execute("getNews", {"ticker": "AAPL", "limit": 5})

    assert not cache.should_execute("getNews", {"limit": 5, "ticker": "AAPL"})


def test_different_tool_or_params_are_distinct():
    cache = ToolCallCache()

    assert cache.should_execute("getNews", {"ticker": "AAPL"})
    assert cache.should_execute("getNews", {"ticker": "MSFT"})
    assert cache.should_execute("getBalanceSheets", {"ticker": "AAPL"})
    assert len(cache) == 3


def test_full_cache_evicts_oldest_fraction():
    cache = ToolCallCache(max_size=10, evict_fraction=0.2)
    for i in range(10):
        cache.should_execute("getNews", {"ticker": f"T{i}"})

    cache.should_execute("getNews", {"ticker": "NEW"})

    assert cache.size == 9
    assert not cache.is_cached("getNews", {"ticker": "T0"})
    assert not cache.is_cached("getNews", {"ticker": "T1"})
    assert cache.is_cached("getNews", {"ticker": "T2"})
    assert cache.is_cached("getNews", {"ticker": "NEW"})


def test_evicted_call_executes_again():
    cache = ToolCallCache(max_size=5, evict_fraction=0.2)
    for i in range(6):
        cache.should_execute("getNews", {"ticker": f"T{i}"})

    assert cache.should_execute("getNews", {"ticker": "T0"})


def test_tiny_cache_still_admits_new_calls():
    cache = ToolCallCache(max_size=2, evict_fraction=0.2)
    cache.should_execute("a", {})
    cache.should_execute("b", {})

    assert cache.should_execute("c", {})
    assert cache.size == 2
    assert not cache.is_cached("a", {})


def test_remove_and_clear():
    cache = ToolCallCache()
    cache.should_execute("getNews", {"ticker": "AAPL"})
    cache.should_execute("getNews", {"ticker": "MSFT"})

    assert cache.remove("getNews", {"ticker": "AAPL"})
    assert not cache.remove("getNews", {"ticker": "AAPL"})
    assert cache.should_execute("getNews", {"ticker": "AAPL"})

    cache.clear()
    assert cache.size == 0
    assert cache.should_execute("getNews", {"ticker": "MSFT"})


def test_max_size_must_be_positive():
    with pytest.raises(ValueError):
        ToolCallCache(max_size=0)


def test_changed_limit_is_a_new_call():
    cache = ToolCallCache()

    assert cache.should_execute("getNews", {"ticker": "TSLA", "limit": 5})
    assert not cache.should_execute("getNews", {"ticker": "TSLA", "limit": 5})
    assert cache.should_execute("getNews", {"ticker": "TSLA", "limit": 10})
