"""Check the matrix cache creates entries only once."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest
from statcond.cache import MatrixCache
from statcond.errors import ConfigurationError
from statcond.keys import ElementShape, OperatorKey, OperatorType
from statcond.provider import ReferenceMatrixProvider


def test_created_once() -> None:
    """Check entries are created on the first request and reused."""
    calls: list[str] = list()

    def creator(key: str) -> np.ndarray:
        calls.append(key)
        return np.full((2, 2), len(key), np.float64)

    cache: MatrixCache[str, np.ndarray] = MatrixCache(creator)
    v1 = cache["ab"]
    v2 = cache["ab"]
    v3 = cache.get("abc")
    assert v1 is v2
    assert v3[0, 0] == 3
    assert calls == ["ab", "abc"]
    assert len(cache) == 2
    assert "ab" in cache
    assert cache.already_created("abc")
    assert not cache.already_created("x")
    assert sorted(cache.keys()) == ["ab", "abc"]


def test_explicit_creator() -> None:
    """Check a creator can be given per call."""
    cache: MatrixCache[int, str] = MatrixCache()
    assert cache.get(1, lambda: "one") == "one"
    assert cache.get(1, lambda: "other") == "one"
    with pytest.raises(KeyError):
        cache[2]


def test_failure_not_retried() -> None:
    """Check a failed creation is remembered and raised again."""
    calls = 0

    def creator(key: int) -> int:
        nonlocal calls
        calls += 1
        raise ConfigurationError(f"Key {key} is not supported.")

    cache: MatrixCache[int, int] = MatrixCache(creator)
    with pytest.raises(ConfigurationError):
        cache[3]
    with pytest.raises(ConfigurationError):
        cache[3]
    assert calls == 1
    assert 3 not in cache


@pytest.mark.parametrize("n_threads", (2, 8, 32))
def test_concurrent_single_creation(n_threads: int) -> None:
    """Check concurrent requests for the same key construct it only once."""
    lock = threading.Lock()
    calls = 0

    def creator(key: int) -> np.ndarray:
        nonlocal calls
        with lock:
            calls += 1
        time.sleep(0.02)
        return np.eye(key)

    cache: MatrixCache[int, np.ndarray] = MatrixCache(creator)
    with ThreadPoolExecutor(n_threads) as executor:
        results = list(executor.map(lambda _: cache[4], range(4 * n_threads)))

    assert calls == 1
    assert all(r is results[0] for r in results)


def test_concurrent_many_keys() -> None:
    """Check mixed concurrent requests construct each key exactly once."""
    lock = threading.Lock()
    calls: dict[int, int] = dict()

    def creator(key: int) -> np.ndarray:
        with lock:
            calls[key] = calls.get(key, 0) + 1
        time.sleep(0.001)
        return np.full(2, key)

    cache: MatrixCache[int, np.ndarray] = MatrixCache(creator)
    keys = [i % 5 for i in range(200)]
    with ThreadPoolExecutor(16) as executor:
        results = list(executor.map(lambda k: cache[k], keys))

    assert calls == {k: 1 for k in range(5)}
    assert all(r is cache[k] for k, r in zip(keys, results))
    assert sorted(cache.keys()) == list(range(5))


def test_provider_cache_idempotence() -> None:
    """Check equal keys reuse the reference matrix and constants do not mix."""
    provider = ReferenceMatrixProvider()
    k1 = OperatorKey(OperatorType.HELMHOLTZ, ElementShape.SEGMENT, (3,), (1.0,))
    k2 = OperatorKey(OperatorType.HELMHOLTZ, ElementShape.SEGMENT, (3,), (1.0,))
    k3 = OperatorKey(OperatorType.HELMHOLTZ, ElementShape.SEGMENT, (3,), (2.0,))

    m1 = provider.get_reference_matrix(k1)
    m2 = provider.get_reference_matrix(k2)
    m3 = provider.get_reference_matrix(k3)
    assert m1 is m2
    assert m1.value == pytest.approx(m2.value)
    assert len(provider.reference_cache) == 2
    assert not np.allclose(m1.value, m3.value)
    # Entries are shared, so they are not writable
    with pytest.raises(ValueError):
        m1.matrix[0, 0] = 1.0
