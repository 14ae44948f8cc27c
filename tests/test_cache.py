import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from dicomweb_metadata.cache import (
    DEFAULT_MAX_AGE,
    PaletteColorCache,
    default_palette_cache,
)
from dicomweb_metadata.error import PaletteDecodingError
from dicomweb_metadata.models import PaletteColorEntry


def _entry(uid):
    return PaletteColorEntry(red=[0, 1], green=[2, 3], blue=[4, 5], uid=uid)


def test_put_get(palette_cache):
    entry = _entry('1.2.3')
    palette_cache.put(entry)
    assert palette_cache.get('1.2.3') is entry
    assert palette_cache.count == 1
    assert len(palette_cache) == 1
    assert '1.2.3' in palette_cache


def test_put_sets_creation_time(palette_cache, clock):
    entry = _entry('1.2.3')
    palette_cache.put(entry)
    assert entry.created_at == clock.now


def test_get_missing(palette_cache):
    assert palette_cache.get('1.2.3') is None
    assert '1.2.3' not in palette_cache
    assert None not in palette_cache


def test_put_invalid_uid(palette_cache):
    palette_cache.put(_entry(None))
    palette_cache.put(_entry(''))
    assert palette_cache.count == 0


def test_put_replace(palette_cache):
    palette_cache.put(_entry('1.2.3'))
    replacement = _entry('1.2.3')
    palette_cache.put(replacement)
    assert palette_cache.count == 1
    assert palette_cache.get('1.2.3') is replacement


def test_get_expired(palette_cache, clock):
    palette_cache.put(_entry('1.2.3'))
    palette_cache.put(_entry('1.2.4'))
    clock.advance(DEFAULT_MAX_AGE)
    assert palette_cache.get('1.2.3') is not None
    clock.advance(1)
    assert palette_cache.get('1.2.3') is None
    assert palette_cache.count == 1
    assert palette_cache.get('1.2.3') is None
    assert palette_cache.count == 1


def test_max_age(clock):
    cache = PaletteColorCache(max_age=10, clock=clock)
    cache.put(_entry('1.2.3'))
    clock.advance(11)
    assert '1.2.3' not in cache
    assert cache.count == 0


def test_put_after_expiry(palette_cache, clock):
    palette_cache.put(_entry('1.2.3'))
    clock.advance(DEFAULT_MAX_AGE + 1)
    assert palette_cache.get('1.2.3') is None
    palette_cache.put(_entry('1.2.3'))
    assert palette_cache.count == 1
    assert palette_cache.get('1.2.3') is not None


def test_clear(palette_cache):
    palette_cache.put(_entry('1.2.3'))
    palette_cache.put(_entry('1.2.4'))
    palette_cache.clear()
    assert palette_cache.count == 0
    assert palette_cache.get('1.2.3') is None


def test_is_valid_key():
    assert PaletteColorCache.is_valid_key('1.2.3')
    assert not PaletteColorCache.is_valid_key('')
    assert not PaletteColorCache.is_valid_key(None)


def test_default_cache():
    assert isinstance(default_palette_cache, PaletteColorCache)
    assert default_palette_cache.max_age == DEFAULT_MAX_AGE


def test_get_or_fetch(palette_cache):
    calls = []

    def fetch():
        calls.append('1.2.3')
        return _entry('1.2.3')

    entry = palette_cache.get_or_fetch('1.2.3', fetch)
    assert palette_cache.get_or_fetch('1.2.3', fetch) is entry
    assert calls == ['1.2.3']
    assert palette_cache.count == 1


def test_get_or_fetch_expired(palette_cache, clock):
    calls = []

    def fetch():
        calls.append('1.2.3')
        return _entry('1.2.3')

    palette_cache.get_or_fetch('1.2.3', fetch)
    clock.advance(DEFAULT_MAX_AGE + 1)
    palette_cache.get_or_fetch('1.2.3', fetch)
    assert len(calls) == 2


def test_get_or_fetch_from_two_threads(palette_cache):
    started = threading.Event()
    release = threading.Event()
    calls = []

    def fetch():
        calls.append('1.2.3')
        started.set()
        release.wait(5)
        return _entry('1.2.3')

    with ThreadPoolExecutor(max_workers=2) as executor:
        first = executor.submit(palette_cache.get_or_fetch, '1.2.3', fetch)
        assert started.wait(5)
        second = executor.submit(palette_cache.get_or_fetch, '1.2.3', fetch)
        release.set()
        assert first.result() is second.result()
    assert calls == ['1.2.3']


def test_get_or_fetch_error_not_cached(palette_cache):
    def fail():
        raise PaletteDecodingError('short buffer')

    with pytest.raises(PaletteDecodingError):
        palette_cache.get_or_fetch('1.2.3', fail)
    assert palette_cache.count == 0
    entry = palette_cache.get_or_fetch('1.2.3', lambda: _entry('1.2.3'))
    assert palette_cache.get('1.2.3') is entry


def test_get_or_fetch_invalid_uid(palette_cache):
    with pytest.raises(ValueError):
        palette_cache.get_or_fetch('', lambda: _entry(None))
