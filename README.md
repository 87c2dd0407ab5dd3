# deskkit

Building blocks for desktop applications: an in-memory cache with expiry,
an asynchronous JSON API client, an updater that installs new releases
published in a repository, and batch processing on worker threads.

## Installation

```
pip install deskkit
```

The package depends on `httpx`. To run the test suite, install the test extra:

```
pip install "deskkit[test]"
pytest
```

## Modules

### `deskkit.cache`

- `TimedCache(ttl_seconds, maxsize, name="TimedCache")` is a thread-safe cache.
  An entry expires `ttl_seconds` after it was stored. When the cache is full,
  `set()` evicts entries in the order their keys were first inserted.
  - `get(key)` returns the value, or `None` if the key is missing or expired.
    Every lookup counts as a hit or a miss.
  - `set(key, value)`, `invalidate(key)` (returns whether the key was present),
    `clear()` (returns the number removed and resets the counters) and
    `cleanup_expired()` (returns the number removed).
  - `stats()` returns a `CacheStats` with `name`, `size`, `maxsize`,
    `ttl_seconds`, `hits`, `misses` and `hit_rate_percent`. `len(cache)` gives
    the number of entries.
- `CacheManager` keeps named caches. `get_cache(name, ttl_seconds=300, maxsize=128)`
  creates a cache on first use and returns the same one after that.
  `clear_all()`, `get_all_stats()` and `cleanup_all_expired()` return
  dictionaries keyed by cache name.
- `get_cache_manager()` returns the process-wide `CacheManager`.

### `deskkit.api_client`

- `ApiClient(base_url, api_key=None, bearer_token=None, timeout=30.0, retries=3, headers=None)`
  is an async client built on `httpx`.
  - An API key is sent as `X-API-Key`. A bearer token is sent as
    `Authorization: Bearer ...`.
  - JSON `Content-Type` and `Accept` headers are always set.
  - Extra headers with invalid names or values are skipped.
  - `retries` sets the transport's connection retries.
- Requests are made with `get(endpoint, params=None)`, `post`, `put` and
  `patch` (each takes an optional `json` body) and `delete(endpoint)`.
  - A successful response returns the decoded JSON. If the body is not JSON,
    it returns the text. If the body is empty, it returns `None`.
  - `build_url(endpoint)` joins the base URL and the endpoint with a single slash.
- Errors derive from `ApiError`:
  - `HttpError` is raised for a non-success status. It has `status_code`,
    `reason` and `response`; `response` holds the decoded error body, if any.
  - `ApiTimeoutError` is raised when a request times out.
  - `ApiConnectionError` is raised for transport failures.
- The client is an async context manager. You can also call `aclose()` yourself.
- `ApiClientFactory` handles named clients:
  - `register(name, base_url, bearer_token=None, api_key=None)` stores a configuration.
  - `get(name)` builds a client on first use and caches it. It raises
    `ApiConnectionError` for an unknown name.
  - `update_token(name, token)` changes the bearer token and drops the cached client.
  - `remove(name)` and `list_apis()` complete the set.

  Clients obtained from the factory are not closed by it. Call `aclose()` on them when you are done.

### `deskkit.auto_update`

- `AutoUpdater(current_version, github_repo, prerelease=False, github_token=None, api_base="https://api.github.com")`:
  - `await check_for_update()` fetches the latest release. With `prerelease`
    set, it fetches the newest entry of the release list instead. It returns
    `True`, and remembers the release, when that release's tag (with a leading
    `v` stripped) is higher than the current version.
  - `get_update_info()` returns a `ReleaseInfo` with `version`,
    `release_notes`, `download_url`, `published_at` and `html_url`.
  - `await download(on_progress=None, directory=None)` saves the chosen asset
    and returns its `Path`. The default directory is the system temporary
    directory. `on_progress(downloaded, total)` is called for each chunk.
  - `await download_and_install(on_progress=None)` downloads the installer and
    starts it. On Linux it marks the file executable first; on macOS it opens
    the file with `open`. It then exits the process.
- Helpers:
  - `compare_versions(newer, older)` compares dotted numeric versions.
  - `platform_patterns(platform=None)` returns the asset-name fragments for
    `"windows"`, `"macos"` or any other platform.
  - `select_download_url(release, patterns=None)` picks the first matching
    asset, falling back to the first asset.
  - `Release.from_dict(data)` parses a release JSON object.
- Errors derive from `UpdateError`: `NoUpdateAvailableError`,
  `InvalidVersionError`, `NoPlatformDownloadError` and `DownloadFailedError`.

### `deskkit.batch`

- `BatchProcessor(max_workers=None, strategy=CPUAllocationStrategy.BALANCED)`:
  - `await process_batch(items, processor, progress_callback=None)` runs
    `processor` on worker threads. At most `max_workers` items run at a time.
    It returns `BatchResult`s (`item_index`, `result`, `error`, `success`,
    `duration_ms`) in input order.
  - An exception in `processor` becomes a failed result carrying its message.
  - `progress_callback` receives a copy of the `BatchProgress`:
    - when the batch starts,
    - after each item,
    - once more when the status becomes `COMPLETED` or `CANCELLED`.

    `BatchProgress` also has `percent_complete()`, `elapsed_seconds()` and
    `estimated_remaining_seconds()`.
  - `cancel()` makes items that have not started yet return a "Cancelled" failure.
- `get_cpu_core_count(strategy, cpu_count=None)` returns the worker count for
  `MINIMAL`, `BALANCED`, `AGGRESSIVE` or `MAXIMUM`.
- `parallel_map(func, items)` and `parallel_starmap(func, items)` run on a
  thread pool and keep the input order.

## Examples

```python
from deskkit.cache import TimedCache

cache = TimedCache(ttl_seconds=300, maxsize=128)
cache.set("key", "value")
assert cache.get("key") == "value"
print(cache.stats())
```

```python
import asyncio
from deskkit.api_client import ApiClient, HttpError

async def main():
    async with ApiClient("https://api.example.com", bearer_token="token") as client:
        try:
            print(await client.get("/user"))
        except HttpError as exc:
            print(exc.status_code, exc.reason)

asyncio.run(main())
```

```python
import asyncio
from deskkit.auto_update import AutoUpdater

async def main():
    updater = AutoUpdater("1.0.0", "owner/repo")
    if await updater.check_for_update():
        info = updater.get_update_info()
        print("New version:", info.version)
        print("Saved to", await updater.download())

asyncio.run(main())
```

```python
import asyncio
from deskkit.batch import BatchProcessor, parallel_map

results = asyncio.run(BatchProcessor(max_workers=4).process_batch([1, 2, 3], lambda x: x * 2))
print([r.result for r in results])
print(parallel_map(lambda x: x * x, [1, 2, 3]))
```

## What it does not do

This is a library only:

- It has no command-line program and no windows or other user interface.
- It plays no sounds or notifications.
- It does not handle licence activation.
- It offers no circuit breaker. `ApiClient` only retries failed connections
  through its transport.
- Caches live in memory and are not saved between runs.