import httpx
import pytest
import respx

from deskkit.api_client import (
    ApiClient,
    ApiClientFactory,
    ApiConnectionError,
    ApiError,
    ApiTimeoutError,
    HttpError,
)

BASE = "https://api.example.com"


def test_url_building():
    client = ApiClient(BASE)
    assert client.build_url("/users") == "https://api.example.com/users"
    assert client.build_url("users") == "https://api.example.com/users"


def test_base_url_trailing_slash_trimmed():
    client = ApiClient(BASE + "///")
    assert client.base_url == BASE
    assert client.build_url("/a/b") == "https://api.example.com/a/b"


def test_builder_options_stored():
    client = ApiClient(BASE, bearer_token="token", timeout=10.0, retries=5)
    assert client.timeout == 10.0
    assert client.retries == 5


@pytest.mark.asyncio
async def test_get_returns_json_and_sends_headers():
    async with ApiClient(BASE, api_key="placeholder", bearer_token="token") as client:
        with respx.mock(base_url=BASE) as router:
            route = router.get("/user").mock(return_value=httpx.Response(200, json={"id": 7}))
            result = await client.get("/user")
    assert result == {"id": 7}
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer token"
    assert request.headers["X-API-Key"] == "placeholder"
    assert request.headers["Accept"] == "application/json"
    assert request.headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_get_with_params():
    async with ApiClient(BASE) as client:
        with respx.mock(base_url=BASE) as router:
            route = router.get("/search").mock(return_value=httpx.Response(200, json=[1, 2]))
            result = await client.get("search", {"q": "cats", "page": "2"})
    assert result == [1, 2]
    request = route.calls.last.request
    assert request.url.params["q"] == "cats"
    assert request.url.params["page"] == "2"


@pytest.mark.asyncio
async def test_post_put_patch_send_json_body():
    async with ApiClient(BASE) as client:
        with respx.mock(base_url=BASE) as router:
            post = router.post("/items").mock(return_value=httpx.Response(201, json={"ok": True}))
            put = router.put("/items/1").mock(return_value=httpx.Response(200, json={"v": 1}))
            patch = router.patch("/items/1").mock(return_value=httpx.Response(200, json={"v": 2}))
            assert await client.post("/items", {"name": "a"}) == {"ok": True}
            assert await client.put("/items/1", {"name": "b"}) == {"v": 1}
            assert await client.patch("/items/1", {"name": "c"}) == {"v": 2}
    assert post.calls.last.request.content == b'{"name":"a"}' or post.calls.last.request.read()
    assert b'"name"' in put.calls.last.request.content
    assert b'"c"' in patch.calls.last.request.content


@pytest.mark.asyncio
async def test_delete_empty_body_returns_none():
    async with ApiClient(BASE) as client:
        with respx.mock(base_url=BASE) as router:
            router.delete("/items/1").mock(return_value=httpx.Response(204))
            result = await client.delete("/items/1")
    assert result is None


@pytest.mark.asyncio
async def test_non_json_success_returns_text():
    async with ApiClient(BASE) as client:
        with respx.mock(base_url=BASE) as router:
            router.get("/plain").mock(return_value=httpx.Response(200, text="hello"))
            result = await client.get("/plain")
    assert result == "hello"


@pytest.mark.asyncio
async def test_http_error_with_json_body():
    async with ApiClient(BASE) as client:
        with respx.mock(base_url=BASE) as router:
            router.get("/missing").mock(
                return_value=httpx.Response(404, json={"message": "nope"})
            )
            with pytest.raises(HttpError) as info:
                await client.get("/missing")
    assert info.value.status_code == 404
    assert info.value.reason == "Not Found"
    assert info.value.response == {"message": "nope"}
    assert str(info.value) == "HTTP 404: Not Found"


@pytest.mark.asyncio
async def test_http_error_without_json_body():
    async with ApiClient(BASE) as client:
        with respx.mock(base_url=BASE) as router:
            router.get("/boom").mock(return_value=httpx.Response(500, text="oops"))
            with pytest.raises(HttpError) as info:
                await client.get("/boom")
    assert info.value.status_code == 500
    assert info.value.response is None


@pytest.mark.asyncio
async def test_timeout_raises_api_timeout():
    async with ApiClient(BASE) as client:
        with respx.mock(base_url=BASE) as router:
            router.get("/slow").mock(side_effect=httpx.ReadTimeout("slow"))
            with pytest.raises(ApiTimeoutError) as info:
                await client.get("/slow")
    assert isinstance(info.value, ApiError)
    assert str(info.value) == "Request timeout"


@pytest.mark.asyncio
async def test_connect_error_raises_api_connection_error():
    async with ApiClient(BASE) as client:
        with respx.mock(base_url=BASE) as router:
            router.get("/down").mock(side_effect=httpx.ConnectError("refused"))
            with pytest.raises(ApiConnectionError) as info:
                await client.get("/down")
    assert "refused" in str(info.value)


@pytest.mark.asyncio
async def test_custom_headers_and_invalid_header_skipped():
    headers = {"X-Trace": "abc", "Bad Header": "x", "X-Newline": "a\nb"}
    async with ApiClient(BASE, headers=headers) as client:
        with respx.mock(base_url=BASE) as router:
            route = router.get("/h").mock(return_value=httpx.Response(200, json={}))
            await client.get("/h")
    request = route.calls.last.request
    assert request.headers["X-Trace"] == "abc"
    assert "Bad Header" not in request.headers
    assert "X-Newline" not in request.headers


def test_factory_register_and_get():
    factory = ApiClientFactory()
    factory.register("test", "https://api.test.com", bearer_token="token")
    assert factory.list_apis() == ["test"]
    client = factory.get("test")
    assert client.base_url == "https://api.test.com"
    assert factory.get("test") is client


def test_factory_unknown_api():
    factory = ApiClientFactory()
    with pytest.raises(ApiConnectionError) as info:
        factory.get("nope")
    assert str(info.value) == "Connection error: Unknown API: nope. Register it first."


@pytest.mark.asyncio
async def test_factory_update_token_rebuilds_client():
    factory = ApiClientFactory()
    factory.register("svc", BASE, bearer_token="placeholder")
    first = factory.get("svc")
    factory.update_token("svc", "token")
    second = factory.get("svc")
    assert second is not first
    with respx.mock(base_url=BASE) as router:
        route = router.get("/me").mock(return_value=httpx.Response(200, json={}))
        await second.get("/me")
    assert route.calls.last.request.headers["Authorization"] == "Bearer token"
    await first.aclose()
    await second.aclose()


def test_factory_update_token_unknown_is_ignored():
    factory = ApiClientFactory()
    factory.update_token("ghost", "token")
    assert factory.list_apis() == []


def test_factory_remove():
    factory = ApiClientFactory()
    factory.register("a", "https://a.example.com")
    factory.register("b", "https://b.example.com", api_key="placeholder")
    factory.get("a")
    factory.remove("a")
    assert factory.list_apis() == ["b"]
    with pytest.raises(ApiConnectionError):
        factory.get("a")