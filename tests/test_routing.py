import pytest

from stacker.exceptions import RouteRegistrationError
from stacker.routing import (
    RouteTable,
    compile_pattern,
    normalize_method,
    normalize_path,
)


def handler(request):
    return "ok"


def other(request):
    return "other"


def test_normalize_method_aliases():
    assert normalize_method("get") == "GET"
    assert normalize_method("all") == "*"
    assert normalize_method("ANY") == "*"
    with pytest.raises(RouteRegistrationError):
        normalize_method(" ")


def test_normalize_path():
    assert normalize_path("users/") == "/users"
    assert normalize_path("/") == "/"
    assert normalize_path("") == "/"


def test_compile_pattern_parameters():
    regex, names = compile_pattern("/users/{id}/posts/:post")
    assert names == ("id", "post")
    assert regex.match("/users/1/posts/2").groupdict() == {"id": "1", "post": "2"}
    assert regex.match("/users/1/posts/2/") is not None
    assert regex.match("/users/1/posts") is None


def test_compile_pattern_wildcard():
    regex, _ = compile_pattern("/static/*")
    assert regex.match("/static/css/site.css")
    assert not regex.match("/other")


@pytest.mark.parametrize("pattern", ["/a/*/b", "/x/{id}/{id}"])
def test_invalid_patterns(pattern):
    with pytest.raises(RouteRegistrationError):
        compile_pattern(pattern)


def test_match_extracts_params():
    table = RouteTable()
    table.add("GET", "/items/{item_id}", handler)
    entry, params = table.match("GET", "/items/9")
    assert entry.path == "/items/{item_id}"
    assert params == {"item_id": "9"}
    assert table.match("POST", "/items/9") is None
    assert table.match("GET", "/items") is None


def test_registration_order_is_priority():
    table = RouteTable()
    table.add("GET", "/items/{item_id}", handler)
    table.add("GET", "/items/special", other)
    entry, _ = table.match("GET", "/items/special")
    assert entry.handlers == (handler,)


def test_any_method_route():
    table = RouteTable()
    table.add("*", "/ping", handler)
    assert table.match("DELETE", "/ping") is not None


def test_reregistration_overwrites_in_place():
    table = RouteTable()
    table.add("GET", "/a", handler)
    table.add("GET", "/b", handler)
    table.add("get", "/a/", other)
    assert len(table) == 2
    assert [entry.path for entry in table] == ["/a", "/b"]
    assert table.match("GET", "/a")[0].handlers == (other,)


def test_chain_registration_keeps_order():
    table = RouteTable()
    entry = table.add("POST", "/x", [handler, other])
    assert entry.handlers == (handler, other)


def test_empty_chain_is_invalid():
    with pytest.raises(RouteRegistrationError):
        RouteTable().add("GET", "/x", [])


def test_non_callable_handler_is_invalid():
    with pytest.raises(RouteRegistrationError):
        RouteTable().add("GET", "/x", [handler, "nope"])


def test_frozen_table_rejects_registration_error():
    table = RouteTable()
    table.add("GET", "/x", handler)
    table.freeze()
    assert table.frozen
    with pytest.raises(RouteRegistrationError):
        table.add("GET", "/y", handler)
    assert len(table.get_routes()) == 1
