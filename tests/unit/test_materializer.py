"""Tests for request materialization."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from harflow.depfinder import DependencyRegistry
from harflow.exceptions import CorruptDataError, InvalidInputError
from harflow.har.materializer import (
    RequestMaterializer,
    detect_body_kind,
    is_pseudo_header,
)
from harflow.har.parser import HAREntry, parse_har_bytes
from harflow.models import BodyKind

TOKEN = "tok_9f8e7d6c5b4a"


@pytest.fixture
def registry() -> DependencyRegistry:
    reg = DependencyRegistry()
    reg.add_json("request_1", json.dumps({"token": TOKEN, "user": {"id": 4242}}))
    return reg


@pytest.fixture
def materializer(registry, id_source, workspace_id) -> RequestMaterializer:
    return RequestMaterializer(workspace_id, registry, id_source)


@pytest.fixture
def parse_entry(har_entry, har_document):
    def _parse(*args, **kwargs) -> HAREntry:
        return parse_har_bytes(har_document(har_entry(*args, **kwargs))).entries[0]

    return _parse


class TestHelpers:
    """Tests for body kind detection and header filtering."""

    @pytest.mark.parametrize(
        ("mime", "kind"),
        [
            ("multipart/form-data; boundary=xyz", BodyKind.FORM_DATA),
            ("application/x-www-form-urlencoded", BodyKind.URL_ENCODED),
            ("application/json", BodyKind.RAW),
            ("text/plain", BodyKind.RAW),
        ],
    )
    def test_detect_body_kind(self, parse_entry, mime: str, kind: BodyKind) -> None:
        entry = parse_entry("https://x.com/a", "POST", post_mime=mime, post_text="x")
        assert detect_body_kind(entry) == kind

    def test_no_body(self, parse_entry) -> None:
        assert detect_body_kind(parse_entry("https://x.com/a")) == BodyKind.NONE

    def test_pseudo_header(self) -> None:
        assert is_pseudo_header(":authority")
        assert not is_pseudo_header("Authority")


class TestBaseRecords:
    """The base request keeps recorded values verbatim."""

    def test_base_http(self, materializer, parse_entry, workspace_id) -> None:
        entry = parse_entry("https://api.example.com/v1/users", "get")
        result = materializer.materialize(entry, "request_2")

        assert result.base.name == "GET V1 Users"
        assert result.base.method == "GET"
        assert result.base.url == "https://api.example.com/v1/users"
        assert result.base.workspace_id == workspace_id
        assert result.base.created_at == entry.started_ms
        assert not result.base.is_delta
        assert result.base.parent_http_id is None

    def test_headers_keep_order_and_drop_pseudo(self, materializer, parse_entry) -> None:
        entry = parse_entry(
            "https://x.com/a",
            headers=[(":method", "GET"), ("B", "2"), ("A", "1"), ("B", "3")],
        )
        result = materializer.materialize(entry, "request_2")
        assert [(h.key, h.value) for h in result.headers] == [("B", "2"), ("A", "1"), ("B", "3")]
        assert all(h.http_id == result.base.id for h in result.headers)

    def test_search_params_from_query_string(self, materializer, parse_entry) -> None:
        entry = parse_entry("https://x.com/a?q=1", query=[("q", "1"), ("page", "2")])
        result = materializer.materialize(entry, "request_2")
        assert [(p.key, p.value) for p in result.search_params] == [("q", "1"), ("page", "2")]

    def test_search_params_fall_back_to_url(self, materializer, parse_entry) -> None:
        entry = parse_entry("https://x.com/a?q=1&empty=")
        result = materializer.materialize(entry, "request_2")
        assert [(p.key, p.value) for p in result.search_params] == [("q", "1"), ("empty", "")]

    def test_form_data_fields(self, materializer, parse_entry) -> None:
        entry = parse_entry(
            "https://x.com/upload",
            "POST",
            post_mime="multipart/form-data; boundary=b",
            post_params=[("name", "x"), ("file", "y")],
        )
        result = materializer.materialize(entry, "request_2")
        assert result.base.body_kind == BodyKind.FORM_DATA
        assert [f.key for f in result.body_forms] == ["name", "file"]
        assert result.body_raws == []

    def test_url_encoded_fields_from_text(self, materializer, parse_entry) -> None:
        entry = parse_entry(
            "https://x.com/login",
            "POST",
            post_mime="application/x-www-form-urlencoded",
            post_text="user=alice&remember=1",
        )
        result = materializer.materialize(entry, "request_2")
        assert [(f.key, f.value) for f in result.body_url_encoded] == [
            ("user", "alice"),
            ("remember", "1"),
        ]

    def test_raw_body(self, materializer, parse_entry) -> None:
        entry = parse_entry(
            "https://x.com/items", "POST", post_mime="application/json", post_text='{"a": 1}'
        )
        result = materializer.materialize(entry, "request_2")
        base_raw = result.body_raws[0]
        assert base_raw.raw_data == b'{"a": 1}'
        assert base_raw.content_type == "application/json"
        assert not base_raw.is_delta

    def test_status_assertion(self, materializer, parse_entry) -> None:
        entry = parse_entry("https://x.com/a", status=201)
        result = materializer.materialize(entry, "request_2", position=3)
        (assertion,) = result.asserts
        assert assertion.value == "response.status == 201"
        assert assertion.http_id == result.base.id
        assert assertion.display_order == 3.0

    def test_no_assertion_without_status(self, materializer, parse_entry) -> None:
        result = materializer.materialize(parse_entry("https://x.com/a", status=0), "request_2")
        assert result.asserts == []

    def test_invalid_url(self, materializer, parse_entry) -> None:
        with pytest.raises(InvalidInputError):
            materializer.materialize(parse_entry("no-scheme/path"), "request_2")


class TestDeltaRecords:
    """The delta overlays the base with template references."""

    def test_delta_http_pairs_with_base(self, materializer, parse_entry) -> None:
        result = materializer.materialize(parse_entry("https://x.com/a"), "request_2")
        assert result.delta.is_delta
        assert result.delta.parent_http_id == result.base.id
        assert result.delta.created_at > result.base.created_at
        assert result.delta.delta_url is None
        assert result.references == frozenset()

    def test_bearer_header_templated(self, materializer, parse_entry) -> None:
        entry = parse_entry(
            "https://x.com/me",
            headers=[("Authorization", f"Bearer {TOKEN}"), ("Accept", "application/json")],
        )
        result = materializer.materialize(entry, "request_2")

        deltas = [h for h in result.headers if h.is_delta]
        assert len(deltas) == 1
        (delta,) = deltas
        base = next(h for h in result.headers if h.key == "Authorization" and not h.is_delta)
        assert delta.parent_header_id == base.id
        assert delta.http_id == result.delta.id
        assert delta.delta_value == "Bearer {{ request_1.response.body.token }}"
        assert delta.delta_key is None
        assert result.dependency_node_names == ["request_1"]
        # Hand-seeded origin: no node id, so no graph dependency.
        assert result.dependency_node_ids == []

    def test_query_value_templated(self, materializer, parse_entry) -> None:
        entry = parse_entry("https://x.com/a", query=[("token", TOKEN), ("page", "2")])
        result = materializer.materialize(entry, "request_2")
        deltas = [p for p in result.search_params if p.is_delta]
        assert [p.delta_value for p in deltas] == ["{{ request_1.response.body.token }}"]

    def test_url_path_templated(self, materializer, parse_entry) -> None:
        result = materializer.materialize(parse_entry(f"https://x.com/s/{TOKEN}"), "request_2")
        assert result.delta.delta_url == "https://x.com/s/{{ request_1.response.body.token }}"
        assert result.delta.url == result.base.url

    def test_raw_json_body_templated(self, materializer, parse_entry) -> None:
        entry = parse_entry(
            "https://x.com/orders",
            "POST",
            post_mime="application/json",
            post_text='{"userId": 4242}',
        )
        result = materializer.materialize(entry, "request_2")
        base_raw, delta_raw = result.body_raws
        assert delta_raw.is_delta
        assert delta_raw.parent_body_raw_id == base_raw.id
        assert delta_raw.http_id == result.delta.id
        assert delta_raw.delta_raw_data == b'{"userId":"{{ request_1.response.body.user.id }}"}'

    def test_raw_body_delta_always_emitted(self, materializer, parse_entry) -> None:
        entry = parse_entry("https://x.com/a", "POST", post_mime="text/plain", post_text="hi")
        result = materializer.materialize(entry, "request_2")
        assert len(result.body_raws) == 2
        assert result.body_raws[1].delta_raw_data is None

    def test_form_and_urlencoded_values_templated(self, materializer, parse_entry) -> None:
        entry = parse_entry(
            "https://x.com/login",
            "POST",
            post_mime="application/x-www-form-urlencoded",
            post_params=[("token", TOKEN), ("lang", "en")],
        )
        result = materializer.materialize(entry, "request_2")
        deltas = [f for f in result.body_url_encoded if f.is_delta]
        assert len(deltas) == 1
        assert deltas[0].parent_body_url_encoded_id == result.body_url_encoded[0].id

    def test_no_delta_children_without_matches(self, materializer, parse_entry) -> None:
        entry = parse_entry("https://x.com/a", headers=[("Accept", "*/*")], query=[("q", "1")])
        result = materializer.materialize(entry, "request_2")
        assert not any(h.is_delta for h in result.headers)
        assert not any(p.is_delta for p in result.search_params)


class TestCorruptBodies:
    """Bodies that claim JSON but do not parse are kept verbatim."""

    def test_corrupt_request_body_reported(self, registry, id_source, workspace_id, parse_entry):
        observer = MagicMock()
        materializer = RequestMaterializer(workspace_id, registry, id_source, observer)
        entry = parse_entry("https://x.com/a", "POST", post_mime="application/json", post_text="{")

        result = materializer.materialize(entry, "request_2")

        observer.assert_called_once()
        assert isinstance(observer.call_args.args[0], CorruptDataError)
        assert result.body_raws[1].delta_raw_data is None
        assert result.body_raws[0].raw_data == b"{"

    def test_corrupt_response_reported(self, registry, id_source, workspace_id, parse_entry):
        observer = MagicMock()
        materializer = RequestMaterializer(workspace_id, registry, id_source, observer)
        entry = parse_entry("https://x.com/a", response_text="<html>")

        assert materializer.register_response(entry, "request_2") == 0
        observer.assert_called_once()


class TestRegisterResponse:
    """Tests for feeding responses into the registry."""

    def test_json_response_registered(self, materializer, registry, parse_entry) -> None:
        entry = parse_entry("https://x.com/a", response_text='{"cartId": "cart_0123456789"}')
        assert materializer.register_response(entry, "request_2") == 1
        assert registry.find_var("cart_0123456789").node_name == "request_2"

    def test_node_id_flows_into_dependencies(self, materializer, parse_entry) -> None:
        node_id = b"\x07" * 16
        entry = parse_entry("https://x.com/cart", response_text='{"cartId": "cart_0123456789"}')
        materializer.register_response(entry, "request_2", node_id)

        result = materializer.materialize(
            parse_entry("https://x.com/checkout", query=[("cart", "cart_0123456789")]), "request_3"
        )
        assert result.dependency_node_names == ["request_2"]
        assert result.dependency_node_ids == [node_id]

    def test_non_json_response_ignored(self, materializer, parse_entry) -> None:
        entry = parse_entry(
            "https://x.com/a", response_mime="text/html", response_text='{"a": "bbbbbbbbbbbb"}'
        )
        assert materializer.register_response(entry, "request_2") == 0

    def test_empty_response_ignored(self, materializer, parse_entry) -> None:
        assert materializer.register_response(parse_entry("https://x.com/a"), "request_2") == 0
