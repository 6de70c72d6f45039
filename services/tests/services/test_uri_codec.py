"""Tests for checkout URL parsing and scmUri encoding."""

import httpx
import pytest

from bitbucket_scm.errors import HttpError, InvalidUrlError, UnsupportedHostError
from bitbucket_scm.services import uri_codec

REPO_UUID = "{de7d7695-1196-46a1-b87d-371b7b2945ab}"


class TestParseCheckoutUrl:
    def test_ssh_url_with_branch_and_root_dir(self) -> None:
        info = uri_codec.parse_checkout_url(
            "git@bitbucket.org:batman/test.git#mynewbranch:path/to/source"
        )
        assert info.hostname == "bitbucket.org"
        assert info.username == "batman"
        assert info.repo == "test"
        assert info.branch == "mynewbranch"
        assert info.root_dir == "path/to/source"

    def test_https_url_with_user(self) -> None:
        info = uri_codec.parse_checkout_url("https://batman@bitbucket.org/batman/test.git")
        assert info.hostname == "bitbucket.org"
        assert info.username == "batman"
        assert info.repo == "test"
        assert info.branch is None
        assert info.root_dir is None

    def test_org_prefixed_url(self) -> None:
        info = uri_codec.parse_checkout_url("org-123@bitbucket.org:batman/test.git#dev")
        assert info.username == "batman"
        assert info.branch == "dev"

    def test_explicit_root_dir_wins(self) -> None:
        info = uri_codec.parse_checkout_url(
            "git@bitbucket.org:batman/test.git#main:from/url", root_dir="from/arg"
        )
        assert info.root_dir == "from/arg"

    @pytest.mark.parametrize(
        "url",
        [
            "bitbucket.org/batman/test",
            "git@bitbucket.org:batman/test",
            "ftp://bitbucket.org/batman/test.git",
            "",
        ],
    )
    def test_invalid_url_raises(self, url: str) -> None:
        with pytest.raises(InvalidUrlError) as exc_info:
            uri_codec.parse_checkout_url(url)
        assert exc_info.value.status_code == 400

    def test_is_checkout_url(self) -> None:
        assert uri_codec.is_checkout_url("git@bitbucket.org:batman/test.git#main:screwdriver.yaml")
        assert not uri_codec.is_checkout_url("screwdriver.yaml")


class TestEncodeDecode:
    def test_encode_without_root_dir(self) -> None:
        assert uri_codec.encode("bitbucket.org", "batman/{uuid}", "master") == (
            "bitbucket.org:batman/{uuid}:master"
        )

    def test_encode_omits_empty_root_dir(self) -> None:
        assert uri_codec.encode("bitbucket.org", "batman/{uuid}", "master", "") == (
            "bitbucket.org:batman/{uuid}:master"
        )

    def test_encode_with_root_dir(self) -> None:
        assert uri_codec.encode("bitbucket.org", "batman/{uuid}", "master", "src/app") == (
            "bitbucket.org:batman/{uuid}:master:src/app"
        )

    def test_decode_full(self) -> None:
        parts = uri_codec.decode("bitbucket.org:batman/{uuid}:master:src/app")
        assert parts.hostname == "bitbucket.org"
        assert parts.repo_id == "batman/{uuid}"
        assert parts.branch == "master"
        assert parts.root_dir == "src/app"

    def test_decode_short_input_leaves_segments_none(self) -> None:
        parts = uri_codec.decode("bitbucket.org:batman/{uuid}")
        assert parts.repo_id == "batman/{uuid}"
        assert parts.branch is None
        assert parts.root_dir is None

    def test_decode_inverts_encode(self) -> None:
        scm_uri = uri_codec.encode("bitbucket.org", "batman/{uuid}", "feature", "a/b")
        parts = uri_codec.decode(scm_uri)
        assert (parts.hostname, parts.repo_id, parts.branch, parts.root_dir) == (
            "bitbucket.org",
            "batman/{uuid}",
            "feature",
            "a/b",
        )


def _branch_response(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={"name": "master", "target": {"hash": "abc", "repository": {"uuid": REPO_UUID}}},
    )


class TestParseUrl:
    async def test_resolves_repository_uuid(self, make_scm) -> None:
        scm, handler = make_scm(_branch_response)

        scm_uri = await scm.parse_url("git@bitbucket.org:batman/test.git#mynewbranch")

        assert scm_uri == f"bitbucket.org:batman/{REPO_UUID}:mynewbranch"
        assert handler.paths == ["/2.0/repositories/batman/test/refs/branches/mynewbranch"]
        assert handler.requests[0].headers["Authorization"] == "Bearer myAccessToken"

    async def test_branch_and_root_dir_survive_decode(self, make_scm) -> None:
        scm, _ = make_scm(_branch_response)

        scm_uri = await scm.parse_url("git@bitbucket.org:batman/test.git#feature:src/app")
        parts = uri_codec.decode(scm_uri)

        assert parts.hostname == "bitbucket.org"
        assert parts.repo_id == f"batman/{REPO_UUID}"
        assert parts.branch == "feature"
        assert parts.root_dir == "src/app"

    async def test_defaults_to_master_and_keeps_root_dir(self, make_scm) -> None:
        scm, handler = make_scm(_branch_response)

        scm_uri = await scm.parse_url("https://batman@bitbucket.org/batman/test.git", "src/app")

        assert scm_uri == f"bitbucket.org:batman/{REPO_UUID}:master:src/app"
        assert handler.paths == ["/2.0/repositories/batman/test/refs/branches/master"]

    async def test_other_host_is_rejected_without_request(self, make_scm) -> None:
        scm, handler = make_scm(_branch_response)

        with pytest.raises(UnsupportedHostError):
            await scm.parse_url("git@github.com:batman/test.git#master")
        assert handler.requests == []

    async def test_invalid_url_is_rejected(self, make_scm) -> None:
        scm, _ = make_scm(_branch_response)

        with pytest.raises(InvalidUrlError):
            await scm.parse_url("not-a-checkout-url")

    async def test_missing_branch_propagates_http_error(self, make_scm) -> None:
        scm, _ = make_scm(lambda request: httpx.Response(404, json={}))

        with pytest.raises(HttpError) as exc_info:
            await scm.parse_url("git@bitbucket.org:batman/test.git#gone")
        assert exc_info.value.status_code == 404
