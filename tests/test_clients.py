from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest
from gateway_service.app.clients import ArgoCdClient, ArtifactoryClient, EntraClient, KubernetesClient, VaultClient
from gateway_service.app.clients.base import item_names, path_segment, raise_for_upstream_status
from gateway_service.app.clients.kubernetes import ApiResource
from gateway_service.app.clients.vault import flatten_role_path, split_role_path
from gateway_service.app.completion_cache import CompletionCache
from gateway_service.app.settings import (
    ArgoCdSettings,
    ArtifactorySettings,
    EntraSettings,
    KubernetesSettings,
    VaultSettings,
)

from libs.common.errors import (
    ConfigurationError,
    NotFoundError,
    OperationTimeoutError,
    RateLimitError,
    UpstreamAccessError,
    UpstreamRequestError,
    UpstreamTransientError,
    ValidationError,
)
from tests.conftest import FakeClock, mock_http_client


class _Recorder:
    """요청을 기록하고 ``(method, path)``별로 준비된 응답을 순서대로 돌려줘요."""

    def __init__(self, routes: dict[tuple[str, str], list[httpx.Response]]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responses = self.routes.get((request.method, request.url.path))
        if not responses:
            return httpx.Response(404, text="no route")
        if len(responses) > 1:
            return responses.pop(0)
        return responses[0]

    def count(self, method: str, path: str) -> int:
        return sum(1 for request in self.requests if request.method == method and request.url.path == path)


def _vault(recorder: _Recorder, cache: CompletionCache, **settings: Any) -> VaultClient:
    return VaultClient(
        VaultSettings(addr="https://vault.test", token="vault-token", **settings),
        cache=cache,
        timeout_seconds=1.0,
        http_client=mock_http_client(recorder),
        poll_attempts=3,
        poll_base_delay_seconds=0.0,
        poll_max_delay_seconds=0.0,
    )


@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [
        (404, NotFoundError),
        (401, UpstreamAccessError),
        (403, UpstreamAccessError),
        (429, RateLimitError),
        (503, UpstreamTransientError),
        (422, UpstreamRequestError),
    ],
)
def test_upstream_status_maps_to_domain_errors(status_code: int, error_type: type[Exception]) -> None:
    with pytest.raises(error_type):
        raise_for_upstream_status("vault", httpx.Response(status_code, text="nope"))


def test_success_status_passes() -> None:
    raise_for_upstream_status("vault", httpx.Response(200, json={}))


def test_item_names_skips_malformed_items() -> None:
    body = {"items": [{"metadata": {"name": "b"}}, {"metadata": {}}, "junk", {"metadata": {"name": "a"}}]}

    assert item_names(body) == ["a", "b"]
    assert item_names(None) == []


def test_role_path_helpers() -> None:
    assert flatten_role_path("/kubernetes/prod/", "app") == "kubernetes--prod--app"
    assert split_role_path("kubernetes--prod--app") == ("kubernetes/prod", "app")
    with pytest.raises(ValidationError):
        split_role_path("lonely")


@pytest.mark.asyncio
async def test_vault_listing_failure_is_empty_and_not_cached(cache: CompletionCache) -> None:
    recorder = _Recorder(
        {
            ("GET", "/v1/sys/policies/acl"): [
                httpx.Response(500, text="sealed"),
                httpx.Response(200, json={"data": {"keys": ["root", "default", "deploy"]}}),
            ]
        }
    )
    vault = _vault(recorder, cache)

    assert await vault.list_policies() == []
    assert await vault.list_policies() == ["default", "deploy", "root"]
    assert await vault.list_policies("DE") == ["default", "deploy"]
    assert recorder.count("GET", "/v1/sys/policies/acl") == 2
    assert recorder.requests[0].headers["X-Vault-Token"] == "vault-token"


@pytest.mark.asyncio
async def test_vault_listing_without_token_is_empty(cache: CompletionCache, tmp_path: Path) -> None:
    recorder = _Recorder({})
    vault = VaultClient(
        VaultSettings(token="", token_file=str(tmp_path / "missing-token")),
        cache=cache,
        timeout_seconds=1.0,
        http_client=mock_http_client(recorder),
    )

    assert await vault.list_engines() == []
    assert recorder.requests == []
    with pytest.raises(ConfigurationError):
        await vault.read_policy("default")


@pytest.mark.asyncio
async def test_vault_roles_are_collected_across_mounts(cache: CompletionCache) -> None:
    recorder = _Recorder(
        {
            ("GET", "/v1/sys/auth"): [
                httpx.Response(
                    200,
                    json={
                        "data": {
                            "kubernetes/prod/": {"type": "kubernetes"},
                            "approle/": {"type": "approle"},
                            "token/": {"type": "token"},
                        }
                    },
                )
            ],
            ("LIST", "/v1/auth/kubernetes/prod/role"): [httpx.Response(200, json={"data": {"keys": ["app"]}})],
        }
    )
    vault = _vault(recorder, cache)

    assert await vault.list_roles() == ["kubernetes--prod--app"]


@pytest.mark.asyncio
async def test_vault_upsert_policy_reports_creation_and_invalidates_listing(cache: CompletionCache) -> None:
    recorder = _Recorder(
        {
            ("GET", "/v1/sys/policies/acl"): [
                httpx.Response(200, json={"data": {"keys": ["default"]}}),
                httpx.Response(200, json={"data": {"keys": ["default", "deploy"]}}),
            ],
            ("GET", "/v1/sys/policies/acl/deploy"): [
                httpx.Response(404, json={"errors": []}),
                httpx.Response(200, json={"data": {"name": "deploy", "policy": "path \"*\" {}"}}),
            ],
            ("PUT", "/v1/sys/policies/acl/deploy"): [httpx.Response(204)],
        }
    )
    vault = _vault(recorder, cache)

    assert await vault.list_policies() == ["default"]
    record, created = await vault.upsert_policy("deploy", 'path "*" {}')

    assert created is True
    assert record["name"] == "deploy"
    assert await vault.list_policies() == ["default", "deploy"]


@pytest.mark.asyncio
async def test_vault_external_group_waits_until_visible(cache: CompletionCache) -> None:
    recorder = _Recorder(
        {
            ("POST", "/v1/identity/group"): [httpx.Response(200, json={"data": {"id": "group-1", "name": "team"}})],
            ("GET", "/v1/identity/group/name/team"): [
                httpx.Response(404, text="not yet"),
                httpx.Response(200, json={"data": {"id": "group-1", "name": "team"}}),
            ],
            ("POST", "/v1/identity/group-alias"): [httpx.Response(200, json={"data": {"id": "alias-1"}})],
        }
    )
    vault = _vault(recorder, cache, oidc_mount_accessor="auth_oidc_123")

    result = await vault.create_external_group(name="team", external_group_id="entra-group-id", policies=["deploy"])

    assert result == {"group": {"id": "group-1", "name": "team"}, "alias": {"id": "alias-1"}}
    assert recorder.count("GET", "/v1/identity/group/name/team") == 2
    alias_request = recorder.requests[-1]
    assert json.loads(alias_request.content) == {
        "name": "entra-group-id",
        "canonical_id": "group-1",
        "mount_accessor": "auth_oidc_123",
    }


@pytest.mark.asyncio
async def test_vault_external_group_times_out(cache: CompletionCache) -> None:
    recorder = _Recorder(
        {
            ("POST", "/v1/identity/group"): [httpx.Response(200, json={"data": {"id": "group-1"}})],
        }
    )
    vault = _vault(recorder, cache, oidc_mount_accessor="auth_oidc_123")

    with pytest.raises(OperationTimeoutError):
        await vault.create_external_group(name="team", external_group_id="x", policies=[])
    assert recorder.count("GET", "/v1/identity/group/name/team") == 3
    assert recorder.count("POST", "/v1/identity/group-alias") == 0


@pytest.mark.asyncio
async def test_vault_external_group_requires_mount_accessor(cache: CompletionCache) -> None:
    recorder = _Recorder({})
    vault = _vault(recorder, cache)

    with pytest.raises(ConfigurationError):
        await vault.create_external_group(name="team", external_group_id="x", policies=[])
    assert recorder.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(("exists", "expected_method"), [(True, "POST"), (False, "PUT")])
async def test_artifactory_upsert_creates_or_updates(cache: CompletionCache, exists: bool, expected_method: str) -> None:
    stored = {"key": "libs-local", "rclass": "local", "packageType": "maven"}
    recorder = _Recorder(
        {
            ("GET", "/artifactory/api/repositories/libs-local"): (
                [httpx.Response(200, json=stored)]
                if exists
                else [httpx.Response(404, text="missing"), httpx.Response(200, json=stored)]
            ),
            ("PUT", "/artifactory/api/repositories/libs-local"): [httpx.Response(200, text="created")],
            ("POST", "/artifactory/api/repositories/libs-local"): [httpx.Response(200, text="updated")],
        }
    )
    artifactory = ArtifactoryClient(
        ArtifactorySettings(url="https://jfrog.test/artifactory", access_token="jfrog-token"),
        cache=cache,
        timeout_seconds=1.0,
        http_client=mock_http_client(recorder),
    )

    record, created = await artifactory.upsert_repository("libs-local", {"rclass": "local", "packageType": "maven"})

    assert record == stored
    assert created is (not exists)
    assert recorder.count(expected_method, "/artifactory/api/repositories/libs-local") == 1
    assert recorder.requests[0].headers["Authorization"] == "Bearer jfrog-token"


class _GraphServer:
    def __init__(self) -> None:
        self.token_requests = 0
        self.group_requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/tenant-1/oauth2/v2.0/token":
            self.token_requests += 1
            return httpx.Response(200, json={"access_token": f"graph-{self.token_requests}", "expires_in": 3600})
        self.group_requests.append(request)
        if "$filter" in request.url.params:
            if "'Ghosts'" in request.url.params["$filter"]:
                return httpx.Response(200, json={"value": []})
            return httpx.Response(200, json={"value": [{"id": "g-1", "displayName": "Platform"}]})
        if request.url.params.get("$skiptoken") == "page-2":
            return httpx.Response(200, json={"value": [{"displayName": "Alpha"}, {"displayName": "Platform"}]})
        return httpx.Response(
            200,
            json={
                "value": [{"displayName": "Platform"}, {"id": "no-name"}],
                "@odata.nextLink": "https://graph.microsoft.com/v1.0/groups?$skiptoken=page-2",
            },
        )


@pytest.mark.asyncio
async def test_entra_groups_follow_paging_and_reuse_token(cache: CompletionCache, clock: FakeClock) -> None:
    server = _GraphServer()
    entra = EntraClient(
        EntraSettings(tenant_id="tenant-1", client_id="client-1", client_secret="secret"),
        cache=cache,
        timeout_seconds=1.0,
        http_client=mock_http_client(server),
        clock=clock,
    )

    groups = await entra.list_groups()
    group = await entra.read_group("Platform")

    assert groups == ["Alpha", "Platform"]
    assert group["id"] == "g-1"
    assert server.token_requests == 1
    assert server.group_requests[0].headers["Authorization"] == "Bearer graph-1"

    clock.advance(3600)
    await entra.read_group("Platform")
    assert server.token_requests == 2
    assert server.group_requests[-1].headers["Authorization"] == "Bearer graph-2"


@pytest.mark.asyncio
async def test_entra_read_group_not_found(cache: CompletionCache, clock: FakeClock) -> None:
    entra = EntraClient(
        EntraSettings(tenant_id="tenant-1", client_id="client-1", client_secret="secret"),
        cache=cache,
        timeout_seconds=1.0,
        http_client=mock_http_client(_GraphServer()),
        clock=clock,
    )

    with pytest.raises(NotFoundError):
        await entra.read_group("Ghosts")


@pytest.mark.asyncio
async def test_entra_requires_client_credentials(cache: CompletionCache) -> None:
    entra = EntraClient(
        EntraSettings(tenant_id="", client_id="", client_secret=""),
        cache=cache,
        timeout_seconds=1.0,
        http_client=mock_http_client(_GraphServer()),
    )

    assert await entra.list_groups() == []
    with pytest.raises(ConfigurationError):
        await entra.read_group("Platform")


class _KubernetesServer:
    def __init__(self) -> None:
        self.paths: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.paths.append(path)
        if path == "/apis":
            return httpx.Response(200, json={"groups": [{"preferredVersion": {"groupVersion": "apps/v1"}}]})
        if path == "/api/v1":
            return httpx.Response(
                200,
                json={
                    "resources": [
                        {"name": "namespaces", "kind": "Namespace", "namespaced": False, "verbs": ["get", "list"]},
                        {"name": "pods", "kind": "Pod", "namespaced": True, "verbs": ["get", "list"]},
                        {"name": "pods/log", "kind": "Pod", "namespaced": True, "verbs": ["get"]},
                        {"name": "configmaps", "kind": "ConfigMap", "namespaced": True, "verbs": ["list"]},
                        {"name": "bindings", "kind": "Binding", "namespaced": True, "verbs": ["create"]},
                    ]
                },
            )
        if path == "/apis/apps/v1":
            return httpx.Response(
                200,
                json={"resources": [{"name": "deployments", "kind": "Deployment", "namespaced": True, "verbs": ["list"]}]},
            )
        if path == "/api/v1/namespaces":
            return httpx.Response(200, json={"items": [{"metadata": {"name": "team-a"}}, {"metadata": {"name": "kube-system"}}]})
        if path in ("/api/v1/namespaces/team-a/pods", "/apis/apps/v1/namespaces/team-a/deployments"):
            return httpx.Response(200, json={"items": [{"metadata": {"name": "web", "namespace": "team-a"}}]})
        if path == "/api/v1/namespaces/team-a/configmaps":
            return httpx.Response(200, json={"items": []})
        return httpx.Response(404, text="not found")


@pytest.fixture
def token_file(tmp_path: Path) -> Path:
    path = tmp_path / "token"
    path.write_text("sa-token\n", encoding="utf-8")
    return path


def _kubernetes(server: _KubernetesServer, cache: CompletionCache, clock: FakeClock, token_file: Path) -> KubernetesClient:
    return KubernetesClient(
        KubernetesSettings(api_url="https://k8s.test", token_file=str(token_file), ca_file="/nonexistent/ca.crt"),
        cache=cache,
        timeout_seconds=1.0,
        http_client=mock_http_client(server),
        clock=clock,
    )


@pytest.mark.asyncio
async def test_kubernetes_resource_types_depend_on_namespace(
    cache: CompletionCache, clock: FakeClock, token_file: Path
) -> None:
    server = _KubernetesServer()
    kubernetes = _kubernetes(server, cache, clock, token_file)

    namespaced = await kubernetes.list_resource_types("team-a")
    cluster_scoped = await kubernetes.list_resource_types(None)
    filtered = await kubernetes.list_resource_types("team-a", "dep")

    assert namespaced == ["deployments", "pods"]
    assert cluster_scoped == ["namespaces"]
    assert filtered == ["deployments"]
    assert server.paths.count("/apis") == 1


@pytest.mark.asyncio
async def test_kubernetes_lists_resources_by_plural(cache: CompletionCache, clock: FakeClock, token_file: Path) -> None:
    server = _KubernetesServer()
    kubernetes = _kubernetes(server, cache, clock, token_file)

    pods = await kubernetes.list_resources("pods", "team-a")
    namespaces = await kubernetes.list_namespaces()

    assert pods == [{"metadata": {"name": "web", "namespace": "team-a"}}]
    assert namespaces == ["kube-system", "team-a"]
    with pytest.raises(NotFoundError):
        await kubernetes.list_resources("widgets", "team-a")


@pytest.mark.asyncio
async def test_kubernetes_discovery_is_refreshed_after_ttl(
    cache: CompletionCache, clock: FakeClock, token_file: Path
) -> None:
    server = _KubernetesServer()
    kubernetes = _kubernetes(server, cache, clock, token_file)

    await kubernetes.discover_api_resources()
    await kubernetes.discover_api_resources()
    clock.advance(601)
    resources = await kubernetes.discover_api_resources()

    assert server.paths.count("/apis") == 2
    assert {resource.plural for resource in resources} == {"namespaces", "pods", "configmaps", "deployments"}


@pytest.mark.asyncio
async def test_kubernetes_without_token_file_lists_nothing(cache: CompletionCache, clock: FakeClock, tmp_path: Path) -> None:
    server = _KubernetesServer()
    kubernetes = _kubernetes(server, cache, clock, tmp_path / "absent")

    assert await kubernetes.list_namespaces() == []
    assert server.paths == []


def test_path_segment_encodes_separators_and_refuses_dot_segments() -> None:
    assert path_segment("team/../sys") == "team%2F..%2Fsys"
    assert path_segment("pods?watch=true") == "pods%3Fwatch%3Dtrue"
    assert path_segment("libs-release.v2") == "libs-release.v2"
    for value in ("", ".", ".."):
        with pytest.raises(ValidationError):
            path_segment(value)


def test_kubernetes_collection_path_keeps_namespace_in_one_segment() -> None:
    pods = ApiResource(plural="pods", kind="Pod", group_version="v1", namespaced=True)
    deployments = ApiResource(plural="deployments", kind="Deployment", group_version="apps/v1", namespaced=True)

    assert pods.collection_path("team-a") == "api/v1/namespaces/team-a/pods"
    assert pods.collection_path("../../api/v1/secrets?") == "api/v1/namespaces/..%2F..%2Fapi%2Fv1%2Fsecrets%3F/pods"
    assert deployments.collection_path(None) == "apis/apps/v1/deployments"
    with pytest.raises(ValidationError):
        pods.collection_path("..")


@pytest.mark.asyncio
async def test_vault_paths_encode_caller_values(cache: CompletionCache) -> None:
    recorder = _Recorder({})
    vault = _vault(recorder, cache)

    with pytest.raises(NotFoundError):
        await vault.read_policy("team/../../auth/userpass/users/mallory")
    with pytest.raises(NotFoundError):
        await vault.read_role("kubernetes--prod--app?list=true")
    with pytest.raises(ValidationError):
        await vault.upsert_policy("..", 'path "*" {}')

    assert [request.url.raw_path for request in recorder.requests] == [
        b"/v1/sys/policies/acl/team%2F..%2F..%2Fauth%2Fuserpass%2Fusers%2Fmallory",
        b"/v1/auth/kubernetes/prod/role/app%3Flist%3Dtrue",
    ]


@pytest.mark.asyncio
async def test_argocd_and_artifactory_paths_encode_caller_values(cache: CompletionCache) -> None:
    recorder = _Recorder({})
    argocd = ArgoCdClient(
        ArgoCdSettings(server="https://argocd.test", auth_token="argo-token"),
        cache=cache,
        timeout_seconds=1.0,
        http_client=mock_http_client(recorder),
    )
    artifactory = ArtifactoryClient(
        ArtifactorySettings(url="https://jfrog.test/artifactory", access_token="jfrog-token"),
        cache=cache,
        timeout_seconds=1.0,
        http_client=mock_http_client(recorder),
    )

    with pytest.raises(NotFoundError):
        await argocd.sync_application("web/../../settings")
    with pytest.raises(NotFoundError):
        await artifactory.read_repository("libs#release")

    assert [request.url.raw_path for request in recorder.requests] == [
        b"/api/v1/applications/web%2F..%2F..%2Fsettings/sync",
        b"/artifactory/api/repositories/libs%23release",
    ]
