"""Tests for org routing and registry path rewriting."""

import pytest

from registry_mirror.registry.orgs import DEFAULT_HOST, DEFAULT_REGISTRY, OrgRegistry
from registry_mirror.registry.paths import org_name_from_path, resolve, rewrite_path


class TestOrgNameFromPath:
    """Tests for org alias extraction."""

    def test_org_segment_is_lowercased(self):
        assert org_name_from_path("/v2/GCR/repo/manifests/latest") == "gcr"

    def test_single_name_repo_is_an_org_candidate(self):
        assert org_name_from_path("/v2/nginx/manifests/latest") == "nginx"

    @pytest.mark.parametrize("path", ["/v2/", "/v2", "/", "", "/v1/gcr/repo", "/api/v2/x"])
    def test_no_org(self, path):
        assert org_name_from_path(path) == ""


class TestHostByOrgName:
    """Tests for upstream host lookup."""

    @pytest.mark.parametrize(
        "org, host",
        [
            ("gcr", "https://gcr.io"),
            ("k8sgcr", "https://k8s.gcr.io"),
            ("quay", "https://quay.io"),
            ("ghcr", "https://ghcr.io"),
        ],
    )
    def test_known_aliases(self, org, host):
        assert DEFAULT_REGISTRY.host_by_org_name(org) == host

    @pytest.mark.parametrize("org", ["", "nginx", "library", "docker"])
    def test_unknown_aliases_use_docker_hub(self, org):
        assert DEFAULT_REGISTRY.host_by_org_name(org) == DEFAULT_HOST

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_REGISTRY.backends["evil"] = "https://evil.example.com"


class TestRewritePath:
    """Tests for path rewriting rules."""

    @pytest.mark.parametrize(
        "org, host",
        [
            ("gcr", "https://gcr.io"),
            ("k8sgcr", "https://k8s.gcr.io"),
            ("quay", "https://quay.io"),
            ("ghcr", "https://ghcr.io"),
        ],
    )
    def test_alias_prefix_is_stripped(self, org, host):
        resolved = resolve(f"/v2/{org}/repo/manifests/latest")

        assert resolved.org == org
        assert resolved.host == host
        assert resolved.path == "/v2/repo/manifests/latest"

    @pytest.mark.parametrize("action", ["manifests", "blobs", "tags", "referrers"])
    def test_official_image_gets_library_namespace(self, action):
        assert (
            rewrite_path("nginx", f"/v2/nginx/{action}/latest")
            == f"/v2/library/nginx/{action}/latest"
        )

    def test_official_image_resolves_to_docker_hub(self):
        resolved = resolve("/v2/nginx/manifests/latest")

        assert resolved.host == DEFAULT_HOST
        assert resolved.path == "/v2/library/nginx/manifests/latest"

    def test_tags_list_of_official_image(self):
        assert resolve("/v2/nginx/tags/list").path == "/v2/library/nginx/tags/list"

    def test_explicit_library_namespace_is_forwarded_unchanged(self):
        # Six segments, so the library/ insertion does not apply
        resolved = resolve("/v2/library/nginx/manifests/latest")

        assert resolved.org == "library"
        assert resolved.host == DEFAULT_HOST
        assert resolved.path == "/v2/library/nginx/manifests/latest"

    def test_image_named_library_is_prefixed_again(self):
        assert (
            resolve("/v2/library/manifests/latest").path
            == "/v2/library/library/manifests/latest"
        )

    def test_namespaced_docker_hub_image_unchanged(self):
        resolved = resolve("/v2/bitnami/redis/manifests/7.0")

        assert resolved.host == DEFAULT_HOST
        assert resolved.path == "/v2/bitnami/redis/manifests/7.0"

    def test_unknown_action_is_passed_through(self):
        assert rewrite_path("nginx", "/v2/nginx/Manifests/latest") == "/v2/nginx/Manifests/latest"
        assert rewrite_path("nginx", "/v2/nginx/catalog/latest") == "/v2/nginx/catalog/latest"

    @pytest.mark.parametrize("path", ["/v2/", "/", "/healthz", "/v2/_catalog"])
    def test_paths_without_org_shape_unchanged(self, path):
        assert resolve(path).path == path

    def test_case_insensitive_alias(self):
        upper = resolve("/v2/GCR/repo/manifests/latest")
        lower = resolve("/v2/gcr/repo/manifests/latest")

        assert upper == lower
        assert upper.path == "/v2/repo/manifests/latest"

    def test_quay_nested_repository(self):
        resolved = resolve("/v2/quay/foo/bar/manifests/v1")

        assert resolved.org == "quay"
        assert resolved.host == "https://quay.io"
        assert resolved.path == "/v2/foo/bar/manifests/v1"

    def test_blob_digest_reference(self):
        resolved = resolve("/v2/ghcr/owner/app/blobs/sha256:abc123")

        assert resolved.host == "https://ghcr.io"
        assert resolved.path == "/v2/owner/app/blobs/sha256:abc123"

    def test_custom_registry_aliases(self):
        registry = OrgRegistry.build(
            {"Mirror": "https://mirror.example.com/"},
            default_host="https://hub.example.com",
        )

        resolved = resolve("/v2/mirror/team/app/manifests/1.0", registry)

        assert resolved.host == "https://mirror.example.com"
        assert resolved.path == "/v2/team/app/manifests/1.0"
        assert resolve("/v2/gcr/repo/manifests/latest", registry).host == "https://hub.example.com"
