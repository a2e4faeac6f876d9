"""Tests for loader.py module."""

import ssl
from unittest.mock import patch

import pytest

from kubeconfig_loader.config import parse_config
from kubeconfig_loader.exceptions import ReferenceNotFoundError
from kubeconfig_loader.loader import KubeConfigLoader
from kubeconfig_loader.tls import PemIdentityEncoder


class TestKubeConfigLoaderLoad:
    """Tests for loading and resolving a kubeconfig."""

    def test_load_current_context(self, kubeconfig_file):
        """Test resolving the current context from a file."""
        loader = KubeConfigLoader.load(kubeconfig_file)

        assert loader.cluster.server == "https://dev.example.com"
        assert loader.current_context.namespace == "apps"
        assert loader.user.auth_method == "client-certificate"

    def test_load_with_overrides(self, kubeconfig_file):
        """Test that overrides select another cluster and user."""
        loader = KubeConfigLoader.load(kubeconfig_file, cluster="prod-cluster", user="prod-user")

        assert loader.cluster.server == "https://prod.example.com"
        assert loader.user.token == "prod-token"

    def test_load_missing_cluster(self, kubeconfig_file):
        """Test that a missing cluster override is reported as such."""
        with pytest.raises(ReferenceNotFoundError) as exc_info:
            KubeConfigLoader.load(kubeconfig_file, cluster="missing")

        assert exc_info.value.kind == "cluster"
        assert exc_info.value.name == "missing"

    def test_load_uses_default_paths(self, kubeconfig_file, monkeypatch):
        """Test that load without a path honours KUBECONFIG."""
        monkeypatch.setenv("KUBECONFIG", str(kubeconfig_file))

        assert KubeConfigLoader.load(context="prod").user.token == "prod-token"

    def test_from_config(self, kubeconfig_document):
        """Test resolving an already parsed configuration."""
        loader = KubeConfigLoader.from_config(parse_config(kubeconfig_document), "prod")

        assert loader.cluster.insecure_skip_tls_verify is True

    def test_resolution_happens_once(self, kubeconfig_document):
        """Test that credentials are materialized at load time only."""
        config = parse_config(kubeconfig_document)
        with patch("kubeconfig_loader.resolver.materialize", side_effect=lambda user: user) as mock_materialize:
            loader = KubeConfigLoader.from_config(config)
            loader.identity()
            loader.ca_bundle()

        mock_materialize.assert_called_once()

    def test_repr(self, kubeconfig_file):
        """Test the debugging representation."""
        loader = KubeConfigLoader.load(kubeconfig_file)

        assert repr(loader) == "KubeConfigLoader(server='https://dev.example.com', auth='client-certificate')"


class TestKubeConfigLoaderTls:
    """Tests for TLS material built by the loader."""

    def test_identity(self, kubeconfig_file):
        """Test that the client identity is built for the resolved user."""
        loader = KubeConfigLoader.load(kubeconfig_file)

        assert loader.identity().subject == "CN=test-user"

    def test_identity_with_pem_encoder(self, kubeconfig_file):
        """Test that the configured identity encoder is used."""
        loader = KubeConfigLoader.load(kubeconfig_file, identity_encoder=PemIdentityEncoder())

        assert loader.identity().subject == "CN=test-user"

    def test_identity_is_repeatable(self, kubeconfig_file):
        """Test that repeated calls build equivalent identities without touching the loader."""
        loader = KubeConfigLoader.load(kubeconfig_file)
        user_before = loader.user

        first = loader.identity()
        second = loader.identity()

        assert first.certificate_pem() == second.certificate_pem()
        assert loader.user == user_before

    def test_ca_bundle(self, kubeconfig_file):
        """Test that the resolved cluster's CA is returned."""
        bundle = KubeConfigLoader.load(kubeconfig_file).ca_bundle()

        assert [cert.subject for cert in bundle] == ["CN=test-ca"]

    def test_ca_bundle_absent(self, kubeconfig_file):
        """Test that a cluster without CA has no bundle."""
        assert KubeConfigLoader.load(kubeconfig_file, context="prod").ca_bundle() is None

    def test_ssl_context_with_identity(self, kubeconfig_file):
        """Test that the SSL context trusts the cluster CA."""
        context = KubeConfigLoader.load(kubeconfig_file).ssl_context()

        assert isinstance(context, ssl.SSLContext)
        assert len(context.get_ca_certs()) == 1
        assert context.verify_mode == ssl.CERT_REQUIRED

    def test_ssl_context_insecure_token_user(self, kubeconfig_file):
        """Test that insecure clusters disable verification and token users skip the identity."""
        loader = KubeConfigLoader.load(kubeconfig_file, context="prod")

        with patch.object(KubeConfigLoader, "identity") as mock_identity:
            context = loader.ssl_context()

        mock_identity.assert_not_called()
        assert context.verify_mode == ssl.CERT_NONE
