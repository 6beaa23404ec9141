"""Certificate authorities and admin kubeconfig for a cluster that does not exist yet.

The material is generated once per bootstrap; the kubeconfig, the CAPI
secrets and the files installed on the node are all derived from the same
``Certificates`` instance.
"""

import base64
import datetime
import logging
import posixpath
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from capi_bootstrap.cloudinit.models import InitFile
from capi_bootstrap.exceptions import NoCertificatesError

logger = logging.getLogger(__name__)

# Secret name suffixes, matching cluster-api's secret.Purpose values
CLUSTER_CA = "ca"
ETCD_CA = "etcd"
FRONT_PROXY_CA = "proxy"
SERVICE_ACCOUNT = "sa"
CLIENT_CLUSTER_CA = "cca"
KUBECONFIG = "kubeconfig"

CLUSTER_NAME_LABEL = "cluster.x-k8s.io/cluster-name"
CLUSTER_SECRET_TYPE = "cluster.x-k8s.io/secret"
TLS_CRT = "tls.crt"
TLS_KEY = "tls.key"

API_SERVER_PORT = 6443
CA_VALIDITY = datetime.timedelta(days=3650)
CLIENT_VALIDITY = datetime.timedelta(days=365)
RSA_KEY_SIZE = 2048


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _new_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_SIZE)


def _private_key_pem(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _new_ca(common_name: str, key: rsa.RSAPrivateKey) -> x509.Certificate:
    now = datetime.datetime.now(datetime.timezone.utc)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + CA_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )


@dataclass
class KeyPair:
    """PEM encoded certificate (or public key) and private key."""
    cert: bytes
    key: bytes


@dataclass
class Certificate:
    """One piece of trust material and where it lives on the node."""
    purpose: str
    cert_file: str
    key_file: str
    common_name: str = "kubernetes"
    key_pair_only: bool = False
    key_pair: Optional[KeyPair] = None

    def generate(self) -> None:
        """Generate the key pair; existing material is never replaced."""
        if self.key_pair is not None:
            return
        key = _new_private_key()
        if self.key_pair_only:
            public = key.public_key().public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            self.key_pair = KeyPair(cert=public, key=_private_key_pem(key))
        else:
            cert = _new_ca(self.common_name, key)
            self.key_pair = KeyPair(
                cert=cert.public_bytes(serialization.Encoding.PEM),
                key=_private_key_pem(key),
            )
        logger.debug(f"generated {self.purpose} key pair")

    def _require(self) -> KeyPair:
        if self.key_pair is None:
            raise NoCertificatesError()
        return self.key_pair

    def as_files(self) -> List[InitFile]:
        key_pair = self._require()
        return [
            InitFile(path=self.cert_file, content=key_pair.cert.decode("ascii"),
                     owner="root:root", permissions="0640"),
            InitFile(path=self.key_file, content=key_pair.key.decode("ascii"),
                     owner="root:root", permissions="0600"),
        ]

    def as_secret(self, cluster_name: str, namespace: str) -> Dict[str, Any]:
        key_pair = self._require()
        return _secret(
            f"{cluster_name}-{self.purpose}", cluster_name, namespace,
            {TLS_CRT: _b64(key_pair.cert), TLS_KEY: _b64(key_pair.key)},
        )


def _secret(name: str, cluster_name: str, namespace: str, data: Dict[str, str]) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": {CLUSTER_NAME_LABEL: cluster_name},
        },
        "type": CLUSTER_SECRET_TYPE,
        "data": data,
    }


def join_host_port(host: str, port: int) -> str:
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass
class Certificates:
    """Ordered set of trust material for one control plane flavor."""
    certificates: List[Certificate] = field(default_factory=list)

    @classmethod
    def for_kubeadm(cls, pki_dir: str = "/etc/kubernetes/pki") -> "Certificates":
        return cls([
            Certificate(CLUSTER_CA, posixpath.join(pki_dir, "ca.crt"), posixpath.join(pki_dir, "ca.key")),
            Certificate(ETCD_CA, posixpath.join(pki_dir, "etcd", "ca.crt"),
                        posixpath.join(pki_dir, "etcd", "ca.key"), common_name="etcd-ca"),
            Certificate(FRONT_PROXY_CA, posixpath.join(pki_dir, "front-proxy-ca.crt"),
                        posixpath.join(pki_dir, "front-proxy-ca.key"), common_name="front-proxy-ca"),
            Certificate(SERVICE_ACCOUNT, posixpath.join(pki_dir, "sa.pub"),
                        posixpath.join(pki_dir, "sa.key"), key_pair_only=True),
        ])

    @classmethod
    def for_k3s(cls, tls_dir: str = "/var/lib/rancher/k3s/server/tls") -> "Certificates":
        return cls([
            Certificate(CLUSTER_CA, posixpath.join(tls_dir, "server-ca.crt"),
                        posixpath.join(tls_dir, "server-ca.key"), common_name="k3s-server-ca"),
            Certificate(CLIENT_CLUSTER_CA, posixpath.join(tls_dir, "client-ca.crt"),
                        posixpath.join(tls_dir, "client-ca.key"), common_name="k3s-client-ca"),
        ])

    @property
    def generated(self) -> bool:
        return bool(self.certificates) and all(c.key_pair is not None for c in self.certificates)

    def generate(self) -> None:
        for certificate in self.certificates:
            certificate.generate()

    def lookup(self, purpose: str) -> Optional[Certificate]:
        for certificate in self.certificates:
            if certificate.purpose == purpose:
                return certificate
        return None

    def _require(self) -> None:
        if not self.generated:
            raise NoCertificatesError()

    def as_files(self) -> List[InitFile]:
        """The trust material as files to install on the node."""
        self._require()
        files: List[InitFile] = []
        for certificate in self.certificates:
            files.extend(certificate.as_files())
        return files

    def as_secrets(self, cluster_name: str, namespace: str, token: str) -> Dict[str, Any]:
        """A v1 List of CAPI secrets for every CA plus the bootstrap token."""
        self._require()
        items = [c.as_secret(cluster_name, namespace) for c in self.certificates]
        items.append(_secret(f"{cluster_name}-token", cluster_name, namespace,
                             {"value": _b64(token.encode("utf-8"))}))
        return {"apiVersion": "v1", "kind": "List", "items": items}

    def new_kubeconfig(self, cluster_name: str, endpoint: str) -> Dict[str, Any]:
        """Build an admin kubeconfig signed by the client CA.

        The cluster CA is used as the signer when the flavor has no separate
        client CA.

        Raises:
            NoCertificatesError: If the material has not been generated
        """
        self._require()
        cluster_ca = self.lookup(CLUSTER_CA)
        client_ca = self.lookup(CLIENT_CLUSTER_CA) or cluster_ca
        if cluster_ca is None:
            raise NoCertificatesError(f"no {CLUSTER_CA} certificate for cluster {cluster_name}")

        signer_cert = x509.load_pem_x509_certificate(client_ca.key_pair.cert)
        signer_key = serialization.load_pem_private_key(client_ca.key_pair.key, password=None)

        client_key = _new_private_key()
        now = datetime.datetime.now(datetime.timezone.utc)
        client_cert = (
            x509.CertificateBuilder()
            .subject_name(x509.Name([
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, "system:masters"),
                x509.NameAttribute(NameOID.COMMON_NAME, "kubernetes-admin"),
            ]))
            .issuer_name(signer_cert.subject)
            .public_key(client_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + CLIENT_VALIDITY)
            .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]), critical=False)
            .sign(signer_key, hashes.SHA256())
        )

        user = f"{cluster_name}-admin"
        context = f"{user}@{cluster_name}"
        return {
            "apiVersion": "v1",
            "kind": "Config",
            "clusters": [{
                "name": cluster_name,
                "cluster": {
                    "server": f"https://{join_host_port(endpoint, API_SERVER_PORT)}",
                    "certificate-authority-data": _b64(cluster_ca.key_pair.cert),
                },
            }],
            "contexts": [{
                "name": context,
                "context": {"cluster": cluster_name, "user": user},
            }],
            "current-context": context,
            "users": [{
                "name": user,
                "user": {
                    "client-certificate-data": _b64(client_cert.public_bytes(serialization.Encoding.PEM)),
                    "client-key-data": _b64(_private_key_pem(client_key)),
                },
            }],
        }


def kubeconfig_secret(cluster_name: str, namespace: str, kubeconfig_yaml: str) -> Dict[str, Any]:
    """Wrap a kubeconfig in the ``<cluster>-kubeconfig`` secret CAPI reads."""
    return _secret(f"{cluster_name}-{KUBECONFIG}", cluster_name, namespace,
                   {"value": _b64(kubeconfig_yaml.encode("utf-8"))})
