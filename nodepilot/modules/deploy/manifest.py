"""
Kubernetes manifest rendering for SSH-accessible workloads.

The container installs a generated root password from the ROOT_PASSWORD
environment variable and runs sshd in the foreground. Manifests are piped
to "kubectl apply -f -" through a quoted here-document, so nothing in them
is expanded by the remote shell.
"""

import math
import secrets
from typing import Any, Dict

import yaml

from nodepilot.modules.api.models import DeploymentRequest, derive_service_name

# No 0/O, 1/l/I: readable, and safe inside the chpasswd pipeline
PASSWORD_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz23456789"
PASSWORD_LENGTH = 12

SSH_PORT = 22
GPU_RESOURCE = "nvidia.com/gpu"
HEREDOC_MARKER = "NODEPILOT_MANIFEST"

SSHD_COMMAND = (
    "mkdir -p /run/sshd && chmod 700 /run/sshd && "
    'echo "root:$ROOT_PASSWORD" | chpasswd && /usr/sbin/sshd -D -e'
)

def generate_access_password(length: int = PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))

def cpu_millicores(cores: float) -> int:
    return math.ceil(cores * 1000)

def memory_mebibytes(gigabytes: float) -> int:
    return math.ceil(gigabytes * 1024)

def resource_quantities(request: DeploymentRequest) -> Dict[str, str]:
    """Requests and limits are identical so the pod lands in the Guaranteed QoS class."""
    quantities = {
        "cpu": f"{cpu_millicores(request.cpu_cores)}m",
        "memory": f"{memory_mebibytes(request.memory_gb)}Mi",
    }
    if request.gpu_count > 0:
        quantities[GPU_RESOURCE] = str(request.gpu_count)
    return quantities

def deployment_manifest(
    request: DeploymentRequest, root_password: str, managed_by: str = "nodepilot"
) -> Dict[str, Any]:
    labels = {"app": request.deployment_name, "managed-by": managed_by}
    quantities = resource_quantities(request)
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": request.deployment_name,
            "namespace": request.namespace,
            "labels": labels,
        },
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": {"app": request.deployment_name}},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "containers": [
                        {
                            "name": request.deployment_name,
                            "image": request.image,
                            "imagePullPolicy": "IfNotPresent",
                            "resources": {
                                "requests": dict(quantities),
                                "limits": dict(quantities),
                            },
                            "ports": [{"containerPort": SSH_PORT, "name": "ssh"}],
                            "env": [{"name": "ROOT_PASSWORD", "value": root_password}],
                            "command": ["/bin/bash", "-c"],
                            "args": [SSHD_COMMAND],
                        }
                    ],
                    "restartPolicy": "Always",
                },
            },
        },
    }

def service_manifest(
    request: DeploymentRequest, node_port: int, managed_by: str = "nodepilot"
) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": derive_service_name(request.deployment_name),
            "namespace": request.namespace,
            "labels": {"app": request.deployment_name, "managed-by": managed_by},
        },
        "spec": {
            "type": "NodePort",
            "selector": {"app": request.deployment_name},
            "ports": [
                {
                    "name": "ssh",
                    "port": SSH_PORT,
                    "targetPort": SSH_PORT,
                    "nodePort": node_port,
                    "protocol": "TCP",
                }
            ],
        },
    }

def render(manifest: Dict[str, Any]) -> str:
    return yaml.safe_dump(manifest, sort_keys=False, default_flow_style=False)

def apply_command(manifest: Dict[str, Any]) -> str:
    """Wrap a manifest in a kubectl apply here-document."""
    return f"kubectl apply -f - <<'{HEREDOC_MARKER}'\n{render(manifest)}{HEREDOC_MARKER}"
