"""Runtime environment detection for dual-mode operation."""
import os
from enum import Enum

from .config import settings


class RuntimeMode(Enum):
    """Runtime environment modes."""
    LOCAL = "local"
    KUBERNETES = "kubernetes"


def detect_runtime(explicit_mode: str | None = None) -> RuntimeMode:
    """
    Detect whether deployments target a real Kubernetes cluster or the local simulator.

    Detection logic:
    1. Honour an explicit "local" or "kubernetes" mode (RUNTIME_MODE setting)
    2. Check for KUBERNETES_SERVICE_HOST (set automatically in K8s pods)
    3. Default to local mode (development)

    Returns:
        RuntimeMode: The detected runtime environment
    """
    mode = (explicit_mode if explicit_mode is not None else settings.RUNTIME_MODE).lower()
    if mode == "kubernetes":
        return RuntimeMode.KUBERNETES
    elif mode == "local":
        return RuntimeMode.LOCAL

    # Kubernetes automatically sets KUBERNETES_SERVICE_HOST in pods
    if os.environ.get("KUBERNETES_SERVICE_HOST"):
        return RuntimeMode.KUBERNETES

    return RuntimeMode.LOCAL


def is_kubernetes() -> bool:
    """Check if running in Kubernetes mode."""
    return RUNTIME_MODE == RuntimeMode.KUBERNETES


# Detect mode at module load time
RUNTIME_MODE = detect_runtime()
