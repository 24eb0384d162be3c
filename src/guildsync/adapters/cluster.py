"""Kubernetes cluster adapters (state kept in a labelled ConfigMap)."""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, Optional

from guildsync.errors import TransportError
from guildsync.plan import OperationKind

from .commands import CommandRunner, StoredStateAdapter

logger = logging.getLogger(__name__)

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
STATE_CONFIGMAP = "guildsync-state"
STATE_KEY = "state.json"


class _ClusterAdapter(StoredStateAdapter):
    """
    Stores the guild structure in one ConfigMap via ``kubectl``.

    Permission overwrites have no cluster-side meaning, so SetOverwrite is
    not supported.
    """

    SUPPORTED_OPERATIONS = frozenset(
        {
            OperationKind.CREATE_ENTITY,
            OperationKind.UPDATE_ATTRIBUTES,
            OperationKind.DELETE_ENTITY,
            OperationKind.REORDER_CHILDREN,
        }
    )

    def __init__(
        self,
        runner: CommandRunner,
        *,
        context: str,
        namespace: str = "guildsync",
        configmap: str = STATE_CONFIGMAP,
    ) -> None:
        super().__init__(runner)
        if not context or not context.strip():
            raise ValueError("context must be a non-empty string")
        self._context = context
        self._namespace = namespace
        self._configmap = configmap

    @property
    def context(self) -> str:
        return self._context

    @property
    def namespace(self) -> str:
        return self._namespace

    def _kubectl(self, *args: str, input: Optional[str] = None) -> str:
        argv = ["kubectl", "--context", self._context, "--namespace", self._namespace, *args]
        return self._run(argv, input=input)

    def _open(self) -> None:
        try:
            self._kubectl("get", "namespace", self._namespace, "-o", "name")
        except subprocess.CalledProcessError as exc:
            self._on_missing_namespace(exc)

    def _on_missing_namespace(self, exc: subprocess.CalledProcessError) -> None:
        raise exc

    def _read_state(self) -> str:
        out = self._kubectl(
            "get", "configmap", self._configmap, "-o", "json", "--ignore-not-found"
        )
        if not out.strip():
            return ""
        try:
            manifest = json.loads(out)
        except ValueError as exc:
            raise TransportError(f"{self.name}: kubectl returned invalid JSON", cause=exc) from exc
        data = manifest.get("data") or {}
        value = data.get(STATE_KEY, "")
        return value if isinstance(value, str) else ""

    def _write_state(self, text: str) -> None:
        self._kubectl("apply", "-f", "-", input=json.dumps(self._manifest(text)))

    def _manifest(self, text: str) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {
                "name": self._configmap,
                "namespace": self._namespace,
                "labels": {MANAGED_BY_LABEL: "guildsync"},
            },
            "data": {STATE_KEY: text},
        }


class LocalClusterAdapter(_ClusterAdapter):
    """On-demand local cluster (kind/k3d/minikube); creates its namespace if missing."""

    name = "kube-local"

    def __init__(
        self,
        runner: CommandRunner,
        *,
        context: str = "kind-guildsync",
        namespace: str = "guildsync",
    ) -> None:
        super().__init__(runner, context=context, namespace=namespace)

    def _on_missing_namespace(self, exc: subprocess.CalledProcessError) -> None:
        logger.info("kube-local: creating namespace %s", self._namespace)
        self._run(["kubectl", "--context", self._context, "create", "namespace", self._namespace])


class RemoteClusterAdapter(_ClusterAdapter):
    """Remote cluster selected by kubeconfig context; the namespace must exist."""

    name = "kube-remote"
