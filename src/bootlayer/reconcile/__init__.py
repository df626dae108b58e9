"""Cloud resource reconciliation (plan, confirm, apply)."""

from bootlayer.reconcile.gcloud import CATALOG, GcloudResource, build_resource
from bootlayer.reconcile.reconciler import Resource, ResourcePlan, ResourceReconciler, label

__all__ = [
    "CATALOG",
    "GcloudResource",
    "Resource",
    "ResourcePlan",
    "ResourceReconciler",
    "build_resource",
    "label",
]
