"""Tests for plan/apply/destroy resource reconciliation."""

import pytest

from bootlayer.core.errors import ProviderError, ReconcileError, ResourceCreationError
from bootlayer.reconcile import Resource, ResourceReconciler, label


class FakeResource:
    def __init__(
        self, name, present=False, exists_error=None, create_errors=(), delete_errors=()
    ):
        self.kind = "fake"
        self.name = name
        self.present = present
        self.exists_error = exists_error
        self.create_errors = list(create_errors)
        self.delete_errors = list(delete_errors)
        self.create_calls = 0
        self.delete_calls = 0

    def exists(self):
        if self.exists_error is not None:
            raise self.exists_error
        return self.present

    def create(self):
        self.create_calls += 1
        if self.create_errors:
            raise self.create_errors.pop(0)
        self.present = True

    def delete(self):
        self.delete_calls += 1
        if self.delete_errors:
            raise self.delete_errors.pop(0)
        self.present = False


class TestPlan:
    def test_classifies_existing_and_missing(self, executor):
        resources = [FakeResource("a", present=True), FakeResource("b"), FakeResource("c", True)]

        plan = ResourceReconciler(resources, executor).plan()

        assert [r.name for r in plan.to_create] == ["b"]
        assert [r.name for r in plan.to_skip] == ["a", "c"]
        assert plan.has_changes
        assert plan.total == 3

    def test_nothing_to_do(self, executor):
        plan = ResourceReconciler([FakeResource("a", present=True)], executor).plan()
        assert not plan.has_changes

    def test_unknown_existence_aborts(self, executor):
        resources = [FakeResource("a"), FakeResource("b", exists_error=PermissionError("denied"))]

        with pytest.raises(ReconcileError, match="fake/b"):
            ResourceReconciler(resources, executor).plan()

    def test_reconcile_error_passes_through(self, executor):
        error = ReconcileError("gcloud missing")
        with pytest.raises(ReconcileError) as exc_info:
            ResourceReconciler([FakeResource("a", exists_error=error)], executor).plan()
        assert exc_info.value is error


class TestApply:
    def test_creates_only_missing(self, executor):
        resources = [FakeResource("a", present=True), FakeResource("b"), FakeResource("c", True)]
        reconciler = ResourceReconciler(resources, executor)

        result = reconciler.apply(reconciler.plan())

        assert [r.create_calls for r in resources] == [0, 1, 0]
        assert result.created == ["fake/b"]
        assert result.skipped == ["fake/a", "fake/c"]
        assert result.success

    def test_second_pass_creates_nothing(self, executor):
        resources = [FakeResource("a"), FakeResource("b")]
        reconciler = ResourceReconciler(resources, executor)
        reconciler.apply(reconciler.plan())

        result = reconciler.apply(reconciler.plan())

        assert result.created == []
        assert [r.create_calls for r in resources] == [1, 1]

    def test_transient_create_failure_retried(self, executor, sleep):
        resource = FakeResource("a", create_errors=[ProviderError("quota")])
        reconciler = ResourceReconciler([resource], executor)

        result = reconciler.apply(reconciler.plan())

        assert resource.create_calls == 2
        assert sleep.calls == [1.0]
        assert result.created == ["fake/a"]

    def test_failure_rolls_back_this_run(self, executor):
        first = FakeResource("a")
        second = FakeResource("b")
        failing = FakeResource("c", create_errors=[ProviderError("boom")] * 3)
        reconciler = ResourceReconciler([first, second, failing], executor)

        with pytest.raises(ResourceCreationError) as exc_info:
            reconciler.apply(reconciler.plan())

        assert exc_info.value.resource == "fake/c"
        assert exc_info.value.rollback.reverted == ["fake/b", "fake/a"]
        assert first.delete_calls == 1
        assert second.delete_calls == 1
        assert failing.delete_calls == 0

    def test_preexisting_resources_never_deleted(self, executor):
        existing = FakeResource("a", present=True)
        failing = FakeResource("b", create_errors=[ProviderError("boom")] * 3)
        reconciler = ResourceReconciler([existing, failing], executor)

        with pytest.raises(ResourceCreationError):
            reconciler.apply(reconciler.plan())

        assert existing.delete_calls == 0
        assert existing.present


class TestDestroy:
    def test_reverse_declared_order(self, executor):
        resources = [FakeResource(n, present=True) for n in ("ip", "vm", "firewall")]

        result = ResourceReconciler(resources, executor).destroy()

        assert result.deleted == ["fake/firewall", "fake/vm", "fake/ip"]
        assert [r.present for r in resources] == [False, False, False]
        assert result.success

    def test_failure_recorded_and_rest_attempted(self, executor):
        first = FakeResource("a", present=True)
        stuck = FakeResource("b", present=True, delete_errors=[ProviderError("denied")] * 3)
        last = FakeResource("c", present=True)

        result = ResourceReconciler([first, stuck, last], executor).destroy()

        assert result.deleted == ["fake/c", "fake/a"]
        assert list(result.failed) == ["fake/b"]
        assert not result.success
        assert stuck.delete_calls == 3
        assert stuck.present


def test_label_and_protocol():
    resource = FakeResource("vm-1")
    assert label(resource) == "fake/vm-1"
    assert isinstance(resource, Resource)
