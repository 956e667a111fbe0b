"""Tests for dry-run simulation."""

import pytest
from matlas.contracts.plan import PlanMode
from matlas.contracts.state import ProjectState
from matlas.discovery.engine import discover_project
from matlas.dryrun.simulator import simulate
from matlas.manifest.loader import load_manifest_text
from matlas.pipeline import dry_run, kinds_to_discover
from matlas.planning.planner import build_plan
from fakes import FakeAtlas, PROJECT_ID, S1_MANIFEST, fast_settings


@pytest.fixture
def read_only():
    """Fake Atlas that fails the test on any write; holds the project only."""
    fake = FakeAtlas(read_only=True)
    fake.add_project()
    return fake


@pytest.fixture
def s1_plan(read_only):
    """Plan creating the cluster and the user in an existing project."""
    document = load_manifest_text(S1_MANIFEST)
    state = discover_project(read_only.services, PROJECT_ID, kinds=kinds_to_discover(document),
                             settings=fast_settings())
    return build_plan(document, state)


class TestQuickMode:
    """Test structural analysis."""

    def test_counts_and_estimates(self, s1_plan):
        """Test counts per type and the stage-summed duration estimate."""
        report = simulate(s1_plan)

        assert report.mode == "quick"
        assert report.counts_by_type == {"NoOp": 1, "Create": 2}
        assert [op.name for op in report.operations] == ["c1", "u1"]
        assert report.estimated_duration_seconds == 600 + 30
        assert report.ok

    def test_no_predictions(self, s1_plan):
        """Test quick mode does not probe."""
        report = simulate(s1_plan)

        assert all(op.prediction is None for op in report.operations)

    def test_destructive_listed(self, read_only):
        """Test deletes are listed as destructive."""
        read_only.add_cluster()
        document = load_manifest_text(S1_MANIFEST)
        state = discover_project(read_only.services, PROJECT_ID, kinds=["Project", "Cluster", "DatabaseUser"],
                                 settings=fast_settings())
        plan = build_plan(document, state, mode=PlanMode.DESTROY.value)

        report = simulate(plan)

        assert len(report.destructive_operations) == 2

    def test_unsatisfiable_reference(self):
        """Test a user scoped to a cluster the plan deletes cannot run."""
        document = load_manifest_text(S1_MANIFEST)
        plan = build_plan(document, ProjectState.empty(None))
        user = next(op for op in plan.operations if op.kind == "DatabaseUser")
        user.dependencies.append("op-999")

        report = simulate(plan)

        assert user.id in report.unsatisfiable_operations
        assert not report.ok


class TestThoroughMode:
    """Test read-only probes."""

    def test_probes_without_writes(self, read_only, s1_plan):
        """Test thorough mode predicts success and never writes."""
        report = dry_run(read_only.services, s1_plan, mode="thorough", settings=fast_settings())

        assert [op.prediction for op in report.operations] == ["likely-succeed", "likely-succeed"]
        assert read_only.writes == []

    def test_existing_resource_predicted_to_fail(self, read_only, s1_plan):
        """Test a create whose target appeared since planning is a likely failure."""
        read_only.add_cluster()

        report = dry_run(read_only.services, s1_plan, mode="thorough", settings=fast_settings())

        cluster = next(op for op in report.operations if op.kind == "Cluster")
        assert cluster.prediction == "likely-fail"
        assert not report.ok

    def test_new_project_uncertain(self, read_only):
        """Test probes for a project that does not exist yet are uncertain."""
        plan = build_plan(load_manifest_text(S1_MANIFEST), ProjectState.empty(None))

        report = simulate(plan, "thorough", services=read_only.services)

        predictions = {op.name: op.prediction for op in report.operations}
        assert predictions["c1"] == "uncertain"
        assert predictions["u1"] == "uncertain"
        assert read_only.writes == []

    def test_thorough_needs_services(self, s1_plan):
        """Test thorough mode without services is a usage error."""
        with pytest.raises(ValueError):
            simulate(s1_plan, "thorough")
