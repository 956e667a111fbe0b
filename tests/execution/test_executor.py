"""Tests for plan execution."""

import threading
import pytest
from matlas.contracts.state import ProjectState
from matlas.discovery.engine import discover_project
from matlas.execution.executor import SKIP_DEP_FAILED, SKIP_RUN_ABORTED, Executor
from matlas.manifest.loader import load_manifest_text
from matlas.pipeline import kinds_to_discover
from matlas.planning.planner import build_plan
from matlas.utils.context import Context
from matlas.utils.errors import AtlasValidationError, AuthError, TransientError
from fakes import FakeAtlas, PROJECT_ID, RecordingTempUsers, S1_MANIFEST, fast_settings

TWO_CLUSTERS = """
apiVersion: matlas.mongodb.com/v1
kind: ApplyDocument
metadata:
  name: s5
resources:
""" + "".join(
    f"""
  - kind: Cluster
    metadata:
      name: {c}
    spec:
      provider: AWS
      region: US_EAST_1
      instanceSize: M10
  - kind: DatabaseUser
    metadata:
      name: {u}
    spec:
      username: {u}
      password: "s3cret-Password"
      roles:
        - roleName: read
          databaseName: app
      scopes:
        - name: {c}
          type: CLUSTER
"""
    for c, u in (("c1", "u1"), ("c2", "u2"))
)


def access_document(count: int, downstream=()):
    """Document with `count` access entries 10.0.<i>.0/24, plus after-<i> entries depending on net-<i>."""
    entries = "".join(
        f"  - kind: NetworkAccess\n"
        f"    metadata:\n"
        f"      name: net-{i}\n"
        f"    spec:\n"
        f"      cidr: 10.0.{i}.0/24\n"
        for i in range(count)
    )
    entries += "".join(
        f"  - kind: NetworkAccess\n"
        f"    metadata:\n"
        f"      name: after-{i}\n"
        f"      dependsOn: [net-{i}]\n"
        f"    spec:\n"
        f"      cidr: 10.1.{i}.0/24\n"
        for i in downstream
    )
    return load_manifest_text(
        "apiVersion: matlas.mongodb.com/v1\nkind: ApplyDocument\nmetadata:\n  name: nets\nresources:\n" + entries
    )


def plan_for(fake: FakeAtlas, document, project_id=PROJECT_ID):
    """Discover from the fake and plan the document."""
    state = discover_project(fake.services, project_id, kinds=kinds_to_discover(document), settings=fast_settings())
    return build_plan(document, state)


def result_by_name(result):
    return {r.name: r for r in result.results}


@pytest.fixture
def fake():
    """Fake Atlas with the project already created."""
    atlas = FakeAtlas()
    atlas.add_project()
    return atlas


class TestSuccessfulRuns:
    """Test runs where every operation succeeds."""

    def test_s1_creates_in_order(self):
        """Test project, cluster and user are created in stage order."""
        fake = FakeAtlas(create_state="CREATING", ready_after=3)
        plan = build_plan(load_manifest_text(S1_MANIFEST), ProjectState.empty(None))

        result = Executor(fake.services, fast_settings()).execute(plan)

        assert result.status == "Completed"
        assert [r.status for r in result.results] == ["Completed"] * 3
        assert [call[0] for call in fake.writes] == ["create", "create", "create"]
        assert fake.clusters.status_polls["c1"] >= 3
        assert "u1" in [item["username"] for item in fake.database_users.items.values()]

    def test_new_project_id_propagates(self):
        """Test the id assigned to a created project is used for later operations."""
        fake = FakeAtlas()
        plan = build_plan(load_manifest_text(S1_MANIFEST), ProjectState.empty(None))

        result = Executor(fake.services, fast_settings()).execute(plan)

        assert result.project_id == f"{1:024x}"
        assert result_by_name(result)["p1"].atlas_id == f"{1:024x}"

    def test_progress_callback(self, fake):
        """Test progress is reported for every status change."""
        seen = []
        plan = plan_for(fake, access_document(2))

        Executor(fake.services, fast_settings(), progress=seen.append).execute(plan)

        assert [(r.name, r.status) for r in seen if r.name == "net-0"] == [
            ("net-0", "Running"), ("net-0", "Completed"),
        ]

    def test_idempotent_rerun(self):
        """Test re-planning after a successful apply yields only NoOps."""
        fake = FakeAtlas()
        document = load_manifest_text(S1_MANIFEST)
        first = Executor(fake.services, fast_settings()).execute(build_plan(document, ProjectState.empty(None)))

        again = plan_for(fake, document, project_id=first.project_id)

        assert not again.has_changes

    def test_transient_errors_retried(self, fake):
        """Test transient failures are retried and counted."""
        fake.network_access.fail("create", TransientError("503 from Atlas"), times=2)
        plan = plan_for(fake, access_document(1))

        result = Executor(fake.services, fast_settings()).execute(plan)

        assert result.status == "Completed"
        assert result.results[0].retry_count == 2

    def test_conflict_matching_existing(self, fake):
        """Test a create that finds an identical resource completes with a warning."""
        plan = plan_for(fake, access_document(1))
        fake.add_access("10.0.0.0/24")

        result = Executor(fake.services, fast_settings()).execute(plan)

        assert result.status == "Completed"
        assert any("already existed" in w for w in result.results[0].warnings)


class TestFailures:
    """Test partial failure handling."""

    def test_s5_failed_cluster_skips_its_user(self, fake):
        """Test a failed cluster skips only the user that depends on it."""
        fake.clusters.fail("create", AtlasValidationError("instance size not allowed"),
                           match=lambda payload: payload.get("name") == "c2")
        plan = plan_for(fake, load_manifest_text(TWO_CLUSTERS))

        result = Executor(fake.services, fast_settings()).execute(plan)

        by_name = result_by_name(result)
        assert by_name["c1"].status == "Completed"
        assert by_name["u1"].status == "Completed"
        assert by_name["c2"].status == "Failed"
        assert by_name["c2"].error.code == "VALIDATION"
        assert by_name["u2"].status == "Skipped"
        assert by_name["u2"].skip_reason == SKIP_DEP_FAILED
        assert result.status == "Failed"

    def test_sibling_failure_does_not_cancel_stage(self, fake):
        """Test one failing entry in a stage of ten leaves the other nine completed and skips only its dependents."""
        fake.network_access.fail("create", AtlasValidationError("rejected"),
                                 match=lambda payload: payload.get("cidrBlock") == "10.0.2.0/24")
        plan = plan_for(fake, access_document(10, downstream=(2, 3, 7)))

        result = Executor(fake.services, fast_settings(), max_concurrent=4).execute(plan)

        by_name = result_by_name(result)
        siblings = [by_name[f"net-{i}"] for i in range(10)]
        assert {op.stage for op in siblings} == {by_name["net-0"].stage}
        assert by_name["after-2"].stage > by_name["net-0"].stage
        assert [op.status for op in siblings].count("Completed") == 9
        assert by_name["net-2"].status == "Failed"
        assert by_name["after-2"].status == "Skipped"
        assert by_name["after-2"].skip_reason == SKIP_DEP_FAILED
        assert by_name["after-3"].status == "Completed"
        assert by_name["after-7"].status == "Completed"
        assert result.status == "Failed"

    def test_auth_error_aborts_run(self, fake):
        """Test an authentication failure stops the run and skips what is left."""
        fake.clusters.fail("create", AuthError("401 Unauthorized"))
        plan = plan_for(fake, load_manifest_text(TWO_CLUSTERS))

        result = Executor(fake.services, fast_settings()).execute(plan)

        by_name = result_by_name(result)
        assert by_name["c1"].status == "Failed"
        assert by_name["u1"].status == "Skipped"
        assert by_name["u1"].skip_reason in (SKIP_DEP_FAILED, SKIP_RUN_ABORTED)
        assert result.status == "Failed"
        assert "401 Unauthorized" in result.errors[0]


class TestCancellation:
    """Test cancellation and deadlines."""

    def test_s6_cancel_during_cluster_create(self):
        """Test cancelling while a cluster provisions cancels later stages and releases temp users."""
        fake = FakeAtlas(create_state="CREATING")
        temp_users = RecordingTempUsers()
        ctx = Context.background()
        fake.clusters.on_create = lambda item: ctx.cancel("interrupted by user")
        plan = build_plan(load_manifest_text(S1_MANIFEST), ProjectState.empty(None))

        result = Executor(fake.services, fast_settings(), temp_users=temp_users).execute(plan, ctx=ctx)

        by_name = result_by_name(result)
        assert by_name["p1"].status == "Completed"
        assert by_name["c1"].status == "Completed"
        assert "created, not yet AVAILABLE (run cancelled)" in by_name["c1"].warnings
        assert by_name["u1"].status == "Cancelled"
        assert result.status == "Cancelled"
        assert "Run cancelled: interrupted by user" in result.warnings
        assert temp_users.release_calls == 1
        assert fake.database_users.writes == []

    def test_polling_deadline(self):
        """Test a cluster that never becomes ready completes with a warning at its deadline."""
        slow = FakeAtlas(create_state="CREATING")
        slow.add_project()
        settings = fast_settings(operation_timeouts={"Cluster": 0.2})
        plan = plan_for(slow, load_manifest_text(S1_MANIFEST))

        result = Executor(slow.services, settings).execute(plan)

        cluster = result_by_name(result)["c1"]
        assert cluster.status == "Completed"
        assert "created, not yet AVAILABLE (deadline elapsed)" in cluster.warnings

    def test_cancel_before_start(self, fake):
        """Test a run whose context is already cancelled starts nothing."""
        ctx = Context.background()
        ctx.cancel("stop")
        plan = plan_for(fake, access_document(3))

        result = Executor(fake.services, fast_settings()).execute(plan, ctx=ctx)

        assert [r.status for r in result.results] == ["Cancelled"] * 3
        assert fake.network_access.writes == []
        assert result.status == "Cancelled"

    def test_cancel_from_another_thread(self):
        """Test Executor.cancel() stops a run blocked on provisioning."""
        slow = FakeAtlas(create_state="CREATING")
        slow.add_project()
        plan = plan_for(slow, load_manifest_text(S1_MANIFEST))
        executor = Executor(slow.services, fast_settings())
        slow.clusters.on_create = lambda item: threading.Timer(0.05, executor.cancel).start()

        result = executor.execute(plan)

        assert result.status == "Cancelled"
        assert result_by_name(result)["u1"].status == "Cancelled"
