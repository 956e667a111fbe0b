"""Tests for the AlertConfig kind."""

import pytest
from matlas.discovery.engine import discover_project
from matlas.execution.executor import Executor
from matlas.kinds.alert_config import AlertConfigKind
from matlas.manifest.loader import load_manifest_text
from matlas.planning.planner import build_plan
from fakes import FakeAtlas, PROJECT_ID, fast_settings

ALERT_DOCUMENT = """
apiVersion: matlas.mongodb.com/v1
kind: ApplyDocument
metadata:
  name: alerts
resources:
  - kind: AlertConfig
    metadata:
      name: host-down
    spec:
      eventTypeName: HOST_DOWN
      matchers:
        - fieldName: HOSTNAME
          operator: STARTS_WITH
          value: prod
      notifications:
        - typeName: GROUP
          intervalMin: {interval}
          delayMin: 0
          emailEnabled: true
          roles: [GROUP_OWNER]
"""


def alert_document(interval: int = 5):
    return load_manifest_text(ALERT_DOCUMENT.format(interval=interval))


def plan_against(fake: FakeAtlas, document):
    state = discover_project(fake.services, PROJECT_ID, kinds=["AlertConfig"], settings=fast_settings())
    return build_plan(document, state)


@pytest.fixture
def fake():
    atlas = FakeAtlas()
    atlas.add_project()
    return atlas


class TestKey:
    """Test the synthetic natural key."""

    def test_key_ignores_notifications(self):
        """Test notification changes keep the same key."""
        handler = AlertConfigKind()

        first = handler.resource_key(alert_document(5).resources[0])
        second = handler.resource_key(alert_document(60).resources[0])

        assert first == second
        assert first.startswith("HOST_DOWN/")

    def test_key_depends_on_matchers(self):
        """Test different matchers give a different key."""
        handler = AlertConfigKind()
        resource = alert_document().resources[0]
        before = handler.resource_key(resource)
        resource.spec["matchers"][0]["value"] = "staging"

        assert handler.resource_key(resource) != before

    def test_unknown_notification_fields_dropped(self):
        """Test fields Atlas does not accept are stripped from notifications."""
        resource = alert_document().resources[0]
        resource.spec["notifications"][0]["comment"] = "page the on-call"

        payload = AlertConfigKind().to_atlas(resource)

        assert "comment" not in payload["notifications"][0]
        assert payload["enabled"] is True


class TestLifecycle:
    """Test create, no-op and in-place update."""

    def test_create_then_noop(self, fake):
        """Test a created alert config is recognised on the next plan."""
        document = alert_document()

        result = Executor(fake.services, fast_settings()).execute(plan_against(fake, document))

        assert result.status == "Completed"
        [created] = fake.alert_configs.items.values()
        assert created["eventTypeName"] == "HOST_DOWN"
        assert not plan_against(fake, document).has_changes

    def test_notification_change_updates_in_place(self, fake):
        """Test changing a notification interval is an Update of the same config."""
        Executor(fake.services, fast_settings()).execute(plan_against(fake, alert_document(5)))
        [config_id] = fake.alert_configs.items

        plan = plan_against(fake, alert_document(60))
        result = Executor(fake.services, fast_settings()).execute(plan)

        assert [op.type for op in plan.actionable()] == ["Update"]
        assert result.status == "Completed"
        assert fake.alert_configs.writes[-1] == ("update", config_id)
        assert fake.alert_configs.items[config_id]["notifications"][0]["intervalMin"] == 60

    def test_discovered_name_is_unique(self, fake):
        """Test two configs for one event type get distinct names."""
        fake.alert_configs.seed({"id": "a1", "eventTypeName": "HOST_DOWN", "notifications": [{"typeName": "GROUP"}]})
        fake.alert_configs.seed({"id": "a2", "eventTypeName": "HOST_DOWN", "notifications": [{"typeName": "GROUP"}],
                                 "matchers": [{"fieldName": "HOSTNAME", "operator": "EQUALS", "value": "x"}]})

        state = discover_project(fake.services, PROJECT_ID, kinds=["AlertConfig"], settings=fast_settings())

        names = [o.name for o in state.of("AlertConfig")]
        assert len(set(names)) == 2
        assert all(name.startswith("host-down-") for name in names)
