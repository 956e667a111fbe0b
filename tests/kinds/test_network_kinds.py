"""Tests for the NetworkContainer, NetworkPeering and VPCEndpoint kinds."""

import pytest
from matlas.discovery.engine import discover_project
from matlas.execution.executor import SKIP_DEP_FAILED, Executor
from matlas.kinds.network_container import NetworkContainerKind, container_key
from matlas.kinds.network_peering import NetworkPeeringKind
from matlas.kinds.vpc_endpoint import VPCEndpointKind
from matlas.manifest.loader import load_manifest_text
from matlas.planning.planner import build_plan
from matlas.utils.errors import AtlasValidationError
from fakes import FakeAtlas, PROJECT_ID, fast_settings

HEADER = """
apiVersion: matlas.mongodb.com/v1
kind: ApplyDocument
metadata:
  name: network
resources:
"""

CONTAINER = """
  - kind: NetworkContainer
    metadata:
      name: east
    spec:
      provider: AWS
      region: us-east-1
      cidrBlock: 10.8.0.0/21
"""

PEERING = """
  - kind: NetworkPeering
    metadata:
      name: app-vpc
    spec:
      provider: AWS
      vpcId: vpc-0abc123
      region: US_EAST_1
      cidrBlock: 172.31.0.0/16
      awsAccountId: "123456789012"
"""

ENDPOINT = """
  - kind: VPCEndpoint
    metadata:
      name: east-endpoint
    spec:
      provider: aws
      region: us-east-1
"""


def document(*parts):
    return load_manifest_text(HEADER + "".join(parts))


def plan_against(fake: FakeAtlas, doc):
    state = discover_project(fake.services, PROJECT_ID, kinds=sorted({r.kind for r in doc.resources}),
                             settings=fast_settings())
    return build_plan(doc, state)


def result_by_name(result):
    return {r.name: r for r in result.results}


@pytest.fixture
def fake():
    atlas = FakeAtlas()
    atlas.add_project()
    return atlas


class TestNetworkContainer:
    """Test container keys and lifecycle."""

    def test_key(self):
        """Test containers are keyed by provider and canonical region; GCP has one per project."""
        assert container_key("aws", "us-east-1") == "AWS/US_EAST_1"
        assert container_key("GCP", "us-central1") == "GCP"
        assert NetworkContainerKind().resource_key(document(CONTAINER).resources[0]) == "AWS/US_EAST_1"

    def test_payload(self):
        """Test the AWS payload carries the region name and Atlas CIDR field."""
        payload = NetworkContainerKind().to_atlas(document(CONTAINER).resources[0])

        assert payload == {"providerName": "AWS", "atlasCidrBlock": "10.8.0.0/21", "regionName": "US_EAST_1"}

    def test_create_then_noop(self, fake):
        """Test a created container is discovered as identical on the next plan."""
        doc = document(CONTAINER)

        result = Executor(fake.services, fast_settings()).execute(plan_against(fake, doc))

        assert result.status == "Completed"
        [created] = fake.network_containers.items.values()
        assert created["atlasCidrBlock"] == "10.8.0.0/21"
        assert not plan_against(fake, doc).has_changes


class TestNetworkPeering:
    """Test peering creation and its provisioning wait."""

    def test_references_container(self):
        """Test a peering softly references the container of its region."""
        refs = NetworkPeeringKind().references(document(PEERING).resources[0])

        assert [(r.kind, r.key, r.required) for r in refs] == [("NetworkContainer", "AWS/US_EAST_1", False)]

    def test_waits_until_available(self, fake):
        """Test the peering op completes only after Atlas reports AVAILABLE."""
        fake.network_peering.ready_after = 3
        doc = document(CONTAINER, PEERING)
        plan = plan_against(fake, doc)

        result = Executor(fake.services, fast_settings()).execute(plan)

        by_name = result_by_name(result)
        assert by_name["east"].status == "Completed"
        assert by_name["app-vpc"].status == "Completed"
        assert by_name["app-vpc"].stage > by_name["east"].stage
        [peer] = fake.network_peering.items.values()
        [container] = fake.network_containers.items.values()
        assert peer["containerId"] == container["id"]
        assert peer["accepterRegionName"] == "us-east-1"
        assert fake.network_peering.status_polls[peer["id"]] == 3
        assert peer["statusName"] == "AVAILABLE"

    def test_rerun_is_noop(self, fake):
        """Test an available peering and its container plan as unchanged."""
        fake.network_peering.ready_after = 1
        doc = document(CONTAINER, PEERING)
        Executor(fake.services, fast_settings()).execute(plan_against(fake, doc))

        assert not plan_against(fake, doc).has_changes

    def test_failed_provisioning(self, fake):
        """Test a peer that Atlas rejects fails the operation."""
        fake.network_peering.create_state = "FAILED"
        plan = plan_against(fake, document(CONTAINER, PEERING))

        result = Executor(fake.services, fast_settings()).execute(plan)

        assert result_by_name(result)["app-vpc"].status == "Failed"
        assert "FAILED" in result_by_name(result)["app-vpc"].error.message
        assert result.status == "Failed"

    def test_missing_container(self, fake):
        """Test a peering without a container in its region is rejected before any write."""
        plan = plan_against(fake, document(PEERING))

        result = Executor(fake.services, fast_settings()).execute(plan)

        failed = result_by_name(result)["app-vpc"]
        assert failed.status == "Failed"
        assert failed.error.code == "VALIDATION"
        assert fake.network_peering.writes == []

    def test_failed_container_skips_peering(self, fake):
        """Test the peering is skipped when its container could not be created."""
        fake.network_containers.fail("create", AtlasValidationError("CIDR block not allowed"))
        plan = plan_against(fake, document(CONTAINER, PEERING))

        result = Executor(fake.services, fast_settings()).execute(plan)

        skipped = result_by_name(result)["app-vpc"]
        assert skipped.status == "Skipped"
        assert skipped.skip_reason == SKIP_DEP_FAILED


class TestVPCEndpoint:
    """Test private endpoint services."""

    def test_key_and_payload(self):
        """Test provider and region are canonicalised; AWS regions are sent hyphenated."""
        handler = VPCEndpointKind()
        resource = document(ENDPOINT).resources[0]

        assert handler.resource_key(resource) == "AWS/US_EAST_1"
        assert handler.to_atlas(resource) == {"providerName": "AWS", "region": "us-east-1"}

    def test_create_records_provider_scoped_id(self, fake):
        """Test the created endpoint service is addressed as provider/id."""
        doc = document(ENDPOINT)

        result = Executor(fake.services, fast_settings()).execute(plan_against(fake, doc))

        [created] = result.results
        assert created.status == "Completed"
        assert created.atlas_id in fake.vpc_endpoints.items
        assert created.atlas_id.startswith("AWS/")
        assert not plan_against(fake, doc).has_changes

    def test_discovered_name(self, fake):
        """Test discovery names endpoint services after provider and region."""
        fake.vpc_endpoints.seed({"id": "e1", "cloudProvider": "AWS", "regionName": "us-east-1",
                                 "status": "AVAILABLE"})

        state = discover_project(fake.services, PROJECT_ID, kinds=["VPCEndpoint"], settings=fast_settings())

        [observed] = state.of("VPCEndpoint")
        assert observed.key == "AWS/US_EAST_1"
        assert observed.atlas_id == "AWS/e1"
        assert observed.status == "AVAILABLE"
