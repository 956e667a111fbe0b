"""Tests for field-level diffs."""

from matlas.kinds.registry import get_handler
from matlas.planning.diff import diff_specs, is_empty, values_equal


def cluster_spec(**overrides):
    spec = {"provider": "AWS", "region": "US_EAST_1", "instanceSize": "M10", "clusterType": "REPLICASET"}
    spec.update(overrides)
    return spec


class TestValues:
    """Test value comparison helpers."""

    def test_empty_values(self):
        """Test None, empty string, list and dict all count as unset."""
        assert all(is_empty(v) for v in (None, "", [], {}))
        assert not is_empty(0)
        assert not is_empty(False)

    def test_empty_values_equal(self):
        """Test differently spelled empties compare equal."""
        assert values_equal(None, [])
        assert values_equal("", {})

    def test_bool_not_int(self):
        """Test True is not equal to 1."""
        assert not values_equal(True, 1)
        assert values_equal(False, False)


class TestDiffSpecs:
    """Test spec diffs per kind."""

    def test_identical(self):
        """Test identical specs have no changes."""
        handler = get_handler("Cluster")

        assert diff_specs(handler, cluster_spec(), cluster_spec()) == []

    def test_modified_field(self):
        """Test a changed size is a single modification."""
        handler = get_handler("Cluster")

        changes = diff_specs(handler, cluster_spec(instanceSize="M30"), cluster_spec())

        assert len(changes) == 1
        assert changes[0].path == "instanceSize"
        assert changes[0].before == "M10"
        assert changes[0].after == "M30"
        assert changes[0].change_type == "modified"
        assert not changes[0].immutable

    def test_immutable_flagged(self):
        """Test provider changes are marked immutable."""
        handler = get_handler("Cluster")

        changes = diff_specs(handler, cluster_spec(provider="GCP"), cluster_spec())

        assert [(c.path, c.immutable) for c in changes] == [("provider", True)]

    def test_observed_only_ignored_unless_authoritative(self):
        """Test fields only Atlas reports are kept unless authoritative."""
        handler = get_handler("Cluster")
        observed = cluster_spec(backupEnabled=True)

        assert diff_specs(handler, cluster_spec(), observed) == []
        changes = diff_specs(handler, cluster_spec(), observed, authoritative=True)
        assert [(c.path, c.change_type) for c in changes] == [("backupEnabled", "removed")]

    def test_added_field(self):
        """Test a field set only on the desired side is an addition."""
        handler = get_handler("Cluster")

        changes = diff_specs(handler, cluster_spec(backupEnabled=True), cluster_spec())

        assert [(c.path, c.change_type) for c in changes] == [("backupEnabled", "added")]

    def test_nested_maps(self):
        """Test tag maps diff per key."""
        handler = get_handler("Cluster")

        changes = diff_specs(handler, cluster_spec(tags={"env": "prod", "team": "a"}),
                             cluster_spec(tags={"env": "dev", "team": "a"}))

        assert [c.path for c in changes] == ["tags.env"]

    def test_write_only_never_compared(self):
        """Test passwords never appear in a user diff."""
        handler = get_handler("DatabaseUser")
        desired = {"username": "u1", "authDatabase": "admin", "password": "new-password",
                   "roles": [{"roleName": "read", "databaseName": "app"}]}
        observed = {"username": "u1", "authDatabase": "admin",
                    "roles": [{"roleName": "read", "databaseName": "app"}]}

        assert diff_specs(handler, desired, observed) == []

    def test_set_fields_order_insensitive(self):
        """Test role order does not produce a diff once normalized."""
        handler = get_handler("DatabaseUser")
        roles = [{"roleName": "read", "databaseName": "a"}, {"roleName": "read", "databaseName": "b"}]
        desired = handler.normalize({"username": "u1", "roles": roles})
        observed = handler.normalize({"username": "u1", "roles": list(reversed(roles))})

        assert diff_specs(handler, desired, observed) == []
