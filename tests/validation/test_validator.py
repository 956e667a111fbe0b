"""Tests for document validation."""

from datetime import datetime, timedelta, timezone
import pytest
from matlas.manifest.loader import load_manifest_text
from matlas.validation.validator import ensure_valid, validate_document
from matlas.utils.errors import ValidationFailedError
from fakes import S1_MANIFEST

HEADER = """
apiVersion: matlas.mongodb.com/v1
kind: ApplyDocument
metadata:
  name: doc
{annotations}resources:
"""


def document_of(resources: str, annotations: str = ""):
    """Build a document from an indented YAML resource list."""
    return load_manifest_text(HEADER.format(annotations=annotations) + resources)


def role(name: str, inherits: str = None) -> str:
    text = (
        f"  - kind: DatabaseRole\n"
        f"    metadata:\n"
        f"      name: {name}\n"
        f"    spec:\n"
        f"      roleName: {name}\n"
        f"      databaseName: admin\n"
    )
    if inherits:
        text += (
            f"      inheritedRoles:\n"
            f"        - roleName: {inherits}\n"
            f"          databaseName: admin\n"
        )
    return text


def cluster(name: str = "c1", provider: str = "AWS", region: str = "US_EAST_1", size: str = "M10") -> str:
    return (
        f"  - kind: Cluster\n"
        f"    metadata:\n"
        f"      name: {name}\n"
        f"    spec:\n"
        f"      provider: {provider}\n"
        f"      region: {region}\n"
        f"      instanceSize: {size}\n"
    )


def access(name: str, cidr: str, extra: str = "") -> str:
    return (
        f"  - kind: NetworkAccess\n"
        f"    metadata:\n"
        f"      name: {name}\n"
        f"    spec:\n"
        f"      cidr: {cidr}\n"
        f"{extra}"
    )


def container(name: str, region: str, cidr: str) -> str:
    return (
        f"  - kind: NetworkContainer\n"
        f"    metadata:\n"
        f"      name: {name}\n"
        f"    spec:\n"
        f"      provider: AWS\n"
        f"      region: {region}\n"
        f"      cidrBlock: {cidr}\n"
    )


class TestValidDocuments:
    """Test documents that pass validation."""

    def test_s1_document_is_valid(self):
        """Test a project, cluster and scoped user validate cleanly."""
        issues = validate_document(load_manifest_text(S1_MANIFEST))

        assert issues.ok
        assert issues.errors == []

    def test_empty_document(self):
        """Test an empty document is valid."""
        issues = validate_document(document_of(""))

        assert issues.ok

    def test_validation_is_repeatable(self):
        """Test validating twice yields the same issues."""
        document = document_of(cluster(region="NOWHERE"))

        first = validate_document(document)
        second = validate_document(document)

        assert first.model_dump() == second.model_dump()


class TestSchemaLayer:
    """Test per-resource schema checks."""

    def test_missing_required_field(self):
        """Test a cluster without instanceSize is an error."""
        document = document_of(
            "  - kind: Cluster\n"
            "    metadata:\n"
            "      name: c1\n"
            "    spec:\n"
            "      provider: AWS\n"
            "      region: US_EAST_1\n"
        )
        issues = validate_document(document)

        assert "required" in [i.code for i in issues.errors]
        assert any(i.field == "instanceSize" for i in issues.errors)

    def test_unknown_provider(self):
        """Test an unknown provider fails the enum check."""
        issues = validate_document(document_of(cluster(provider="IBM")))

        assert "enum" in [i.code for i in issues.errors]

    def test_unsupported_region(self):
        """Test a region the provider does not offer is an error."""
        issues = validate_document(document_of(cluster(provider="GCP", region="US_EAST_1")))

        assert "provider-region" in [i.code for i in issues.errors]


class TestDependencyLayer:
    """Test cross-resource checks."""

    def test_circular_role_inheritance(self):
        """Test two roles inheriting each other are reported with the cycle path."""
        issues = validate_document(document_of(role("a", inherits="b") + role("b", inherits="a")))

        circular = [i for i in issues.errors if i.code == "circular"]
        assert len(circular) == 1
        assert circular[0].path == ["DatabaseRole:a", "DatabaseRole:b", "DatabaseRole:a"]
        assert circular[0].resource == "DatabaseRole:a"

    def test_allow_cycles_skips_detection(self):
        """Test allow_cycles suppresses the cycle error."""
        document = document_of(role("a", inherits="b") + role("b", inherits="a"))

        issues = validate_document(document, allow_cycles=True)

        assert "circular" not in issues.codes()

    def test_missing_cluster_reference(self):
        """Test a user scoped to an undeclared cluster is an error."""
        document = document_of(
            "  - kind: DatabaseUser\n"
            "    metadata:\n"
            "      name: u1\n"
            "    spec:\n"
            "      username: u1\n"
            "      roles:\n"
            "        - roleName: read\n"
            "          databaseName: app\n"
            "      scopes:\n"
            "        - name: ghost\n"
            "          type: CLUSTER\n"
        )
        issues = validate_document(document)

        missing = [i for i in issues.errors if i.code == "reference-missing"]
        assert missing and missing[0].resource == "DatabaseUser:u1"

    def test_duplicate_names(self):
        """Test two clusters with the same name are rejected."""
        issues = validate_document(document_of(cluster("c1") + cluster("c1")))

        assert "duplicate" in [i.code for i in issues.errors]

    def test_duplicate_network_key(self):
        """Test two access entries for the same network are duplicates."""
        issues = validate_document(document_of(access("a", "10.0.0.1/24") + access("b", "10.0.0.0/24")))

        assert "duplicate" in [i.code for i in issues.errors]

    def test_cidr_overlap_warns(self):
        """Test overlapping access entries produce a warning."""
        issues = validate_document(document_of(access("wide", "10.0.0.0/16") + access("narrow", "10.0.1.0/24")))

        assert issues.ok
        assert "cidr-overlap" in [i.code for i in issues.warnings]

    def test_identical_container_blocks_overlap(self):
        """Test containers in different regions sharing one CIDR block are flagged."""
        issues = validate_document(document_of(
            container("east", "US_EAST_1", "10.8.0.0/21") + container("west", "US_WEST_2", "10.8.0.0/21")
        ))

        assert "duplicate" not in [i.code for i in issues.errors]
        overlaps = [i for i in issues.warnings if i.code == "cidr-overlap"]
        assert [i.resource for i in overlaps] == ["NetworkContainer:east"]

    def test_cidr_overlap_allowed_by_annotation(self):
        """Test the allow-overlap annotation downgrades the warning to info."""
        annotations = "  annotations:\n    matlas.mongodb.com/allow-overlap: \"true\"\n"
        document = document_of(access("wide", "10.0.0.0/16") + access("narrow", "10.0.1.0/24"), annotations)

        issues = validate_document(document)

        assert "cidr-overlap" not in [i.code for i in issues.warnings]
        assert "cidr-overlap" in [i.code for i in issues.infos]

    def test_delete_after_in_past(self):
        """Test a deleteAfter in the past is an error."""
        extra = "      deleteAfter: \"2020-01-01T00:00:00Z\"\n"
        issues = validate_document(document_of(access("tmp", "10.0.0.0/24", extra)))

        assert "delete-after-past" in [i.code for i in issues.errors]

    def test_delete_after_soon(self):
        """Test a deleteAfter within a day warns."""
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)
        soon = (now + timedelta(hours=2)).strftime("%Y-%m-%dT%H:%M:%SZ")
        extra = f"      deleteAfter: \"{soon}\"\n"

        issues = validate_document(document_of(access("tmp", "10.0.0.0/24", extra)), now=now)

        assert "delete-after-soon" in [i.code for i in issues.warnings]


class TestStrictMode:
    """Test strict promotion of warnings."""

    UNSCOPED_USER = (
        "  - kind: DatabaseUser\n"
        "    metadata:\n"
        "      name: admin-user\n"
        "    spec:\n"
        "      username: admin-user\n"
        "      roles:\n"
        "        - roleName: readWriteAnyDatabase\n"
        "          databaseName: admin\n"
    )

    def test_loose_scope_is_warning(self):
        """Test an unscoped any-database user only warns by default."""
        issues = validate_document(document_of(self.UNSCOPED_USER))

        assert issues.ok
        assert "loose-role-scope" in [i.code for i in issues.warnings]

    def test_strict_promotes(self):
        """Test strict mode turns loose-role-scope warnings into errors."""
        issues = validate_document(document_of(self.UNSCOPED_USER), strict=True)

        assert not issues.ok
        assert "loose-role-scope" in [i.code for i in issues.errors]
        assert "loose-role-scope" not in [i.code for i in issues.warnings]

    def test_unknown_database(self):
        """Test roles on databases missing from the cluster warn when databases are known."""
        document = document_of(
            cluster()
            + "  - kind: DatabaseUser\n"
              "    metadata:\n"
              "      name: u1\n"
              "    spec:\n"
              "      username: u1\n"
              "      roles:\n"
              "        - roleName: read\n"
              "          databaseName: missing\n"
              "      scopes:\n"
              "        - name: c1\n"
              "          type: CLUSTER\n"
        )
        issues = validate_document(document, known_databases={"c1": ["app"]})

        assert "unknown-database" in [i.code for i in issues.warnings]


class TestEnsureValid:
    """Test turning issues into an exception."""

    def test_raises_with_issues(self):
        """Test ensure_valid raises ValidationFailedError carrying the issue set."""
        issues = validate_document(document_of(cluster(provider="IBM")))

        with pytest.raises(ValidationFailedError) as exc_info:
            ensure_valid(issues)

        assert exc_info.value.issues is issues

    def test_passes_when_ok(self):
        """Test ensure_valid is silent for valid documents."""
        ensure_valid(validate_document(load_manifest_text(S1_MANIFEST)))
