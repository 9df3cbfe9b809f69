"""Tests for the reference bundler."""

import pytest

from apibundle.bundler import Bundler, SchemaVersion, detect_version, mangle
from apibundle.errors import (
    CircularReferenceError,
    DestinationCollisionError,
    ReferenceResolutionError,
    UnsupportedVersionError,
)
from apibundle.provenance import ProvenanceRecord
from apibundle.session import DocumentSession

OPENAPI_HEAD = """
openapi: 3.0.3
info:
  title: Test
  version: "1"
"""


def _bundle(root, session=None):
    if session is None:
        with DocumentSession() as s:
            return Bundler(s).bundle(root)
    return Bundler(session).bundle(root)


def _contains_ref(value) -> bool:
    if isinstance(value, dict):
        return "$ref" in value or any(_contains_ref(v) for v in value.values())
    if isinstance(value, list):
        return any(_contains_ref(v) for v in value)
    return False


def _at(document, path):
    for segment in path:
        document = document[int(segment)] if isinstance(document, list) else document[segment]
    return document


class TestVersion:

    @pytest.mark.parametrize("document,expected", [
        ({"swagger": "2.0"}, SchemaVersion.V2),
        ({"swagger": 2.0}, SchemaVersion.V2),
        ({"openapi": "3.0.0"}, SchemaVersion.V3),
        ({"openapi": "3.0.3-rc1"}, SchemaVersion.V3),
        ({"openapi": "3.1.0"}, None),
        ({"openapi": "3.0.10"}, None),
        ({"swagger": True}, None),
        ({"info": {}}, None),
        (["not", "a", "mapping"], None),
    ])
    def test_detect_version(self, document, expected):
        assert detect_version(document) == expected

    def test_destination_for_prefers_parent(self):
        assert SchemaVersion.V3.destination_for("schema", "responses") == ("components", "schemas")
        assert SchemaVersion.V3.destination_for("0", "parameters") == ("components", "parameters")
        assert SchemaVersion.V2.destination_for("schema", None) == ("definitions",)
        assert SchemaVersion.V3.destination_for("name", "properties") is None


class TestMangle:

    def test_mangle(self):
        assert mangle("b.yaml") == "b-yaml"
        assert mangle("schemas/pet.yaml#/Pet") == "schemas-pet-yaml-Pet"
        assert mangle("a~b") == "a-b"


class TestBundleBasics:

    def test_cross_file_component(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths:
  /x:
    get:
      responses:
        "200":
          description: ok
          content:
            application/json:
              schema:
                $ref: "b.yaml#/components/schemas/X"
""",
            "b.yaml": """
            components:
              schemas:
                X:
                  type: object
                  properties:
                    name:
                      type: string
            """,
        })
        result = _bundle(root / "a.yaml")

        assert result.version is SchemaVersion.V3
        schema = result.document["paths"]["/x"]["get"]["responses"]["200"]["content"]["application/json"]["schema"]
        assert schema == {"$ref": "#/components/schemas/b-yaml-X"}
        assert result.document["components"]["schemas"]["b-yaml-X"] == {
            "type": "object",
            "properties": {"name": {"type": "string"}},
        }
        record = result.provenance.resolve("/components/schemas/b-yaml-X/properties/name")
        assert record == ProvenanceRecord((root / "b.yaml").resolve(), "#/components/schemas/X/properties/name")

    def test_swagger_2_routing(self, write_tree):
        root = write_tree({
            "api.yaml": """
            swagger: "2.0"
            info: {title: T, version: "1"}
            paths:
              /x:
                get:
                  parameters:
                    - $ref: "params.yaml#/Limit"
                  responses:
                    "200":
                      description: ok
                      schema:
                        $ref: "defs.yaml#/Pet"
            """,
            "params.yaml": """
            Limit: {name: limit, in: query, type: integer}
            """,
            "defs.yaml": """
            Pet: {type: object}
            """,
        })
        document = _bundle(root / "api.yaml").document

        assert document["definitions"] == {"defs-yaml-Pet": {"type": "object"}}
        assert document["parameters"]["params-yaml-Limit"]["name"] == "limit"
        get = document["paths"]["/x"]["get"]
        assert get["parameters"] == [{"$ref": "#/parameters/params-yaml-Limit"}]
        assert get["responses"]["200"]["schema"] == {"$ref": "#/definitions/defs-yaml-Pet"}

    def test_local_refs_untouched(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths: {}
components:
  schemas:
    A:
      $ref: "#/components/schemas/B"
      description: kept
    B:
      type: string
""",
        })
        result = _bundle(root / "a.yaml")
        assert result.document["components"]["schemas"]["A"] == {
            "$ref": "#/components/schemas/B",
            "description": "kept",
        }
        assert len(result.provenance) == 0

    def test_no_external_refs_is_identity(self, petstore_path, session):
        root = petstore_path / "schemas" / "owner.yaml"
        result = _bundle(root, session)
        assert result.version is None
        assert result.document == session.load(root).value

    def test_ref_back_into_root(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths: {}
components:
  schemas:
    Owner: {type: string}
    Pet:
      $ref: "b.yaml#/components/schemas/Pet"
""",
            "b.yaml": """
            components:
              schemas:
                Pet:
                  properties:
                    owner:
                      $ref: "a.yaml#/components/schemas/Owner"
            """,
        })
        document = _bundle(root / "a.yaml").document
        pet = document["components"]["schemas"]["b-yaml-Pet"]
        assert pet["properties"]["owner"] == {"$ref": "#/components/schemas/Owner"}

    def test_same_target_placed_once(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths:
  /one:
    get:
      responses:
        "200":
          $ref: "common.yaml#/components/responses/Ok"
  /two:
    get:
      responses:
        "200":
          $ref: "./common.yaml#/components/responses/Ok"
""",
            "common.yaml": """
            components:
              responses:
                Ok: {description: ok}
            """,
        })
        result = _bundle(root / "a.yaml")
        paths = result.document["paths"]
        expected = {"$ref": "#/components/responses/common-yaml-Ok"}
        assert paths["/one"]["get"]["responses"]["200"] == expected
        assert paths["/two"]["get"]["responses"]["200"] == expected
        assert list(result.document["components"]["responses"]) == ["common-yaml-Ok"]
        assert len(result.provenance) == 1

    def test_json_and_yaml_mix(self, petstore_path):
        document = _bundle(petstore_path / "openapi.yaml").document
        error = document["components"]["responses"]["common-responses-json-Error"]
        assert error["content"]["application/json"]["schema"] == {
            "$ref": "#/components/schemas/schemas-owner-yaml-Problem"
        }


class TestBundleFallbacks:

    def test_inline_when_no_destination(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths: {}
components:
  schemas:
    A:
      type: object
      properties:
        b:
          $ref: "c.yaml#/B"
""",
            "c.yaml": """
            B:
              type: string
              maxLength: 10
            """,
        })
        result = _bundle(root / "a.yaml")
        assert result.document["components"]["schemas"]["A"]["properties"]["b"] == {
            "type": "string",
            "maxLength": 10,
        }
        record = result.provenance.resolve("/components/schemas/A/properties/b/maxLength")
        assert record == ProvenanceRecord((root / "c.yaml").resolve(), "#/B/maxLength")

    def test_inline_cycle_rejected(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths: {}
components:
  schemas:
    A:
      properties:
        child:
          $ref: "c.yaml#/Tree"
""",
            "c.yaml": """
            Tree:
              type: object
              properties:
                next:
                  $ref: "#/Tree"
            """,
        })
        with pytest.raises(CircularReferenceError):
            _bundle(root / "a.yaml")

    def test_inline_cycle_through_placement(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
x-foo:
  $ref: b.yaml
paths: {}
""",
            "b.yaml": """
            properties:
              c:
                $ref: "c.yaml#/components/schemas/C"
            """,
            "c.yaml": """
            components:
              schemas:
                C:
                  type: object
                  x-back:
                    $ref: b.yaml
            """,
        })
        result = _bundle(root / "a.yaml")

        expanded = {"properties": {"c": {"$ref": "#/components/schemas/c-yaml-C"}}}
        assert result.document["x-foo"] == expanded
        assert result.document["components"]["schemas"]["c-yaml-C"] == {
            "type": "object",
            "x-back": expanded,
        }
        record = result.provenance.resolve("/components/schemas/c-yaml-C/x-back/properties")
        assert record == ProvenanceRecord((root / "b.yaml").resolve(), "#/properties")

    def test_cycle_through_destination_terminates(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths: {}
components:
  schemas:
    Root:
      $ref: "b.yaml#/components/schemas/Node"
""",
            "b.yaml": """
            components:
              schemas:
                Node:
                  type: object
                  properties:
                    children:
                      type: array
                      items:
                        $ref: "#/components/schemas/Node"
            """,
        })
        document = _bundle(root / "a.yaml").document
        node = document["components"]["schemas"]["b-yaml-Node"]
        assert node["properties"]["children"]["items"] == {"$ref": "#/components/schemas/b-yaml-Node"}
        assert document["components"]["schemas"]["Root"] == {"$ref": "#/components/schemas/b-yaml-Node"}


class TestBundleErrors:

    def test_collision_with_root_content(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths: {}
components:
  schemas:
    b-yaml-X: {type: string}
    Y:
      $ref: "b.yaml#/components/schemas/X"
""",
            "b.yaml": """
            components:
              schemas:
                X: {type: integer}
            """,
        })
        with pytest.raises(DestinationCollisionError) as exc_info:
            _bundle(root / "a.yaml")
        assert exc_info.value.path == ("components", "schemas", "b-yaml-X")
        assert "Unable to merge, object already exists at path: #/components/schemas/b-yaml-X" in str(exc_info.value)

    def test_collision_between_files(self, write_tree):
        response = """
        Ok:
          description: ok
          content:
            application/json:
              schema:
                $ref: "common.yaml#/Thing"
        """
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths:
  /a:
    get:
      responses:
        "200":
          $ref: "one/resp.yaml#/Ok"
  /b:
    get:
      responses:
        "200":
          $ref: "two/resp.yaml#/Ok"
""",
            "one/resp.yaml": response,
            "one/common.yaml": "Thing: {type: string}\n",
            "two/resp.yaml": response,
            "two/common.yaml": "Thing: {type: integer}\n",
        })
        with pytest.raises(DestinationCollisionError) as exc_info:
            _bundle(root / "a.yaml")
        assert exc_info.value.path == ("components", "schemas", "common-yaml-Thing")

    def test_unknown_version_with_external_ref(self, write_tree):
        root = write_tree({
            "a.yaml": """
            openapi: 3.1.0
            paths:
              /x:
                $ref: "b.yaml#/X"
            """,
            "b.yaml": "X: {}\n",
        })
        with pytest.raises(UnsupportedVersionError):
            _bundle(root / "a.yaml")

    def test_missing_file(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths: {}
components:
  schemas:
    A:
      $ref: "missing.yaml#/components/schemas/A"
""",
        })
        with pytest.raises(ReferenceResolutionError, match="file not found"):
            _bundle(root / "a.yaml")

    def test_missing_pointer(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths: {}
components:
  schemas:
    A:
      $ref: "b.yaml#/components/schemas/Nope"
""",
            "b.yaml": "components: {schemas: {}}\n",
        })
        with pytest.raises(ReferenceResolutionError, match="not found"):
            _bundle(root / "a.yaml")

    def test_missing_local_target(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths: {}
components:
  schemas:
    A:
      $ref: "#/components/schemas/Nope"
""",
        })
        with pytest.raises(ReferenceResolutionError):
            _bundle(root / "a.yaml")

    def test_remote_ref_rejected(self, write_tree):
        root = write_tree({
            "a.yaml": OPENAPI_HEAD + """
paths: {}
components:
  schemas:
    A:
      $ref: "https://example.com/schemas.yaml#/A"
""",
        })
        with pytest.raises(ReferenceResolutionError, match="only local file references"):
            _bundle(root / "a.yaml")


class TestBundleOutput:

    def test_deterministic(self, petstore_path):
        first = _bundle(petstore_path / "openapi.yaml")
        second = _bundle(petstore_path / "openapi.yaml")
        assert first.to_json(indent=2) == second.to_json(indent=2)
        assert first.provenance.to_dict() == second.provenance.to_dict()

    def test_placement_order(self, petstore_path):
        document = _bundle(petstore_path / "openapi.yaml").document
        assert list(document["components"]["schemas"]) == [
            "Pet",
            "schemas-pet-yaml",
            "schemas-owner-yaml-Problem",
            "schemas-owner-yaml-Owner",
        ]
        assert list(document["components"]) == ["schemas", "parameters", "responses"]

    def test_every_record_points_at_its_origin(self, petstore_path, session):
        result = _bundle(petstore_path / "openapi.yaml", session)
        records = list(result.provenance.records())
        assert len(records) == 6

        for path, record in records:
            origin = session.load(record.file).root.find(record.pointer)
            assert origin is not None, record
            if not _contains_ref(origin.to_value()):
                assert _at(result.document, path) == origin.to_value()

    def test_no_cross_file_refs_remain(self, petstore_path):
        text = _bundle(petstore_path / "openapi.yaml").to_json()
        assert ".yaml#" not in text
        assert ".json#" not in text
