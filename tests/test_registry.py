"""
tests/test_registry.py - Registry tests.

Parser, merger, --set, stages, references and loader.
"""

from pathlib import Path

import pytest

from conftest import write_registry
from strata.errors import ConfigError
from strata.registry.parser import (
    parse_registry_data,
    parse_registry_file,
    StackParseError,
    StackSpec,
)
from strata.registry.merger import merge_registry_files, apply_set_args
from strata.registry.refs import PENDING, RefError, referenced_stacks, resolve_parameters
from strata.registry.stage import resolve_stages, resolve_registry_files
from strata.registry.loader import load_registry


BASIC_REGISTRY = {
    "apiVersion": "strata.io/v1",
    "kind": "Registry",
    "metadata": {"name": "platform", "region": "eu-west-1"},
    "stacks": [
        {
            "name": "network",
            "template": "templates/network.yaml",
            "description": "Shared VPC",
            "parameters": {"Environment": "dev", "VpcCidr": "10.0.0.0/16"},
        },
        {
            "name": "ci-role",
            "template": "templates/ci-role.yaml",
            "capabilities": ["CAPABILITY_NAMED_IAM"],
        },
    ],
}


# ─────────────────────────────────────────────
# PARSER
# ─────────────────────────────────────────────
class TestParser:
    def test_parse_basic(self):
        reg = parse_registry_data(BASIC_REGISTRY, base_dir="/repo/deploy")
        assert reg.name == "platform"
        assert reg.region == "eu-west-1"
        assert reg.names() == ["network", "ci-role"]

        network = reg.stacks[0]
        assert network.template_path == Path("/repo/deploy/templates/network.yaml")
        assert network.parameters == {"Environment": "dev", "VpcCidr": "10.0.0.0/16"}
        assert network.description == "Shared VPC"
        assert network.capabilities == frozenset()
        assert reg.stacks[1].capabilities == frozenset({"CAPABILITY_NAMED_IAM"})

    def test_bare_list(self):
        reg = parse_registry_data([
            {"name": "a", "template": "a.yaml"},
            {"name": "b", "template": "b.yaml"},
        ])
        assert reg.names() == ["a", "b"]
        assert reg.region is None

    def test_parse_file_resolves_relative_to_file(self, tmp_path):
        path = write_registry(tmp_path, BASIC_REGISTRY)
        reg = parse_registry_file(path)
        assert reg.stacks[0].template_path == tmp_path / "templates" / "network.yaml"

    def test_absolute_template_kept(self):
        reg = parse_registry_data([{"name": "a", "template": "/abs/a.yaml"}], base_dir="/x")
        assert reg.stacks[0].template_path == Path("/abs/a.yaml")

    def test_missing_name_raises(self):
        with pytest.raises(StackParseError, match=r"stacks\[0\].name is required"):
            parse_registry_data([{"template": "a.yaml"}])

    def test_missing_template_raises(self):
        with pytest.raises(StackParseError, match=r"stacks\[1\].template is required"):
            parse_registry_data([
                {"name": "a", "template": "a.yaml"},
                {"name": "b"},
            ])

    def test_parse_error_is_config_error(self):
        with pytest.raises(ConfigError):
            parse_registry_data([{"name": "a"}])

    def test_duplicate_name_raises(self):
        with pytest.raises(StackParseError, match="Duplicate"):
            parse_registry_data([
                {"name": "a", "template": "a.yaml"},
                {"name": "a", "template": "b.yaml"},
            ])

    def test_invalid_stack_name(self):
        with pytest.raises(StackParseError, match="not a valid stack name"):
            parse_registry_data([{"name": "my_stack", "template": "a.yaml"}])

    def test_unknown_capability(self):
        with pytest.raises(StackParseError, match="unknown value"):
            parse_registry_data([
                {"name": "a", "template": "a.yaml", "capabilities": ["CAPABILITY_ROOT"]},
            ])

    def test_capability_must_be_string(self):
        with pytest.raises(StackParseError, match=r"capabilities\[0\] must be a string"):
            parse_registry_data([
                {"name": "a", "template": "a.yaml", "capabilities": [{"x": 1}]},
            ])

    def test_capabilities_must_be_list(self):
        with pytest.raises(StackParseError, match="must be a list"):
            parse_registry_data([
                {"name": "a", "template": "a.yaml", "capabilities": "CAPABILITY_IAM"},
            ])

    def test_parameter_values_stringified(self):
        reg = parse_registry_data([{
            "name": "a",
            "template": "a.yaml",
            "parameters": {"Count": 3, "Enabled": True, "Zones": ["a", "b"], "Empty": None},
        }])
        assert reg.stacks[0].parameters == {
            "Count": "3", "Enabled": "true", "Zones": "a,b", "Empty": "",
        }

    def test_nested_parameter_rejected(self):
        with pytest.raises(StackParseError, match="scalar or list"):
            parse_registry_data([{
                "name": "a", "template": "a.yaml", "parameters": {"X": {"y": 1}},
            }])

    def test_wrong_api_version(self):
        with pytest.raises(StackParseError, match="apiVersion"):
            parse_registry_data({"apiVersion": "strata.io/v9", "stacks": []})

    def test_wrong_kind(self):
        with pytest.raises(StackParseError, match="kind"):
            parse_registry_data({"kind": "Stack", "stacks": []})

    def test_stacks_must_be_list(self):
        with pytest.raises(StackParseError, match="stacks must be a list"):
            parse_registry_data({"stacks": {"a": {}}})

    def test_scalar_document_rejected(self):
        with pytest.raises(StackParseError, match="mapping or list"):
            parse_registry_data("just a string")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "stacks.yaml"
        path.write_text("stacks: [unclosed\n")
        with pytest.raises(StackParseError, match="Invalid YAML"):
            parse_registry_file(path)

    def test_file_not_found(self):
        with pytest.raises(FileNotFoundError):
            parse_registry_file("/nonexistent/stacks.yaml")

    def test_get(self):
        reg = parse_registry_data(BASIC_REGISTRY)
        assert reg.get("ci-role").name == "ci-role"
        assert reg.get("missing") is None


# ─────────────────────────────────────────────
# MERGER
# ─────────────────────────────────────────────
class TestMerger:
    def test_single_file(self, tmp_path):
        path = write_registry(tmp_path, BASIC_REGISTRY)
        result = merge_registry_files([path])
        assert result["metadata"]["name"] == "platform"
        assert len(result["stacks"]) == 2

    def test_bare_list_normalized(self, tmp_path):
        path = write_registry(tmp_path, [{"name": "a", "template": "a.yaml"}])
        result = merge_registry_files([path])
        assert result == {"stacks": [{"name": "a", "template": "a.yaml"}]}

    def test_overlay_dict_format(self, tmp_path):
        base = write_registry(tmp_path, BASIC_REGISTRY)
        overlay = write_registry(tmp_path, {
            "stacks": {"network": {"parameters": {"Environment": "prod"}}},
        }, "stacks.prod.yaml")

        result = merge_registry_files([base, overlay])
        network = result["stacks"][0]
        assert network["parameters"] == {"Environment": "prod", "VpcCidr": "10.0.0.0/16"}
        assert network["template"] == "templates/network.yaml"

    def test_overlay_dict_unknown_stack(self, tmp_path):
        base = write_registry(tmp_path, BASIC_REGISTRY)
        overlay = write_registry(tmp_path, {"stacks": {"ghost": {}}}, "o.yaml")
        with pytest.raises(ConfigError, match="unknown stack"):
            merge_registry_files([base, overlay])

    def test_overlay_list_format_appends(self, tmp_path):
        base = write_registry(tmp_path, BASIC_REGISTRY)
        overlay = write_registry(tmp_path, {"stacks": [
            {"name": "ci-role", "description": "CI"},
            {"name": "extra", "template": "templates/extra.yaml"},
        ]}, "o.yaml")

        result = merge_registry_files([base, overlay])
        assert [s["name"] for s in result["stacks"]] == ["network", "ci-role", "extra"]
        assert result["stacks"][1]["description"] == "CI"
        assert result["stacks"][1]["capabilities"] == ["CAPABILITY_NAMED_IAM"]

    def test_metadata_overlay(self, tmp_path):
        base = write_registry(tmp_path, BASIC_REGISTRY)
        overlay = write_registry(tmp_path, {"metadata": {"region": "us-east-1"}}, "o.yaml")
        result = merge_registry_files([base, overlay])
        assert result["metadata"] == {"name": "platform", "region": "us-east-1"}

    def test_last_overlay_wins(self, tmp_path):
        base = write_registry(tmp_path, BASIC_REGISTRY)
        o1 = write_registry(tmp_path, {"stacks": {"network": {"parameters": {"Environment": "a"}}}}, "1.yaml")
        o2 = write_registry(tmp_path, {"stacks": {"network": {"parameters": {"Environment": "b"}}}}, "2.yaml")
        result = merge_registry_files([base, o1, o2])
        assert result["stacks"][0]["parameters"]["Environment"] == "b"

    def test_no_files(self):
        with pytest.raises(ConfigError):
            merge_registry_files([])

    def test_missing_overlay(self, tmp_path):
        base = write_registry(tmp_path, BASIC_REGISTRY)
        with pytest.raises(FileNotFoundError):
            merge_registry_files([base, tmp_path / "nope.yaml"])


class TestSetArgs:
    def test_set_parameter(self, tmp_path):
        data = merge_registry_files([write_registry(tmp_path, BASIC_REGISTRY)])
        result = apply_set_args(data, ["stacks.network.parameters.VpcCidr=10.9.0.0/16"])
        assert result["stacks"][0]["parameters"]["VpcCidr"] == "10.9.0.0/16"
        assert result["stacks"][0]["parameters"]["Environment"] == "dev"

    def test_set_value_with_equals(self, tmp_path):
        data = merge_registry_files([write_registry(tmp_path, BASIC_REGISTRY)])
        result = apply_set_args(data, ["stacks.network.tags.note=a=b"])
        assert result["stacks"][0]["tags"] == {"note": "a=b"}

    def test_set_unknown_stack(self, tmp_path):
        data = merge_registry_files([write_registry(tmp_path, BASIC_REGISTRY)])
        with pytest.raises(ConfigError, match="unknown stack"):
            apply_set_args(data, ["stacks.ghost.parameters.X=1"])

    def test_set_non_stack_key(self, tmp_path):
        data = merge_registry_files([write_registry(tmp_path, BASIC_REGISTRY)])
        with pytest.raises(ConfigError, match="only supports"):
            apply_set_args(data, ["metadata.region=us-east-1"])

    def test_set_bad_format(self, tmp_path):
        data = merge_registry_files([write_registry(tmp_path, BASIC_REGISTRY)])
        with pytest.raises(ConfigError, match="key=value"):
            apply_set_args(data, ["stacks.network.parameters.X"])


# ─────────────────────────────────────────────
# STAGES
# ─────────────────────────────────────────────
class TestStages:
    def test_flag_wins(self, monkeypatch):
        monkeypatch.setenv("STRATA_STAGE", "dev")
        assert resolve_stages(("prod",)) == ["prod"]

    def test_env_comma_separated(self, monkeypatch):
        monkeypatch.setenv("STRATA_STAGE", "prod, eu ,")
        assert resolve_stages(None) == ["prod", "eu"]

    def test_empty(self, monkeypatch):
        monkeypatch.delenv("STRATA_STAGE", raising=False)
        assert resolve_stages(None) == []

    def test_workspace_files(self, tmp_path):
        write_registry(tmp_path, BASIC_REGISTRY)
        write_registry(tmp_path, {"stacks": {}}, "stacks.prod.yaml")
        files = resolve_registry_files(tmp_path, ["prod", "missing"])
        assert files == [str(tmp_path / "stacks.yaml"), str(tmp_path / "stacks.prod.yaml")]

    def test_first_file_is_base_without_dir(self, tmp_path):
        base = write_registry(tmp_path, BASIC_REGISTRY, "platform.yaml")
        extra = write_registry(tmp_path, {"stacks": {}}, "extra.yaml")
        write_registry(tmp_path, {"stacks": {}}, "stacks.prod.yaml")
        files = resolve_registry_files(None, ["prod"], [str(base), str(extra)])
        assert files == [str(base), str(tmp_path / "stacks.prod.yaml"), str(extra)]

    def test_dir_with_extra_overlay(self, tmp_path):
        write_registry(tmp_path, BASIC_REGISTRY)
        extra = write_registry(tmp_path, {"stacks": {}}, "extra.yaml")
        files = resolve_registry_files(tmp_path, [], [str(extra)])
        assert files == [str(tmp_path / "stacks.yaml"), str(extra)]

    def test_no_registry(self, tmp_path):
        with pytest.raises(ConfigError, match="No registry found"):
            resolve_registry_files(tmp_path, [])


# ─────────────────────────────────────────────
# REFS
# ─────────────────────────────────────────────
def _spec(name, **parameters):
    return StackSpec(name=name, template_path=Path(f"{name}.yaml"), parameters=parameters)


class TestRefs:
    def test_output_ref(self):
        net = _spec("network")
        app = _spec("app", VpcId="${network.outputs.VpcId}")
        registry = {"network": net, "app": app}
        resolved = resolve_parameters(app, registry, lambda n: {"VpcId": "vpc-123"})
        assert resolved == {"VpcId": "vpc-123"}

    def test_composite_ref(self):
        app = _spec("app", Subnets="${network.outputs.A},${network.outputs.B}")
        resolved = resolve_parameters(
            app, {"app": app}, lambda n: {"A": "subnet-a", "B": "subnet-b"},
        )
        assert resolved["Subnets"] == "subnet-a,subnet-b"

    def test_name_and_parameter_refs(self):
        net = _spec("network", Environment="prod")
        app = _spec("app", Env="${network.parameters.Environment}", Net="${network.name}")
        resolved = resolve_parameters(app, {"network": net, "app": app}, lambda n: None)
        assert resolved == {"Env": "prod", "Net": "network"}

    def test_plain_values_untouched(self):
        app = _spec("app", Cidr="10.0.0.0/16", Dollar="$notaref")
        assert resolve_parameters(app, {"app": app}, lambda n: None) == app.parameters

    def test_missing_outputs(self):
        app = _spec("app", VpcId="${network.outputs.VpcId}")
        with pytest.raises(RefError, match="No outputs"):
            resolve_parameters(app, {"app": app}, lambda n: None)

    def test_pending_outputs_become_placeholders(self):
        app = _spec("app", VpcId="${network.outputs.VpcId}", Cidr="10.0.0.0/16")
        resolved = resolve_parameters(app, {"app": app}, lambda n: PENDING)
        assert resolved == {"VpcId": "<network.outputs.VpcId>", "Cidr": "10.0.0.0/16"}

    def test_unknown_output_key(self):
        app = _spec("app", VpcId="${network.outputs.Nope}")
        with pytest.raises(RefError, match="no output 'Nope'"):
            resolve_parameters(app, {"app": app}, lambda n: {"VpcId": "vpc-1"})

    def test_unknown_field(self):
        app = _spec("app", X="${network.arn}")
        with pytest.raises(RefError, match="Unknown field"):
            resolve_parameters(app, {"app": app}, lambda n: {})

    def test_unknown_stack_parameter(self):
        app = _spec("app", X="${ghost.parameters.Y}")
        with pytest.raises(RefError, match="Unknown stack"):
            resolve_parameters(app, {"app": app}, lambda n: None)

    def test_self_reference(self):
        app = _spec("app", X="${app.outputs.Y}")
        with pytest.raises(RefError, match="itself"):
            resolve_parameters(app, {"app": app}, lambda n: {"Y": "1"})

    def test_referenced_stacks(self):
        app = _spec("app", A="${network.outputs.X}", B="${db.name}-${network.name}")
        assert referenced_stacks(app) == ["network", "db"]


# ─────────────────────────────────────────────
# LOADER
# ─────────────────────────────────────────────
class TestLoader:
    def test_load_with_overlay_and_set(self, tmp_path):
        base = write_registry(tmp_path, BASIC_REGISTRY)
        overlay = write_registry(tmp_path, {
            "stacks": {"network": {"parameters": {"Environment": "prod"}}},
        }, "stacks.prod.yaml")

        reg = load_registry([base, overlay], ["stacks.ci-role.parameters.Repo=org/infra"])
        assert reg.get("network").parameters["Environment"] == "prod"
        assert reg.get("ci-role").parameters == {"Repo": "org/infra"}
        assert reg.base_dir == tmp_path
        assert reg.get("network").template_path == tmp_path / "templates" / "network.yaml"

    def test_missing_field_from_overlay_still_caught(self, tmp_path):
        base = write_registry(tmp_path, [{"name": "a", "template": "a.yaml"}])
        overlay = write_registry(tmp_path, {"stacks": [{"name": "b"}]}, "o.yaml")
        with pytest.raises(ConfigError, match="template is required"):
            load_registry([base, overlay])
