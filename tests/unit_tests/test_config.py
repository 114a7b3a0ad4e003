import pytest

from edge_deploy.config import (
    DEFAULT_EDGE_REGION,
    DEFAULT_FUNCTION_REGION,
    DEFAULT_OBJECT_STORE_REGION,
    DeploymentConfig,
    deep_merge,
    resolve_config,
)
from edge_deploy.exceptions import ConfigValidationError

FULL_INPUT = {
    "object_store": {"bucket": "b", "prefix": "p", "region": "r1"},
    "function": {"name": "f", "region": "r2"},
    "edge": {"distribution_id": "d", "region": "r3"},
}


def test_user_values_win_over_defaults():
    config = resolve_config(FULL_INPUT)

    assert config.object_store.bucket == "b"
    assert config.object_store.prefix == "p"
    assert config.object_store.region == "r1"
    assert config.function.name == "f"
    assert config.function.region == "r2"
    assert config.edge.distribution_id == "d"
    assert config.edge.region == "r3"


def test_absent_values_fall_back_to_defaults():
    config = resolve_config({
        "object_store": {"bucket": "b"},
        "function": {"name": "f"},
        "edge": {"distribution_id": "d"},
    })

    assert config.object_store.prefix == ""
    assert config.object_store.region == DEFAULT_OBJECT_STORE_REGION
    assert config.function.region == DEFAULT_FUNCTION_REGION
    assert config.edge.region == DEFAULT_EDGE_REGION


def test_none_is_treated_as_absent():
    config = resolve_config({
        "object_store": {"bucket": "b", "region": None},
        "function": {"name": "f", "region": None},
        "edge": {"distribution_id": "d"},
    })

    assert config.object_store.region == DEFAULT_OBJECT_STORE_REGION
    assert config.function.region == DEFAULT_FUNCTION_REGION


def test_explicit_empty_prefix_is_kept():
    config = resolve_config(
        {**FULL_INPUT, "object_store": {"bucket": "b", "prefix": ""}},
        defaults={"object_store": {"prefix": "assets", "region": "eu-west-1"},
                  "function": {"region": "us-east-1"}, "edge": {"region": "us-east-1"}},
    )

    assert config.object_store.prefix == ""
    assert config.object_store.region == "eu-west-1"


def test_camel_case_keys_from_adapter_config_are_accepted():
    config = resolve_config({
        "s3": {"bucketName": "b", "prefix": "p", "region": "r1"},
        "lambda": {"functionName": "f", "region": "r2"},
        "cloudfront": {"distributionId": "d", "region": "r3"},
    })

    assert config.object_store.bucket == "b"
    assert config.function.name == "f"
    assert config.edge.distribution_id == "d"


def test_missing_required_values_raise_validation_error():
    with pytest.raises(ConfigValidationError) as exc_info:
        resolve_config({"object_store": {"bucket": "b"}})

    message = str(exc_info.value)
    assert "function.name" in message
    assert "edge.distribution_id" in message
    assert "object_store.bucket" not in message


def test_explicit_empty_required_value_is_rejected():
    with pytest.raises(ConfigValidationError):
        resolve_config({**FULL_INPUT, "function": {"name": "", "region": "r2"}})


def test_explicit_empty_region_is_not_replaced_by_default():
    with pytest.raises(ConfigValidationError, match="object_store.region"):
        resolve_config({"s3": {"bucketName": "b", "region": ""}, "lambda": {"functionName": "f"},
                        "cloudfront": {"distributionId": "d"}})


def test_unknown_keys_are_rejected():
    with pytest.raises(ConfigValidationError):
        resolve_config({**FULL_INPUT, "database": {"url": "x"}})


def test_resolved_config_is_immutable():
    config = resolve_config(FULL_INPUT)

    with pytest.raises(Exception):
        config.function.name = "other"


def test_deep_merge_recurses_and_does_not_mutate_inputs():
    defaults = {"a": {"x": 1, "y": 2}, "b": 3}
    overrides = {"a": {"y": 20, "z": None}, "b": None}

    merged = deep_merge(defaults, overrides)

    assert merged == {"a": {"x": 1, "y": 20}, "b": 3}
    assert defaults == {"a": {"x": 1, "y": 2}, "b": 3}


def test_deep_merge_rejects_non_dicts():
    with pytest.raises(TypeError):
        deep_merge({"a": 1}, ["not", "a", "dict"])


def test_deployment_config_reports_missing_fields():
    assert DeploymentConfig().missing_fields() == [
        "object_store.bucket",
        "object_store.region",
        "function.name",
        "function.region",
        "edge.distribution_id",
        "edge.region",
    ]
