import copy

import pytest

from edge_deploy.aws.edge import (
    bind_trigger,
    build_association,
    list_trigger_associations,
    merge_trigger_associations,
)
from edge_deploy.exceptions import (
    ConfigValidationError,
    DistributionConflictError,
    DistributionSchemaError,
    EdgeBindError,
)
from tests.consts import TEST_DISTRIBUTION_ID, TEST_REGION
from tests.fixtures.aws_fakes import FakeCloudFrontClient, make_distribution_config

FUNCTION_ARN = "arn:aws:lambda:us-east-1:123456789012:function:app-server"
VIEWER_ASSOCIATION = {
    "LambdaFunctionARN": "arn:aws:lambda:us-east-1:123456789012:function:auth:3",
    "EventType": "viewer-request",
    "IncludeBody": False,
}


def bind(client, version="5", **kwargs):
    kwargs.setdefault("retry_delay", 0)
    return bind_trigger(TEST_DISTRIBUTION_ID, TEST_REGION, FUNCTION_ARN, version,
                        cloudfront_client=client, **kwargs)


def origin_request_arns(client):
    return [a["LambdaFunctionARN"] for a in client.default_associations(TEST_DISTRIBUTION_ID)
            if a["EventType"] == "origin-request"]


def test_bind_on_distribution_without_triggers(fake_cloudfront):
    association = bind(fake_cloudfront)

    assert association == {
        "LambdaFunctionARN": f"{FUNCTION_ARN}:5",
        "EventType": "origin-request",
        "IncludeBody": False,
    }
    behavior = fake_cloudfront.configs[TEST_DISTRIBUTION_ID]["DefaultCacheBehavior"]
    assert behavior["LambdaFunctionAssociations"] == {"Quantity": 1, "Items": [association]}


def test_bind_replaces_existing_trigger_and_keeps_others():
    existing = {"LambdaFunctionARN": f"{FUNCTION_ARN}:4", "EventType": "origin-request", "IncludeBody": False}
    client = FakeCloudFrontClient({
        TEST_DISTRIBUTION_ID: make_distribution_config([VIEWER_ASSOCIATION, existing]),
    })

    bind(client, version="5")

    associations = client.default_associations(TEST_DISTRIBUTION_ID)
    assert origin_request_arns(client) == [f"{FUNCTION_ARN}:5"]
    assert VIEWER_ASSOCIATION in associations
    assert len(associations) == 2
    assert client.configs[TEST_DISTRIBUTION_ID]["DefaultCacheBehavior"]["LambdaFunctionAssociations"]["Quantity"] == 2


def test_rebinding_does_not_accumulate_triggers(fake_cloudfront):
    bind(fake_cloudfront, version="5")
    bind(fake_cloudfront, version="6")

    assert origin_request_arns(fake_cloudfront) == [f"{FUNCTION_ARN}:6"]
    assert len(fake_cloudfront.default_associations(TEST_DISTRIBUTION_ID)) == 1


def test_rest_of_distribution_config_is_preserved(fake_cloudfront):
    before = copy.deepcopy(fake_cloudfront.configs[TEST_DISTRIBUTION_ID])

    bind(fake_cloudfront)

    after = fake_cloudfront.configs[TEST_DISTRIBUTION_ID]
    before_behavior = before.pop("DefaultCacheBehavior")
    after_behavior = after.pop("DefaultCacheBehavior")
    assert after == before
    before_behavior.pop("LambdaFunctionAssociations")
    after_behavior.pop("LambdaFunctionAssociations")
    assert after_behavior == before_behavior


def test_write_uses_etag_from_the_read(fake_cloudfront):
    bind(fake_cloudfront)

    assert fake_cloudfront.get_calls == 1
    assert fake_cloudfront.update_calls[0]["IfMatch"] == "E1"


def test_missing_default_cache_behavior_is_a_schema_error_without_writes():
    client = FakeCloudFrontClient({TEST_DISTRIBUTION_ID: make_distribution_config(default_behavior=False)})

    with pytest.raises(DistributionSchemaError, match="missing required configuration section"):
        bind(client, max_attempts=3)

    assert client.update_calls == []
    assert client.get_calls == 1


def test_conflict_surfaces_and_leaves_config_unchanged(fake_cloudfront):
    fake_cloudfront.after_get = lambda client, dist_id: client.concurrent_update(dist_id)
    before = copy.deepcopy(fake_cloudfront.configs[TEST_DISTRIBUTION_ID])

    with pytest.raises(DistributionConflictError):
        bind(fake_cloudfront, max_attempts=1)

    assert fake_cloudfront.configs[TEST_DISTRIBUTION_ID] == before
    assert len(fake_cloudfront.update_calls) == 1


def test_conflict_is_retried_with_a_fresh_read(fake_cloudfront):
    conflicts = {"remaining": 2}

    def concurrent_writer(client, dist_id):
        if conflicts["remaining"]:
            conflicts["remaining"] -= 1
            client.concurrent_update(dist_id, comment="edited by another deploy")

    fake_cloudfront.after_get = concurrent_writer

    bind(fake_cloudfront, max_attempts=3)

    config = fake_cloudfront.configs[TEST_DISTRIBUTION_ID]
    assert fake_cloudfront.get_calls == 3
    assert len(fake_cloudfront.update_calls) == 3
    # The concurrent writer's change survives the retried merge
    assert config["Comment"] == "edited by another deploy"
    assert origin_request_arns(fake_cloudfront) == [f"{FUNCTION_ARN}:5"]


def test_conflict_retries_are_bounded(fake_cloudfront):
    fake_cloudfront.after_get = lambda client, dist_id: client.concurrent_update(dist_id)

    with pytest.raises(DistributionConflictError):
        bind(fake_cloudfront, max_attempts=3)

    assert fake_cloudfront.get_calls == 3
    assert origin_request_arns(fake_cloudfront) == []


def test_unknown_distribution_is_an_edge_error(fake_cloudfront):
    with pytest.raises(EdgeBindError):
        bind_trigger("UNKNOWN", TEST_REGION, FUNCTION_ARN, "1", cloudfront_client=fake_cloudfront)


def test_invalid_event_type_is_rejected(fake_cloudfront):
    with pytest.raises(ConfigValidationError):
        bind(fake_cloudfront, event_type="on-deploy")

    assert fake_cloudfront.get_calls == 0


def test_binding_another_event_type(fake_cloudfront):
    bind(fake_cloudfront, version="5")
    bind(fake_cloudfront, version="9", event_type="viewer-request", include_body=True)

    associations = list_trigger_associations(TEST_DISTRIBUTION_ID, TEST_REGION, cloudfront_client=fake_cloudfront)
    by_event = {a["EventType"]: a for a in associations}
    assert by_event["origin-request"]["LambdaFunctionARN"] == f"{FUNCTION_ARN}:5"
    assert by_event["viewer-request"]["LambdaFunctionARN"] == f"{FUNCTION_ARN}:9"
    assert by_event["viewer-request"]["IncludeBody"] is True


def test_merge_handles_empty_association_list():
    behavior = {"TargetOriginId": "o", "LambdaFunctionAssociations": {"Quantity": 0}}
    association = build_association(FUNCTION_ARN, "1", "origin-request")

    merged = merge_trigger_associations(behavior, association)

    assert merged["LambdaFunctionAssociations"] == {"Quantity": 1, "Items": [association]}
    assert behavior == {"TargetOriginId": "o", "LambdaFunctionAssociations": {"Quantity": 0}}


def test_merge_handles_missing_association_section():
    association = build_association(FUNCTION_ARN, "1", "origin-request")

    merged = merge_trigger_associations({"TargetOriginId": "o"}, association)

    assert merged["LambdaFunctionAssociations"]["Items"] == [association]
